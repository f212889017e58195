from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict

# no remote peer (listening / unbound)
WILDCARD = "*"


def _now():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProcessRecord:
    pid: int
    command: str = ""
    uid: int = 0
    user: str = ""
    cmdline: str = ""
    cwd: str = ""


@dataclass(frozen=True)
class Connection:
    """One socket as seen in a single poll."""

    proto: str
    ip_version: str = ""
    state: str = ""
    laddr: str = ""
    lport: int = 0
    raddr: str = ""
    rport: int = 0
    inode: int = 0
    pid: int = 0
    process: str = ""
    uid: int = 0
    user: str = ""
    interface: str = ""
    cmdline: str = ""
    cwd: str = ""
    ts: datetime = field(default_factory=_now)

    @property
    def is_orphaned(self) -> bool:
        return self.pid == 0

    def with_process(self, proc: ProcessRecord) -> "Connection":
        return replace(
            self,
            pid=proc.pid,
            process=proc.command,
            uid=proc.uid,
            user=proc.user,
            cmdline=proc.cmdline,
            cwd=proc.cwd,
        )

    def with_interface(self, interface: str) -> "Connection":
        return replace(self, interface=interface)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts.isoformat().replace("+00:00", "Z"),
            "proto": self.proto,
            "ip_version": self.ip_version,
            "state": self.state,
            "laddr": self.laddr,
            "lport": self.lport,
            "raddr": self.raddr,
            "rport": self.rport,
            "inode": self.inode,
            "pid": self.pid,
            "process": self.process,
            "uid": self.uid,
            "user": self.user,
            "interface": self.interface,
            "cmdline": self.cmdline,
            "cwd": self.cwd,
        }
