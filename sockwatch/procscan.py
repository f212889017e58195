"""
Socket inode -> owning process index, built by walking /proc/<pid>/fd.
"""
import os
import pwd
import queue
import threading
import time

from .debuglog import debug_log, log_slow, log_timing
from .models import ProcessRecord

DEFAULT_WORKERS = 8

SOCKET_LINK_PREFIX = "socket:["


class UserCache:
    """uid -> username, filled on demand and never evicted."""

    def __init__(self):
        self._lock = threading.Lock()
        self._names = {}

    def lookup(self, uid):
        with self._lock:
            name = self._names.get(uid)
        if name is not None:
            return name

        start = time.monotonic()
        name = str(uid)
        try:
            name = pwd.getpwuid(uid).pw_name
        except KeyError:
            pass
        log_slow(f"getpwuid({uid})", start, 0.01)

        # unresolved uids are cached too so repeated misses stay cheap
        with self._lock:
            self._names[uid] = name
        return name

    def clear(self):
        with self._lock:
            self._names = {}

    def size(self):
        with self._lock:
            return len(self._names)


# shared by collectors that don't bring their own
USER_CACHE = UserCache()


def list_pids(proc_root="/proc"):
    """Return every numeric entry under the process root. OSError propagates."""
    pids = []
    with os.scandir(proc_root) as it:
        for entry in it:
            # ascii digits only; isdigit() alone accepts "²"
            if not (entry.name.isascii() and entry.name.isdigit()):
                continue
            pid = int(entry.name)
            if pid > 0:
                pids.append(pid)
    return pids


def _read_text(path):
    with open(path, "r", errors="replace") as f:
        return f.read()


def _command_from_cmdline(raw):
    argv0 = raw.split("\0", 1)[0]
    if not argv0:
        return ""
    base = os.path.basename(argv0)
    # some programs rewrite argv[0] into "name: detail ..."
    if " " in base:
        base = base.split()[0]
    return base


def read_uid(status_path):
    """First (real) uid from the Uid: line of a status file, or None."""
    with open(status_path, "r") as f:
        for line in f:
            if line.startswith("Uid:"):
                fields = line.split()
                if len(fields) >= 2 and fields[1].isdigit():
                    return int(fields[1])
                return None
    return None


class InodeIndexer:
    def __init__(self, proc_root="/proc", workers=DEFAULT_WORKERS, user_cache=None):
        self.proc_root = proc_root
        self.workers = max(1, int(workers))
        self.user_cache = user_cache if user_cache is not None else USER_CACHE

    def _pid_path(self, pid, *parts):
        return os.path.join(self.proc_root, str(pid), *parts)

    def read_process_info(self, pid):
        """
        Short command name and owner of `pid`.

        comm is preferred; cmdline is only read when comm is empty and a
        failure to read it propagates. A missing status file leaves the
        owner unset.
        """
        command = ""
        try:
            command = _read_text(self._pid_path(pid, "comm")).strip()
        except OSError:
            pass
        if not command:
            command = _command_from_cmdline(_read_text(self._pid_path(pid, "cmdline")))

        uid, user = 0, ""
        try:
            found = read_uid(self._pid_path(pid, "status"))
        except OSError:
            found = None
        if found is not None:
            uid, user = found, self.user_cache.lookup(found)
        return ProcessRecord(pid=pid, command=command, uid=uid, user=user)

    def _enrich(self, record):
        cmdline, cwd = "", ""
        try:
            cmdline = _read_text(self._pid_path(record.pid, "cmdline")).replace("\0", " ").strip()
        except OSError:
            pass
        try:
            cwd = os.readlink(self._pid_path(record.pid, "cwd"))
        except OSError:
            pass
        return ProcessRecord(
            pid=record.pid,
            command=record.command,
            uid=record.uid,
            user=record.user,
            cmdline=cmdline,
            cwd=cwd,
        )

    def socket_inodes(self, pid):
        """Inodes of every socket descriptor `pid` holds. OSError if fd/ can't be listed."""
        fd_dir = self._pid_path(pid, "fd")
        inodes = []
        for name in os.listdir(fd_dir):
            try:
                link = os.readlink(os.path.join(fd_dir, name))
            except OSError:
                continue  # fd closed under us
            if link.startswith(SOCKET_LINK_PREFIX) and link.endswith("]"):
                value = link[len(SOCKET_LINK_PREFIX):-1]
                if value.isdigit():
                    inodes.append(int(value))
        return inodes

    def scan_process_sockets(self, pid):
        """[(inode, ProcessRecord)] for one pid; empty when the pid can't be inspected."""
        start = time.monotonic()
        try:
            record = self.read_process_info(pid)
            inodes = self.socket_inodes(pid)
        except (OSError, ValueError):
            # exited mid-scan or not ours to look at
            return []
        if not inodes:
            return []
        record = self._enrich(record)
        log_slow(f"scan pid={pid} ({record.command}) sockets={len(inodes)}", start, 0.02)
        return [(inode, record) for inode in inodes]

    def _worker(self, pids, results):
        try:
            while True:
                pid = pids.get()
                if pid is None:
                    return
                try:
                    batch = self.scan_process_sockets(pid)
                except Exception as e:
                    debug_log(f"PROCSCAN: pid {pid} scan failed: {e}")
                    continue
                if batch:
                    results.put(batch)
        finally:
            results.put(None)

    def build_index(self):
        """
        Map socket inode -> ProcessRecord for every visible process.

        Pids are fanned out to a fixed pool of worker threads; this thread
        folds their batches into the map. When two processes share an inode
        the last batch folded wins.
        """
        start = time.monotonic()
        pids = list_pids(self.proc_root)
        log_timing("  readdir proc", start, f"{len(pids)} pids")

        scan_start = time.monotonic()
        work = queue.Queue()
        results = queue.Queue()
        for pid in pids:
            work.put(pid)
        count = min(self.workers, max(1, len(pids)))
        for _ in range(count):
            work.put(None)

        threads = [
            threading.Thread(target=self._worker, args=(work, results), daemon=True,
                             name=f"sockwatch-scan-{i}")
            for i in range(count)
        ]
        for t in threads:
            t.start()

        index = {}
        fds = 0
        finished = 0
        while finished < count:
            batch = results.get()
            if batch is None:
                finished += 1
                continue
            fds += len(batch)
            for inode, record in batch:
                index[inode] = record
        for t in threads:
            t.join()
        log_timing("  scan all processes", scan_start, f"{fds} socket fds scanned")
        return index
