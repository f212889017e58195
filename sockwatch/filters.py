from dataclasses import dataclass

# key=value filter keys accepted on the command line
FILTER_KEYS = (
    "proto", "state", "pid", "proc", "user", "lport", "rport",
    "laddr", "raddr", "contains", "if", "interface", "inode",
)

SORT_FIELDS = (
    "pid", "process", "user", "proto", "state",
    "laddr", "lport", "raddr", "rport", "inode",
)


@dataclass
class FilterOptions:
    proto: str = ""
    state: str = ""
    pid: int = 0
    proc: str = ""
    user: str = ""
    uid: int = -1
    lport: int = 0
    rport: int = 0
    laddr: str = ""
    raddr: str = ""
    contains: str = ""
    interface: str = ""
    inode: int = 0
    ipv4: bool = False
    ipv6: bool = False

    def is_empty(self):
        return self == FilterOptions()

    def matches(self, conn):
        if self.proto and not conn.proto.startswith(self.proto.lower()):
            return False
        if self.state and conn.state.upper() != self.state.upper():
            return False
        if self.pid and conn.pid != self.pid:
            return False
        if self.proc and self.proc.lower() not in conn.process.lower():
            return False
        if self.user and conn.user != self.user:
            return False
        if self.uid >= 0 and (conn.pid == 0 or conn.uid != self.uid):
            return False
        if self.lport and conn.lport != self.lport:
            return False
        if self.rport and conn.rport != self.rport:
            return False
        if self.laddr and conn.laddr != self.laddr:
            return False
        if self.raddr and conn.raddr != self.raddr:
            return False
        if self.interface and conn.interface != self.interface:
            return False
        if self.inode and conn.inode != self.inode:
            return False
        # both flags set means no restriction
        if self.ipv4 != self.ipv6:
            wanted = "IPv4" if self.ipv4 else "IPv6"
            if conn.ip_version != wanted:
                return False
        if self.contains:
            needle = self.contains.lower()
            haystack = (conn.process, conn.laddr, conn.raddr, conn.cmdline, conn.user)
            if not any(needle in h.lower() for h in haystack):
                return False
        return True


def _int_value(key, value):
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"invalid {key} value: {value!r}") from None


def apply_filter(filters, key, value):
    key = key.lower()
    if key == "proto":
        filters.proto = value.lower()
    elif key == "state":
        filters.state = value.upper()
    elif key == "pid":
        filters.pid = _int_value(key, value)
    elif key == "proc":
        filters.proc = value
    elif key == "user":
        # numeric means uid
        if value.isdigit():
            filters.uid = int(value)
        else:
            filters.user = value
    elif key in ("lport", "rport"):
        port = _int_value(key, value)
        if not 0 < port <= 0xFFFF:
            raise ValueError(f"invalid {key} value: {value!r}")
        setattr(filters, key, port)
    elif key == "laddr":
        filters.laddr = value
    elif key == "raddr":
        filters.raddr = value
    elif key == "contains":
        filters.contains = value
    elif key in ("if", "interface"):
        filters.interface = value
    elif key == "inode":
        filters.inode = _int_value(key, value)
    else:
        raise ValueError(f"unknown filter key: {key!r}")


def parse_filter_args(args):
    """Build FilterOptions from ["key=value", ...]. Raises ValueError."""
    filters = FilterOptions()
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or not key:
            raise ValueError(f"invalid filter format: {arg!r} (expected key=value)")
        apply_filter(filters, key, value)
    return filters


def build_filters(args, tcp=False, udp=False, listening=False, established=False,
                  ipv4=False, ipv6=False):
    """parse_filter_args plus the shorthand flags; explicit key=value wins."""
    filters = parse_filter_args(args)
    if not filters.proto and tcp != udp:
        filters.proto = "tcp" if tcp else "udp"
    if not filters.state and listening != established:
        filters.state = "LISTEN" if listening else "ESTABLISHED"
    filters.ipv4 = filters.ipv4 or ipv4
    filters.ipv6 = filters.ipv6 or ipv6
    return filters


def filter_connections(connections, filters):
    if filters is None or filters.is_empty():
        return list(connections)
    return [c for c in connections if filters.matches(c)]


def sort_connections(connections, field="proto", reverse=False):
    if field not in SORT_FIELDS:
        raise ValueError(f"unknown sort field: {field!r}")
    if field == "process":
        key = lambda c: (c.process.lower(), c.pid)
    elif field == "user":
        key = lambda c: (c.user.lower(), c.uid)
    else:
        key = lambda c: getattr(c, field)
    return sorted(connections, key=key, reverse=reverse)
