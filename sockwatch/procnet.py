"""
Decoding of the kernel socket tables under /proc/net.

    sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt   uid  timeout inode
     0: 0100007F:0CEA 00000000:0000 0A 00000000:00000000 00:00000000 00000000  1000        0 28990 ...

Addresses are hex in host (little-endian) byte order, ports are big-endian hex.
"""
import os

from .debuglog import debug_log
from .models import WILDCARD, Connection

NET_TABLES = (
    # (file under <proc>/net, proto, ip version)
    ("tcp", "tcp", 4),
    ("tcp6", "tcp6", 6),
    ("udp", "udp", 4),
    ("udp6", "udp6", 6),
)

TCP_STATES = {
    0x01: "ESTABLISHED",
    0x02: "SYN_SENT",
    0x03: "SYN_RECV",
    0x04: "FIN_WAIT1",
    0x05: "FIN_WAIT2",
    0x06: "TIME_WAIT",
    0x07: "CLOSE",
    0x08: "CLOSE_WAIT",
    0x09: "LAST_ACK",
    0x0A: "LISTEN",
    0x0B: "CLOSING",
}

# udp has no states of its own; the kernel reuses the tcp values:
# 0x01 (TCP_ESTABLISHED) = connect() was called
# 0x07 (TCP_CLOSE)       = unconnected, usually just bound
UDP_STATES = {
    0x01: "ESTABLISHED",
    0x07: "UNCONNECTED",
}


def _reverse_bytes(word):
    return "".join(word[i:i + 2] for i in range(len(word) - 2, -2, -2))


def simplify_ipv6(groups):
    """
    Format eight hex groups as a compressed IPv6 address.

    The longest run of two or more zero groups becomes '::'; the first run
    wins on a tie.
    """
    groups = [g.lstrip("0").lower() or "0" for g in groups]
    best_start, best_len = -1, 0
    start, length = -1, 0
    for i, g in enumerate(groups):
        if g == "0":
            if start < 0:
                start, length = i, 0
            length += 1
            if length > best_len:
                best_start, best_len = start, length
        else:
            start = -1
    if best_len < 2:
        return ":".join(groups)
    head = ":".join(groups[:best_start])
    tail = ":".join(groups[best_start + best_len:])
    return f"{head}::{tail}"


def decode_ipv4(hex_ip):
    parts = [int(hex_ip[i:i + 2], 16) for i in (6, 4, 2, 0)]
    addr = ".".join(str(p) for p in parts)
    return WILDCARD if addr == "0.0.0.0" else addr


def decode_ipv6(hex_ip):
    # four 32-bit words, each in host byte order
    full = "".join(_reverse_bytes(hex_ip[i:i + 8]) for i in range(0, 32, 8))
    int(full, 16)  # reject non-hex before formatting
    groups = [full[i:i + 4] for i in range(0, 32, 4)]
    addr = simplify_ipv6(groups)
    return WILDCARD if addr == "::" else addr


def parse_hex_addr(field):
    """Decode 'HEXADDR:HEXPORT' into (address, port). Raises ValueError."""
    parts = field.split(":")
    if len(parts) != 2:
        raise ValueError(f"invalid address format: {field!r}")
    hex_ip, hex_port = parts
    port = int(hex_port, 16)
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port out of range: {hex_port!r}")
    if len(hex_ip) == 8:
        return decode_ipv4(hex_ip), port
    if len(hex_ip) == 32:
        return decode_ipv6(hex_ip), port
    raise ValueError(f"unsupported address format: {hex_ip!r}")


def parse_state(hex_state, proto):
    try:
        code = int(hex_state, 16)
    except ValueError:
        return ""
    if proto.startswith("tcp"):
        return TCP_STATES.get(code, "")
    return UDP_STATES.get(code, "")


def parse_line(line, proto, ip_version):
    """Parse one socket table row; returns None for anything malformed."""
    fields = line.split()
    if len(fields) < 10:
        return None
    try:
        laddr, lport = parse_hex_addr(fields[1])
        raddr, rport = parse_hex_addr(fields[2])
    except ValueError:
        return None
    state = parse_state(fields[3], proto)
    try:
        inode = int(fields[9])
    except ValueError:
        inode = 0

    # an unconnected udp socket with no peer is what "listening" means for udp
    if proto.startswith("udp") and state == "UNCONNECTED":
        if raddr == WILDCARD and rport == 0:
            state = "LISTEN"

    return Connection(
        proto=proto,
        ip_version=f"IPv{ip_version}",
        state=state,
        laddr=laddr,
        lport=lport,
        raddr=raddr,
        rport=rport,
        inode=inode,
    )


def parse_table(path, proto, ip_version):
    """
    Parse one of /proc/net/{tcp,tcp6,udp,udp6}.

    Malformed lines are skipped; OSError from opening the file propagates.
    """
    connections = []
    with open(path, "r") as f:
        next(f, None)  # header
        for line in f:
            line = line.strip()
            if not line:
                continue
            conn = parse_line(line, proto, ip_version)
            if conn is not None:
                connections.append(conn)
    return connections


def parse_all(proc_root="/proc"):
    """Parse the four inet tables; a table that can't be read contributes nothing."""
    connections = []
    for name, proto, ip_version in NET_TABLES:
        path = os.path.join(proc_root, "net", name)
        try:
            connections.extend(parse_table(path, proto, ip_version))
        except OSError as e:
            debug_log(f"PROCNET: skipping {path}: {e}")
    return connections


def parse_unix_table(path):
    """Parse /proc/net/unix. A missing table yields an empty list."""
    connections = []
    try:
        with open(path, "r") as f:
            next(f, None)
            for line in f:
                fields = line.split()
                if len(fields) < 7:
                    continue
                try:
                    inode = int(fields[6])
                except ValueError:
                    inode = 0
                connections.append(Connection(
                    proto="unix",
                    state="CONNECTED",
                    laddr=fields[7] if len(fields) > 7 else "",
                    raddr="",
                    inode=inode,
                    interface="unix",
                ))
    except OSError as e:
        debug_log(f"PROCNET: unix sockets unavailable: {e}")
        return []
    return connections
