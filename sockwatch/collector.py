import ipaddress
import os
import threading
import time

import psutil

from .debuglog import debug_log, log_timing
from .models import WILDCARD
from .procnet import parse_all, parse_unix_table
from .procscan import DEFAULT_WORKERS, InodeIndexer


class CollectionError(Exception):
    """The process namespace could not be enumerated; no attribution possible."""


# --------------------------------------------------
# 🌍 Interface guessing
# --------------------------------------------------
def interface_addresses():
    """Return {normalized ip: interface name} for every local address."""
    mapping = {}
    try:
        addrs = psutil.net_if_addrs()
    except (OSError, psutil.Error) as e:
        debug_log(f"COLLECTOR: net_if_addrs failed: {e}")
        return mapping
    for iface, entries in addrs.items():
        for entry in entries:
            ip = (entry.address or "").split("%", 1)[0]
            try:
                mapping.setdefault(str(ipaddress.ip_address(ip)), iface)
            except ValueError:
                continue  # link-layer addresses
    return mapping


def guess_interface(addr, iface_addrs):
    if addr == WILDCARD:
        return "any"
    try:
        ip = ipaddress.ip_address(addr)
    except ValueError:
        return ""
    name = iface_addrs.get(str(ip))
    if name:
        return name
    if ip.is_loopback:
        return "lo"
    return ""


# --------------------------------------------------
# Collector
# --------------------------------------------------
class Collector:
    """Produces one snapshot of the host's sockets per call."""

    def __init__(self, proc_root="/proc", workers=DEFAULT_WORKERS, user_cache=None,
                 attribute_unix=False):
        self.proc_root = proc_root
        self.attribute_unix = attribute_unix
        self.indexer = InodeIndexer(proc_root=proc_root, workers=workers, user_cache=user_cache)

    @classmethod
    def from_config(cls, config, user_cache=None):
        return cls(
            proc_root=config.get("proc_root", "/proc"),
            workers=config.get("index_workers", DEFAULT_WORKERS),
            user_cache=user_cache,
            attribute_unix=bool(config.get("attribute_unix_sockets", False)),
        )

    def _build_index(self):
        start = time.monotonic()
        try:
            index = self.indexer.build_index()
        except OSError as e:
            raise CollectionError(f"failed to build inode map: {e}") from e
        log_timing("build inode index", start, f"{len(index)} inodes")
        return index

    def collect_network(self, index=None):
        """TCP/UDP sockets from the four inet tables, attributed where possible."""
        total_start = time.monotonic()
        if index is None:
            index = self._build_index()

        parse_start = time.monotonic()
        iface_addrs = interface_addresses()
        connections = []
        for conn in parse_all(self.proc_root):
            proc = index.get(conn.inode)
            if proc is not None:
                conn = conn.with_process(proc)
            connections.append(conn.with_interface(guess_interface(conn.laddr, iface_addrs)))
        log_timing("parse net tables", parse_start, f"{len(connections)} connections")
        log_timing("collect_network total", total_start)
        return connections

    def collect_unix(self, index=None):
        unix = parse_unix_table(os.path.join(self.proc_root, "net", "unix"))
        if not self.attribute_unix or not index:
            return unix
        attributed = []
        for conn in unix:
            proc = index.get(conn.inode)
            attributed.append(conn.with_process(proc) if proc is not None else conn)
        return attributed

    def collect(self):
        """
        One full poll: inet sockets followed by unix domain sockets.

        Raises CollectionError only when the process root can't be listed;
        unreadable tables and vanished pids just shrink the result.
        """
        start = time.monotonic()
        index = self._build_index()
        connections = self.collect_network(index)
        connections.extend(self.collect_unix(index))
        log_timing("collect total", start, f"{len(connections)} sockets")
        return connections


_default_collector = None
_default_lock = threading.Lock()


def get_default_collector():
    global _default_collector
    with _default_lock:
        if _default_collector is None:
            _default_collector = Collector()
        return _default_collector


def get_connections():
    return get_default_collector().collect_network()


def get_all_connections():
    return get_default_collector().collect()
