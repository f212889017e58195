"""
Address and port name resolution with caching and bounded latency.

Each reverse lookup runs on its own daemon thread so a caller waits at most
`timeout` seconds from the moment its lookup starts; a lookup that overruns
is left to finish in the background and its answer is discarded.
"""
import ipaddress
import socket
import threading
import time

from .debuglog import debug_log, log_slow
from .models import WILDCARD

DEFAULT_TIMEOUT = 0.2
DEFAULT_PARALLEL = 32

# common services; anything else is shown as the bare port number
WELL_KNOWN_PORTS = {
    "80/tcp": "http",
    "443/tcp": "https",
    "22/tcp": "ssh",
    "21/tcp": "ftp",
    "25/tcp": "smtp",
    "53/tcp": "domain",
    "53/udp": "domain",
    "110/tcp": "pop3",
    "143/tcp": "imap",
    "993/tcp": "imaps",
    "995/tcp": "pop3s",
    "3306/tcp": "mysql",
    "5432/tcp": "postgresql",
    "6379/tcp": "redis",
    "3389/tcp": "rdp",
    "5900/tcp": "vnc",
    "23/tcp": "telnet",
    "69/udp": "tftp",
    "123/udp": "ntp",
    "161/udp": "snmp",
    "514/udp": "syslog",
    "67/udp": "bootps",
    "68/udp": "bootpc",
}


def _port_key(port, proto):
    return f"{port}/{proto}"


def well_known_service(port, proto):
    return WELL_KNOWN_PORTS.get(_port_key(port, proto), "")


def _reverse_lookup(addr):
    hostname, aliases, _ = socket.gethostbyaddr(addr)
    return [hostname] + list(aliases)


class Resolver:
    def __init__(self, timeout=DEFAULT_TIMEOUT, no_cache=False, max_parallel=DEFAULT_PARALLEL):
        self.timeout = timeout
        self.no_cache = no_cache
        self.max_parallel = max(1, int(max_parallel))
        self._cache = {}
        self._lock = threading.Lock()

    def set_no_cache(self, no_cache):
        self.no_cache = no_cache

    def _cached(self, key):
        if self.no_cache:
            return None
        with self._lock:
            return self._cache.get(key)

    def _store(self, key, value):
        if self.no_cache:
            return
        with self._lock:
            self._cache[key] = value

    def _lookup_names(self, addr):
        result = {}
        done = threading.Event()

        def run():
            try:
                result["names"] = _reverse_lookup(addr)
            except (OSError, UnicodeError):
                pass
            finally:
                done.set()

        threading.Thread(target=run, daemon=True, name=f"sockwatch-dns-{addr}").start()
        if not done.wait(self.timeout):
            debug_log(f"RESOLVER: reverse lookup for {addr} timed out")
            return []
        return result.get("names", [])

    def resolve_addr(self, addr):
        """Hostname for `addr`, or `addr` itself when it can't be resolved in time."""
        cached = self._cached(addr)
        if cached is not None:
            return cached

        try:
            ipaddress.ip_address(addr)
        except ValueError:
            # not an ip: names and wildcards pass through
            self._store(addr, addr)
            return addr

        start = time.monotonic()
        resolved = addr
        names = self._lookup_names(addr)
        if names and names[0]:
            resolved = names[0][:-1] if names[0].endswith(".") else names[0]
        log_slow(f"DNS lookup {addr} -> {resolved}", start, 0.05)

        # failures are cached as well so a dead address is only slow once
        self._store(addr, resolved)
        return resolved

    def resolve_port(self, port, proto):
        if port == 0:
            return "0"
        key = _port_key(port, proto)
        cached = self._cached(key)
        if cached is not None:
            return cached

        resolved = well_known_service(port, proto) or str(port)
        self._store(key, resolved)
        return resolved

    def resolve_addr_port(self, addr, port, proto):
        return self.resolve_addr(addr), self.resolve_port(port, proto)

    def resolve_addrs_parallel(self, addrs):
        """
        Pre-warm the cache for `addrs` before a render pass.

        Blank, wildcard and already cached entries are skipped; the rest are
        resolved concurrently, at most `max_parallel` at a time. Returns once
        every lookup has finished or timed out.
        """
        pending = set()
        for addr in addrs:
            if not addr or addr == WILDCARD or addr in pending:
                continue
            with self._lock:
                if addr in self._cache:
                    continue
            pending.add(addr)
        if not pending:
            return

        gate = threading.BoundedSemaphore(self.max_parallel)

        def run(a):
            try:
                self.resolve_addr(a)
            finally:
                gate.release()

        threads = []
        for addr in pending:
            gate.acquire()
            t = threading.Thread(target=run, args=(addr,), daemon=True)
            t.start()
            threads.append(t)
        for t in threads:
            t.join()

    def clear_cache(self):
        with self._lock:
            self._cache = {}

    def cache_size(self):
        with self._lock:
            return len(self._cache)


# --------------------------------------------------
# Shared instance
# --------------------------------------------------
_default_resolver = None
_default_lock = threading.Lock()


def configure_default_resolver(timeout=None, no_cache=False, max_parallel=DEFAULT_PARALLEL):
    """Replace the shared resolver; timeout None/0 means DEFAULT_TIMEOUT."""
    global _default_resolver
    with _default_lock:
        _default_resolver = Resolver(timeout=timeout or DEFAULT_TIMEOUT, no_cache=no_cache,
                                     max_parallel=max_parallel)
        return _default_resolver


def get_default_resolver():
    global _default_resolver
    with _default_lock:
        if _default_resolver is None:
            _default_resolver = Resolver(DEFAULT_TIMEOUT)
        return _default_resolver


def set_no_cache(no_cache):
    get_default_resolver().set_no_cache(no_cache)


def resolve_addr(addr):
    return get_default_resolver().resolve_addr(addr)


def resolve_port(port, proto):
    return get_default_resolver().resolve_port(port, proto)


def resolve_addr_port(addr, port, proto):
    return get_default_resolver().resolve_addr_port(addr, port, proto)


def resolve_addrs_parallel(addrs):
    get_default_resolver().resolve_addrs_parallel(addrs)
