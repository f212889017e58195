"""sockwatch: live socket inspector for Linux built on /proc."""
import sys

from .collector import (
    CollectionError,
    Collector,
    get_all_connections,
    get_connections,
    guess_interface,
)
from .models import WILDCARD, Connection, ProcessRecord
from .procnet import parse_all, parse_hex_addr, parse_state, parse_table, parse_unix_table
from .procscan import USER_CACHE, InodeIndexer, UserCache
from .resolver import (
    DEFAULT_TIMEOUT,
    Resolver,
    configure_default_resolver,
    get_default_resolver,
    resolve_addr,
    resolve_addr_port,
    resolve_addrs_parallel,
    resolve_port,
)


def cli_entry():
    """terminal command 'sockwatch' entry point"""
    from .cli import main
    sys.exit(main())
