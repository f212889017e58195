import argparse
import json
import os
import sys
import time

from .collector import CollectionError, Collector
from .config import CONFIG, init_config
from .debuglog import debug_log
from .filters import SORT_FIELDS, build_filters, filter_connections, sort_connections
from .resolver import configure_default_resolver


def check_python_version():
    if sys.version_info < (3, 8):
        print("Python 3.8 or newer is required.")
        sys.exit(1)


def _get_app_version():
    v_file = os.path.join(os.path.dirname(__file__), "VERSION")
    try:
        with open(v_file) as f:
            return f.read().strip()
    except OSError:
        return "0.0.0"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="sockwatch",
        description="List the sockets open on this host with their owning processes.",
    )
    parser.add_argument("--version", action="version", version=f"sockwatch {_get_app_version()}")
    parser.add_argument("filters", nargs="*", metavar="KEY=VALUE",
                        help="filters: proto, state, pid, proc, user, lport, rport, laddr, raddr, "
                             "contains, if, inode")
    parser.add_argument("-t", "--tcp", action="store_true", help="Only TCP sockets")
    parser.add_argument("-u", "--udp", action="store_true", help="Only UDP sockets")
    parser.add_argument("-x", "--unix", action="store_true", help="Only Unix domain sockets")
    parser.add_argument("-l", "--listening", action="store_true", help="Only listening sockets")
    parser.add_argument("-e", "--established", action="store_true", help="Only established sockets")
    parser.add_argument("-4", "--ipv4", action="store_true", help="Only IPv4")
    parser.add_argument("-6", "--ipv6", action="store_true", help="Only IPv6")
    parser.add_argument("-r", "--resolve", action="store_true", help="Resolve addresses and ports to names")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the resolver cache")
    parser.add_argument("-s", "--sort", choices=SORT_FIELDS, default=None, help="Sort field")
    parser.add_argument("--reverse", action="store_true", help="Reverse sort order")
    parser.add_argument("--json", action="store_true", help="One JSON object per line")
    parser.add_argument("-w", "--watch", type=float, nargs="?", const=-1.0, default=None,
                        metavar="SECONDS", help="Repeat every SECONDS (default from config)")
    return parser.parse_args(argv)


def _endpoint(addr, port, proto, resolver):
    if proto == "unix":
        return addr or "-"
    if resolver is not None:
        addr = resolver.resolve_addr(addr)
        port_s = resolver.resolve_port(port, proto.rstrip("6"))
    else:
        port_s = str(port)
    if ":" in addr:
        addr = f"[{addr}]"
    return f"{addr}:{port_s}"


def format_row(conn, resolver=None):
    owner = f"{conn.pid}/{conn.process}" if conn.pid else "-"
    return (
        conn.proto,
        conn.state or "-",
        _endpoint(conn.laddr, conn.lport, conn.proto, resolver),
        _endpoint(conn.raddr, conn.rport, conn.proto, resolver) if conn.proto != "unix" else "-",
        owner,
        conn.user or "-",
        conn.interface or "-",
    )


HEADER = ("PROTO", "STATE", "LOCAL", "REMOTE", "PID/PROGRAM", "USER", "IF")


def render_table(connections, resolver=None, out=None):
    out = out or sys.stdout
    rows = [HEADER] + [format_row(c, resolver) for c in connections]
    widths = [max(len(r[i]) for r in rows) for i in range(len(HEADER))]
    for r in rows:
        out.write("  ".join(col.ljust(w) for col, w in zip(r, widths)).rstrip() + "\n")


def render_json(connections, resolver=None, out=None):
    out = out or sys.stdout
    for c in connections:
        data = c.as_dict()
        if resolver is not None and c.proto != "unix":
            data["lname"] = resolver.resolve_addr(c.laddr)
            data["rname"] = resolver.resolve_addr(c.raddr)
        out.write(json.dumps(data, sort_keys=True) + "\n")


def snapshot(collector, args, filters, resolver=None):
    connections = collector.collect()
    if args.unix:
        connections = [c for c in connections if c.proto == "unix"]
    connections = filter_connections(connections, filters)
    if args.sort:
        connections = sort_connections(connections, args.sort, args.reverse)
    if resolver is not None:
        addrs = []
        for c in connections:
            if c.proto != "unix":
                addrs.extend((c.laddr, c.raddr))
        resolver.resolve_addrs_parallel(addrs)
    return connections


def run(args, config=None):
    config = config if config is not None else CONFIG
    try:
        filters = build_filters(args.filters, tcp=args.tcp, udp=args.udp,
                                listening=args.listening, established=args.established,
                                ipv4=args.ipv4, ipv6=args.ipv6)
    except ValueError as e:
        print(f"sockwatch: {e}", file=sys.stderr)
        return 2

    collector = Collector.from_config(config)
    resolver = None
    if args.resolve:
        resolver = configure_default_resolver(
            timeout=config.get("resolve_timeout"),
            no_cache=args.no_cache or bool(config.get("no_cache")),
            max_parallel=config.get("resolve_concurrency", 32),
        )
    render = render_json if args.json else render_table

    if args.watch is None:
        try:
            connections = snapshot(collector, args, filters, resolver)
        except CollectionError as e:
            print(f"sockwatch: {e}", file=sys.stderr)
            return 1
        render(connections, resolver)
        return 0

    interval = args.watch if args.watch > 0 else float(config.get("watch_interval", 2.0))
    previous = []
    try:
        while True:
            try:
                previous = snapshot(collector, args, filters, resolver)
            except CollectionError as e:
                # keep showing the last good snapshot
                print(f"sockwatch: {e}", file=sys.stderr)
                debug_log(f"WATCH: collect failed: {e}")
            if not args.json:
                sys.stdout.write(f"\n--- {time.strftime('%H:%M:%S')} ({len(previous)} sockets)\n")
            render(previous, resolver)
            sys.stdout.flush()
            time.sleep(interval)
    except KeyboardInterrupt:
        return 0


def main(argv=None):
    check_python_version()
    init_config()
    args = parse_args(argv)
    return run(args)
