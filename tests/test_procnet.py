import os
import unittest

from sockwatch.procnet import (
    parse_all,
    parse_hex_addr,
    parse_line,
    parse_state,
    parse_table,
    parse_unix_table,
    simplify_ipv6,
)

from fakeproc import FakeProc, net_line, unix_line


class TestHexAddr(unittest.TestCase):
    def test_ipv4_loopback(self):
        self.assertEqual(parse_hex_addr("0100007F:0277"), ("127.0.0.1", 631))

    def test_ipv4_wildcard(self):
        self.assertEqual(parse_hex_addr("00000000:0000"), ("*", 0))

    def test_ipv4_byte_order(self):
        self.assertEqual(parse_hex_addr("0F02000A:A2B4"), ("10.0.2.15", 41652))

    def test_ipv6_unspecified(self):
        self.assertEqual(parse_hex_addr("00000000000000000000000000000000:0016"), ("*", 22))

    def test_ipv6_loopback(self):
        self.assertEqual(parse_hex_addr("00000000000000000000000001000000:1F90"), ("::1", 8080))

    def test_ipv6_words_reversed_independently(self):
        addr, _ = parse_hex_addr("B80D0120000000000000000001000000:0050")
        self.assertEqual(addr, "2001:db8::1")

    def test_ipv6_mapped_ipv4(self):
        addr, _ = parse_hex_addr("0000000000000000FFFF00000100007F:0050")
        self.assertEqual(addr, "::ffff:7f00:1")

    def test_rejects_garbage(self):
        for bad in ("0100007F", "0100007F:ZZZZ", "GG00007F:0050", "0100:0050", "1:2:3"):
            with self.assertRaises(ValueError, msg=bad):
                parse_hex_addr(bad)


class TestSimplifyIPv6(unittest.TestCase):
    def test_longest_run_wins(self):
        groups = ["2001", "0db8", "0000", "0001", "0000", "0000", "0000", "0001"]
        self.assertEqual(simplify_ipv6(groups), "2001:db8:0:1::1")

    def test_first_run_wins_on_tie(self):
        groups = ["2001", "0000", "0000", "0001", "0000", "0000", "0001", "0001"]
        self.assertEqual(simplify_ipv6(groups), "2001::1:0:0:1:1")

    def test_single_zero_group_kept(self):
        groups = ["2001", "0db8", "0000", "0001", "0002", "0003", "0004", "0005"]
        self.assertEqual(simplify_ipv6(groups), "2001:db8:0:1:2:3:4:5")

    def test_trailing_run(self):
        groups = ["fe80", "0000", "0000", "0000", "0000", "0000", "0000", "0000"]
        self.assertEqual(simplify_ipv6(groups), "fe80::")


class TestState(unittest.TestCase):
    def test_tcp_states(self):
        self.assertEqual(parse_state("0A", "tcp"), "LISTEN")
        self.assertEqual(parse_state("01", "tcp6"), "ESTABLISHED")
        self.assertEqual(parse_state("06", "tcp"), "TIME_WAIT")
        self.assertEqual(parse_state("0B", "tcp"), "CLOSING")

    def test_unknown_codes(self):
        self.assertEqual(parse_state("0C", "tcp"), "")
        self.assertEqual(parse_state("0A", "udp"), "")
        self.assertEqual(parse_state("XY", "tcp"), "")

    def test_udp_states(self):
        self.assertEqual(parse_state("01", "udp"), "ESTABLISHED")
        self.assertEqual(parse_state("07", "udp6"), "UNCONNECTED")

    def test_udp_unconnected_without_peer_is_listen(self):
        conn = parse_line(net_line(0, "00000000:0044", "00000000:0000", "07", 100), "udp", 4)
        self.assertEqual(conn.state, "LISTEN")

    def test_udp_unconnected_with_peer(self):
        conn = parse_line(net_line(0, "0F02000A:D431", "08080808:0035", "07", 100), "udp", 4)
        self.assertEqual(conn.state, "UNCONNECTED")

    def test_tcp_close_stays_close(self):
        conn = parse_line(net_line(0, "0F02000A:D431", "00000000:0000", "07", 100), "tcp", 4)
        self.assertEqual(conn.state, "CLOSE")


class TestParseTable(unittest.TestCase):
    def setUp(self):
        self.proc = FakeProc()

    def tearDown(self):
        self.proc.cleanup()

    def test_parses_rows_in_order(self):
        self.proc.write_net("tcp", [
            net_line(0, "0100007F:0277", "00000000:0000", "0A", 12345),
            net_line(1, "0F02000A:A2B4", "8EFA1ED8:01BB", "01", 23456, uid=1000),
        ])
        conns = parse_table(os.path.join(self.proc.root, "net", "tcp"), "tcp", 4)
        self.assertEqual(len(conns), 2)
        first, second = conns
        self.assertEqual((first.laddr, first.lport, first.state, first.inode),
                         ("127.0.0.1", 631, "LISTEN", 12345))
        self.assertEqual((first.raddr, first.rport), ("*", 0))
        self.assertEqual(first.ip_version, "IPv4")
        self.assertEqual(first.pid, 0)
        self.assertEqual((second.raddr, second.rport, second.state),
                         ("216.30.250.142", 443, "ESTABLISHED"))

    def test_malformed_lines_are_skipped(self):
        self.proc.write_net("tcp", [
            net_line(0, "0100007F:0277", "00000000:0000", "0A", 1),
            "   1: garbage",
            net_line(2, "0100007F:ZZZZ", "00000000:0000", "0A", 2),
            "",
            net_line(3, "0100007F:1F90", "00000000:0000", "0A", 3),
        ])
        conns = parse_table(os.path.join(self.proc.root, "net", "tcp"), "tcp", 4)
        self.assertEqual([c.inode for c in conns], [1, 3])

    def test_missing_table_raises(self):
        with self.assertRaises(OSError):
            parse_table(os.path.join(self.proc.root, "net", "tcp"), "tcp", 4)

    def test_parse_all_skips_missing_tables(self):
        self.proc.write_net("tcp", [net_line(0, "0100007F:0277", "00000000:0000", "0A", 1)])
        self.proc.write_net("udp", [net_line(0, "00000000:0044", "00000000:0000", "07", 2)])
        conns = parse_all(self.proc.root)
        self.assertEqual([(c.proto, c.inode) for c in conns], [("tcp", 1), ("udp", 2)])

    def test_tcp6_table(self):
        self.proc.write_net("tcp6", [
            net_line(0, "00000000000000000000000000000000:0016",
                     "00000000000000000000000000000000:0000", "0A", 7),
        ])
        (conn,) = parse_all(self.proc.root)
        self.assertEqual((conn.proto, conn.ip_version, conn.laddr, conn.lport),
                         ("tcp6", "IPv6", "*", 22))


class TestUnixTable(unittest.TestCase):
    def setUp(self):
        self.proc = FakeProc()

    def tearDown(self):
        self.proc.cleanup()

    def test_parses_paths_and_inodes(self):
        self.proc.write_unix([
            unix_line(56789, "/run/systemd/notify"),
            unix_line(56790),
            "short line",
        ])
        conns = parse_unix_table(os.path.join(self.proc.root, "net", "unix"))
        self.assertEqual(len(conns), 2)
        self.assertEqual(conns[0].laddr, "/run/systemd/notify")
        self.assertEqual(conns[0].inode, 56789)
        self.assertEqual(conns[1].laddr, "")
        for c in conns:
            self.assertEqual((c.proto, c.state, c.interface, c.ip_version), ("unix", "CONNECTED", "unix", ""))

    def test_missing_table_is_empty(self):
        self.assertEqual(parse_unix_table(os.path.join(self.proc.root, "net", "unix")), [])


if __name__ == "__main__":
    unittest.main()
