"""Tests for local address resolution (psutil is mocked)."""

import socket
from types import SimpleNamespace
from unittest.mock import patch

from devlog_capture.network import UNKNOWN_ADDRESS, resolve_local_address


def _addr(family, address):
    return SimpleNamespace(family=family, address=address)


def _ipv4(address):
    return _addr(socket.AF_INET, address)


INTERFACES = {
    "lo": [_ipv4("127.0.0.1")],
    "docker0": [_ipv4("172.17.0.1")],
    "eth0": [_addr(socket.AF_INET6, "fe80::1"), _ipv4("10.0.0.5")],
    "wlan0": [_ipv4("192.168.1.20")],
}


class TestResolveLocalAddress:
    @patch("devlog_capture.network.psutil")
    def test_preferred_interface_order(self, mock_psutil):
        mock_psutil.net_if_addrs.return_value = INTERFACES
        # wlan0 comes before eth0 in the preference list
        assert resolve_local_address() == "192.168.1.20"

    @patch("devlog_capture.network.psutil")
    def test_named_interface_wins(self, mock_psutil):
        mock_psutil.net_if_addrs.return_value = INTERFACES
        assert resolve_local_address("docker0") == "172.17.0.1"

    @patch("devlog_capture.network.psutil")
    def test_unknown_named_interface_falls_back(self, mock_psutil):
        mock_psutil.net_if_addrs.return_value = INTERFACES
        assert resolve_local_address("tun9") == "192.168.1.20"

    @patch("devlog_capture.network.psutil")
    def test_any_non_loopback(self, mock_psutil):
        mock_psutil.net_if_addrs.return_value = {
            "lo": [_ipv4("127.0.0.1")],
            "enp3s0": [_ipv4("10.1.2.3")],
        }
        assert resolve_local_address() == "10.1.2.3"

    @patch("devlog_capture.network.psutil")
    def test_loopback_only(self, mock_psutil):
        mock_psutil.net_if_addrs.return_value = {"lo": [_ipv4("127.0.0.1")]}
        assert resolve_local_address() == UNKNOWN_ADDRESS

    @patch("devlog_capture.network.psutil")
    def test_ipv6_only_interface_ignored(self, mock_psutil):
        mock_psutil.net_if_addrs.return_value = {
            "en0": [_addr(socket.AF_INET6, "fe80::abcd")],
        }
        assert resolve_local_address() == UNKNOWN_ADDRESS

    @patch("devlog_capture.network.psutil")
    def test_lookup_error(self, mock_psutil):
        mock_psutil.net_if_addrs.side_effect = OSError("no access")
        assert resolve_local_address() == UNKNOWN_ADDRESS
