"""
Unit tests for host address resolution.

Tests cover:
- Valid IPv4 / IPv6 answers
- Empty and malformed answers
- Single platform query per resolve
- Interface discovery through psutil
"""

import socket
from collections import namedtuple

import pytest

from appliance.identity_host.errors import AddressUnavailable
from appliance.identity_host.host import network
from appliance.identity_host.host.network import (
    EthernetParameter,
    HostPlatform,
    NetworkAddressResolver,
    PsutilHostPlatform,
    StaticHostPlatform,
)

Addr = namedtuple("Addr", "family address netmask broadcast ptp")
Stats = namedtuple("Stats", "isup")


class TestNetworkAddressResolver:
    """Tests for NetworkAddressResolver."""

    def test_resolves_ipv4(self):
        platform = StaticHostPlatform("192.168.1.50")
        resolver = NetworkAddressResolver(platform)

        assert resolver.resolve_current_address() == "192.168.1.50"

    def test_single_query_for_adapter_zero(self):
        """Exactly one query, for the current IP of adapter 0."""
        platform = StaticHostPlatform("10.0.0.7")
        NetworkAddressResolver(platform).resolve_current_address()

        assert platform.queries == [(EthernetParameter.CURRENT_IP_ADDRESS, 0)]

    def test_resolves_ipv6_normalized(self):
        resolver = NetworkAddressResolver(StaticHostPlatform("2001:DB8::0001"))

        assert resolver.resolve_current_address() == "2001:db8::1"

    def test_strips_whitespace(self):
        resolver = NetworkAddressResolver(StaticHostPlatform("  172.16.0.2\n"))

        assert resolver.resolve_current_address() == "172.16.0.2"

    @pytest.mark.parametrize("reported", ["", "   ", None])
    def test_empty_address_unavailable(self, reported):
        resolver = NetworkAddressResolver(StaticHostPlatform(reported))

        with pytest.raises(AddressUnavailable):
            resolver.resolve_current_address()

    @pytest.mark.parametrize("reported", ["not-an-ip", "192.168.1.300", "192.168.1", "0.0.0.0:7070"])
    def test_malformed_address_unavailable(self, reported):
        resolver = NetworkAddressResolver(StaticHostPlatform(reported))

        with pytest.raises(AddressUnavailable) as exc_info:
            resolver.resolve_current_address()

        assert exc_info.value.reported == reported
        assert exc_info.value.code == "ADDRESS_UNAVAILABLE"

    def test_other_adapter_index(self):
        """StaticHostPlatform only knows adapter 0."""
        resolver = NetworkAddressResolver(StaticHostPlatform("192.168.1.50"), adapter_index=1)

        with pytest.raises(AddressUnavailable):
            resolver.resolve_current_address()

    def test_static_platform_is_host_platform(self):
        assert isinstance(StaticHostPlatform("1.2.3.4"), HostPlatform)


class TestPsutilHostPlatform:
    """Tests for PsutilHostPlatform with a faked interface table."""

    @pytest.fixture
    def interfaces(self, monkeypatch):
        addrs = {
            "lo": [Addr(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None)],
            "eth1": [Addr(socket.AF_INET6, "fe80::1%eth1", "ffff:ffff:ffff:ffff::", None, None)],
            "eth0": [
                Addr(network.psutil.AF_LINK, "00:10:7f:aa:bb:cc", None, None, None),
                Addr(socket.AF_INET, "192.168.1.50", "255.255.255.0", None, None),
            ],
            "wlan0": [Addr(socket.AF_INET, "10.0.0.9", "255.0.0.0", None, None)],
        }
        stats = {"lo": Stats(True), "eth0": Stats(True), "eth1": Stats(True), "wlan0": Stats(False)}
        monkeypatch.setattr(network.psutil, "net_if_addrs", lambda: addrs)
        monkeypatch.setattr(network.psutil, "net_if_stats", lambda: stats)
        return addrs

    def test_adapters_skip_loopback_and_down(self, interfaces):
        assert PsutilHostPlatform().adapters() == ["eth0", "eth1"]

    def test_adapter_zero_ip(self, interfaces):
        platform = PsutilHostPlatform()

        assert platform.get_ethernet_parameter(EthernetParameter.CURRENT_IP_ADDRESS, 0) == "192.168.1.50"

    def test_ipv6_only_adapter(self, interfaces):
        platform = PsutilHostPlatform()

        assert platform.get_ethernet_parameter(EthernetParameter.CURRENT_IP_ADDRESS, 1) == "fe80::1"

    def test_subnet_and_mac(self, interfaces):
        platform = PsutilHostPlatform()

        assert platform.get_ethernet_parameter(EthernetParameter.CURRENT_SUBNET_MASK, 0) == "255.255.255.0"
        assert platform.get_ethernet_parameter(EthernetParameter.MAC_ADDRESS, 0) == "00:10:7f:aa:bb:cc"

    def test_missing_adapter_is_empty(self, interfaces):
        platform = PsutilHostPlatform()

        assert platform.get_ethernet_parameter(EthernetParameter.CURRENT_IP_ADDRESS, 5) == ""

    def test_no_interfaces_unavailable(self, monkeypatch):
        monkeypatch.setattr(network.psutil, "net_if_addrs", lambda: {})
        monkeypatch.setattr(network.psutil, "net_if_stats", lambda: {})

        with pytest.raises(AddressUnavailable):
            NetworkAddressResolver(PsutilHostPlatform()).resolve_current_address()
