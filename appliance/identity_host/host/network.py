"""
Host network address discovery.

The control system reports its own network parameters per adapter. The
resolver asks for the current IP address of adapter 0 exactly once and hands
the validated value to the service assembler, which binds the listener to it.

Invariants:
    - Exactly one platform query per resolve call, no retries
    - The returned string always parses as an IPv4 or IPv6 address
    - Empty or malformed platform answers raise AddressUnavailable
"""

from __future__ import annotations

import ipaddress
import logging
import socket
from enum import Enum
from typing import Dict, List, Optional, Protocol, runtime_checkable

import psutil

from ..errors import AddressUnavailable

logger = logging.getLogger(__name__)


class EthernetParameter(Enum):
    """Network parameters the host platform can report."""

    CURRENT_IP_ADDRESS = "current_ip_address"
    CURRENT_SUBNET_MASK = "current_subnet_mask"
    MAC_ADDRESS = "mac_address"


@runtime_checkable
class HostPlatform(Protocol):
    """Network-parameter API of the hosting platform."""

    def get_ethernet_parameter(self, parameter: EthernetParameter, adapter_index: int) -> str:
        """Return the requested parameter, or an empty string if unknown."""
        ...


class PsutilHostPlatform:
    """HostPlatform backed by the operating system's interface table.

    Adapters are the non-loopback interfaces that are up, ordered by name so
    adapter indexes are stable between calls.
    """

    def adapters(self) -> List[str]:
        stats = psutil.net_if_stats()
        names = []
        for name, addrs in psutil.net_if_addrs().items():
            if name in stats and not stats[name].isup:
                continue
            if any(self._is_routable(a.family, a.address) for a in addrs):
                names.append(name)
        return sorted(names)

    def get_ethernet_parameter(self, parameter: EthernetParameter, adapter_index: int) -> str:
        adapters = self.adapters()
        if adapter_index < 0 or adapter_index >= len(adapters):
            logger.debug(f"No network adapter at index {adapter_index} (found {adapters})")
            return ""

        by_family = self._addresses(adapters[adapter_index])
        if parameter == EthernetParameter.CURRENT_IP_ADDRESS:
            candidates = by_family.get(socket.AF_INET) or by_family.get(socket.AF_INET6) or []
            return candidates[0][0] if candidates else ""
        if parameter == EthernetParameter.CURRENT_SUBNET_MASK:
            candidates = by_family.get(socket.AF_INET) or []
            return (candidates[0][1] or "") if candidates else ""
        if parameter == EthernetParameter.MAC_ADDRESS:
            candidates = by_family.get(psutil.AF_LINK) or []
            return candidates[0][0] if candidates else ""
        return ""

    @staticmethod
    def _is_routable(family: int, address: str) -> bool:
        if family not in (socket.AF_INET, socket.AF_INET6):
            return False
        try:
            return not ipaddress.ip_address(address.split("%", 1)[0]).is_loopback
        except ValueError:
            return False

    def _addresses(self, adapter: str) -> Dict[int, List[tuple]]:
        result: Dict[int, List[tuple]] = {}
        for addr in psutil.net_if_addrs().get(adapter, []):
            if addr.family in (socket.AF_INET, socket.AF_INET6):
                if not self._is_routable(addr.family, addr.address):
                    continue
                value = addr.address.split("%", 1)[0]
            else:
                value = addr.address
            result.setdefault(addr.family, []).append((value, addr.netmask))
        return result


class StaticHostPlatform:
    """HostPlatform reporting fixed values.

    Used when the address is configured out of band, and in tests.
    """

    def __init__(self, address: Optional[str] = "", subnet_mask: str = "", mac_address: str = "") -> None:
        self._values = {
            EthernetParameter.CURRENT_IP_ADDRESS: address,
            EthernetParameter.CURRENT_SUBNET_MASK: subnet_mask,
            EthernetParameter.MAC_ADDRESS: mac_address,
        }
        self.queries: List[tuple] = []

    def get_ethernet_parameter(self, parameter: EthernetParameter, adapter_index: int) -> str:
        self.queries.append((parameter, adapter_index))
        if adapter_index != 0:
            return ""
        return self._values.get(parameter) or ""


class NetworkAddressResolver:
    """Resolves the address the listener must bind to.

    Example:
        >>> resolver = NetworkAddressResolver(StaticHostPlatform("192.168.1.50"))
        >>> resolver.resolve_current_address()
        '192.168.1.50'
    """

    def __init__(self, platform: Optional[HostPlatform] = None, adapter_index: int = 0) -> None:
        self.platform = platform or PsutilHostPlatform()
        self.adapter_index = adapter_index

    def resolve_current_address(self) -> str:
        """Query the platform for the adapter's current IP address.

        Returns:
            Normalized address string

        Raises:
            AddressUnavailable: If the platform reports nothing usable
        """
        reported = self.platform.get_ethernet_parameter(
            EthernetParameter.CURRENT_IP_ADDRESS, self.adapter_index
        )
        if reported is None or not str(reported).strip():
            raise AddressUnavailable(
                f"Host platform reported no IP address for adapter {self.adapter_index}",
                reported=reported,
            )

        try:
            address = ipaddress.ip_address(str(reported).strip())
        except ValueError:
            raise AddressUnavailable(
                f"Host platform reported an invalid IP address '{reported}' "
                f"for adapter {self.adapter_index}",
                reported=reported,
            )

        logger.info(f"Resolved host address {address} on adapter {self.adapter_index}")
        return str(address)
