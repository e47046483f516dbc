"""ABOUTME: Location resolver interface and a static CIDR-based implementation
ABOUTME: Turns a client IP address into a coarse location label for the attempt ledger"""

import ipaddress
from abc import ABC, abstractmethod

import structlog

from loginguard.domain.value_objects import UNKNOWN_LOCATION

log = structlog.get_logger(__name__)


class LocationResolver(ABC):
    """Abstract base class for IP to location lookups."""

    @abstractmethod
    def resolve(self, ip_address: str) -> str:
        """Return a location label such as "Houston, TX, US", or UNKNOWN_LOCATION.

        Raise an exception if the lookup itself failed (as opposed to the IP
        simply not being known).
        """
        pass


class StaticLocationResolver(LocationResolver):
    """Resolve IPs against a fixed mapping of networks to labels.

    The most specific matching network wins. Unparseable or unmapped addresses
    resolve to UNKNOWN_LOCATION.
    """

    def __init__(self, networks: dict[str, str] | None = None):
        parsed = [(ipaddress.ip_network(cidr, strict=False), label) for cidr, label in (networks or {}).items()]
        # longest prefix first
        self._networks = sorted(parsed, key=lambda item: item[0].prefixlen, reverse=True)

    def resolve(self, ip_address: str) -> str:
        try:
            address = ipaddress.ip_address(ip_address.strip())
        except ValueError:
            log.debug("unparseable ip address", ip_address=ip_address)
            return UNKNOWN_LOCATION

        for network, label in self._networks:
            if address.version == network.version and address in network:
                return label
        return UNKNOWN_LOCATION
