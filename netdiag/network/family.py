"""Address family selection for probes."""

import socket
from enum import Enum
from typing import Optional, Tuple


class AddressFamily(Enum):
    """IPv4/IPv6 constraint on a probe."""
    ANY = "any"
    IPV4 = "4"
    IPV6 = "6"

    @classmethod
    def parse(cls, value) -> "AddressFamily":
        """Accept 'any', '4', '6', 'ipv4', 'ipv6', 4, 6 or an AddressFamily."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        aliases = {"ipv4": "4", "inet": "4", "ipv6": "6", "inet6": "6", "": "any"}
        text = aliases.get(text, text)
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"unknown address family {value!r} (expected any, 4 or 6)") from None

    @property
    def label(self) -> str:
        return {"any": "any", "4": "IPv4", "6": "IPv6"}[self.value]

    @property
    def socket_family(self) -> int:
        """Family argument for socket.getaddrinfo."""
        return {
            AddressFamily.ANY: socket.AF_UNSPEC,
            AddressFamily.IPV4: socket.AF_INET,
            AddressFamily.IPV6: socket.AF_INET6,
        }[self]

    @property
    def record_types(self) -> Tuple[str, ...]:
        """DNS record types answering for this family."""
        return {
            AddressFamily.ANY: ('A', 'AAAA'),
            AddressFamily.IPV4: ('A',),
            AddressFamily.IPV6: ('AAAA',),
        }[self]

    @property
    def bind_address(self) -> Optional[Tuple[str, int]]:
        """Wildcard source address that only a socket of this family can bind."""
        return {
            AddressFamily.ANY: None,
            AddressFamily.IPV4: ("0.0.0.0", 0),
            AddressFamily.IPV6: ("::", 0),
        }[self]

    def narrow(self, other: "AddressFamily") -> "AddressFamily":
        """A forced family wins over ANY."""
        return self if self is not AddressFamily.ANY else other
