"""Public-reachability check for ACME preconditions.

An ACME HTTP-01 challenge can only succeed for names the public
internet resolves to a globally routable address.
"""

from __future__ import annotations

import abc
import ipaddress
import logging

import dns.exception
import dns.resolver

log = logging.getLogger(__name__)

_LOCAL_SUFFIXES = (".localhost", ".local", ".internal", ".lan", ".test", ".example", ".invalid")


def looks_local(domain: str) -> bool:
    """Whether *domain* can never be publicly reachable.

    True for ``localhost``, reserved local suffixes and non-global IP
    literals.
    """
    domain = domain.strip().lower().rstrip(".")
    if domain == "localhost" or domain.endswith(_LOCAL_SUFFIXES):
        return True
    try:
        return not ipaddress.ip_address(domain).is_global
    except ValueError:
        return "." not in domain


class DomainResolver(abc.ABC):
    @abc.abstractmethod
    def is_publicly_resolvable(self, domain: str) -> bool:
        """Whether *domain* resolves to at least one global address."""


class DnsResolver(DomainResolver):
    """:class:`DomainResolver` backed by dnspython.

    Parameters
    ----------
    nameservers:
        Resolver addresses; empty uses the system configuration.
    timeout:
        Overall lifetime of each query in seconds.

    """

    def __init__(self, nameservers: tuple[str, ...] = (), timeout: float = 5.0) -> None:
        self._nameservers = nameservers
        self._timeout = timeout

    def resolve_addresses(self, domain: str) -> list[str]:
        resolver = dns.resolver.Resolver()
        if self._nameservers:
            resolver.nameservers = list(self._nameservers)
        resolver.lifetime = self._timeout

        addresses: list[str] = []
        for rdtype in ("A", "AAAA"):
            try:
                answer = resolver.resolve(domain, rdtype)
            except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN):
                continue
            except dns.exception.DNSException as exc:
                log.warning("DNS %s lookup for %s failed: %s", rdtype, domain, exc)
                continue
            addresses.extend(rdata.to_text() for rdata in answer)
        return addresses

    def is_publicly_resolvable(self, domain: str) -> bool:
        if looks_local(domain):
            log.debug("%s is a local name, not publicly resolvable", domain)
            return False
        try:
            return ipaddress.ip_address(domain).is_global
        except ValueError:
            pass
        addresses = self.resolve_addresses(domain)
        public = [a for a in addresses if ipaddress.ip_address(a).is_global]
        if not public:
            log.info("%s has no public address (resolved: %s)", domain, addresses or "none")
        return bool(public)
