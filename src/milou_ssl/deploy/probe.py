"""HTTPS reachability probe run after a deployment.

The probe only checks that a TLS handshake and an HTTP exchange
succeed; certificate verification is disabled because self-signed
material is a normal outcome.
"""

from __future__ import annotations

import logging
import ssl
import urllib.error
import urllib.request

log = logging.getLogger(__name__)


class HttpsProbe:
    def __init__(self, timeout: float = 5.0, port: int = 443) -> None:
        self._timeout = timeout
        self._port = port

    def url_for(self, domain: str) -> str:
        host = f"[{domain}]" if ":" in domain else domain
        if self._port == 443:
            return f"https://{host}/"
        return f"https://{host}:{self._port}/"

    def check(self, domain: str) -> bool:
        """``True`` when ``https://<domain>/`` answers at all."""
        url = self.url_for(domain)
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        try:
            req = urllib.request.Request(url, method="GET")
            with urllib.request.urlopen(req, timeout=self._timeout, context=context) as resp:  # noqa: S310
                log.debug("Probe %s answered HTTP %d", url, resp.status)
        except urllib.error.HTTPError as exc:
            # Any HTTP status means TLS works.
            log.debug("Probe %s answered HTTP %d", url, exc.code)
        except (urllib.error.URLError, OSError) as exc:
            log.debug("Probe %s failed: %s", url, exc)
            return False
        return True
