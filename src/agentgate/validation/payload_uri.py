"""Payload URI validator — allow-listed hosts and a bounded length.

Applied to every ``payload_uri`` before an update is accepted. The
validator canonicalizes the locator (query string and fragment are
dropped) and rejects hosts outside the allow-list. Content-addressed
schemes such as ``ar://`` and ``ipfs://`` have no host of their own and
are attributed to their configured gateway host.

The length limit applies to everything after the ``scheme://`` prefix of
the submitted string, so ``ar://`` followed by exactly ``max_length``
characters is accepted.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional
from urllib.parse import urlsplit

from agentgate.errors import DomainNotAllowed, TooLong
from agentgate.governance.controller import ControllerCapability
from agentgate.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)

WEB_SCHEMES = ("http", "https")


class PayloadURIValidator:
    """Allow-list and length policy for payload locators.

    Usage:
        validator = PayloadURIValidator(
            controller, max_length=256,
            allowed_domains=["arweave.net", "ipfs.io"],
            scheme_gateways={"ar": "arweave.net", "ipfs": "ipfs.io"},
        )
        validator.sanitize("https://arweave.net/tx?x=1")  # "https://arweave.net/tx"
    """

    def __init__(
        self,
        controller: ControllerCapability,
        max_length: int,
        allowed_domains: Iterable[str],
        scheme_gateways: Optional[dict[str, str]] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        if max_length <= 0:
            raise ValueError(f"max_length must be positive, got {max_length}")
        self._controller = controller
        self._event_log = event_log if event_log is not None else EventLog()
        self._max_length = max_length
        self._allowed: set[str] = {d.lower() for d in allowed_domains}
        self._gateways: dict[str, str] = {
            k.lower(): v.lower() for k, v in (scheme_gateways or {}).items()
        }

    @property
    def max_length(self) -> int:
        return self._max_length

    def allowed_domains(self) -> list[str]:
        return sorted(self._allowed)

    def is_allowed_domain(self, domain: str) -> bool:
        return domain.lower() in self._allowed

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def extract_hostname(self, uri: str) -> str:
        """Return the host a locator resolves through.

        Raises:
            DomainNotAllowed: If the locator has no scheme, an unsupported
                scheme, no host, or userinfo or a backslash in its authority.
        """
        scheme, sep, _ = uri.partition("://")
        if not sep or not scheme:
            raise DomainNotAllowed(f"payload URI has no scheme: {uri!r}")
        scheme = scheme.lower()

        if scheme in self._gateways:
            return self._gateways[scheme]
        if scheme not in WEB_SCHEMES:
            raise DomainNotAllowed(f"unsupported URI scheme: {scheme}")

        try:
            parts = urlsplit(uri)
            host = parts.hostname
        except ValueError as exc:
            raise DomainNotAllowed(f"malformed payload URI: {exc}") from exc
        # Browsers treat a backslash in the authority as a path separator.
        if "\\" in parts.netloc or "@" in parts.netloc:
            raise DomainNotAllowed(
                f"payload URI authority may not carry userinfo or a backslash: {uri!r}"
            )
        if not host:
            raise DomainNotAllowed(f"payload URI has no host: {uri!r}")
        return host

    def sanitize(self, uri: str) -> str:
        """Validate ``uri`` and return its canonical form.

        Raises:
            TooLong: If the part after ``scheme://`` exceeds max_length.
            DomainNotAllowed: If the host is not allow-listed.
        """
        if not isinstance(uri, str) or not uri:
            raise DomainNotAllowed("payload URI must be a non-empty string")

        _, sep, remainder = uri.partition("://")
        measured = remainder if sep else uri
        if len(measured) > self._max_length:
            raise TooLong(
                f"payload URI length {len(measured)} exceeds max {self._max_length}"
            )

        canonical = uri
        for marker in ("?", "#"):
            canonical = canonical.split(marker, 1)[0]

        host = self.extract_hostname(canonical)
        if host not in self._allowed:
            logger.warning("Rejected payload URI host %s", host)
            raise DomainNotAllowed(f"domain not allowed: {host}")
        return canonical

    # ------------------------------------------------------------------
    # Controller administration
    # ------------------------------------------------------------------

    def register_domain(self, caller: str, domain: str, now: Optional[int] = None) -> None:
        self._controller.require(caller, "register_domain")
        domain = _clean_domain(domain)
        self._record("register_domain", {"domain": domain}, now)
        self._allowed.add(domain)

    def unregister_domain(self, caller: str, domain: str, now: Optional[int] = None) -> None:
        self._controller.require(caller, "unregister_domain")
        domain = _clean_domain(domain)
        self._record("unregister_domain", {"domain": domain}, now)
        self._allowed.discard(domain)

    def set_max_length(self, caller: str, max_length: int, now: Optional[int] = None) -> None:
        self._controller.require(caller, "set_max_length")
        if isinstance(max_length, bool) or not isinstance(max_length, int) or max_length <= 0:
            raise ValueError(f"max_length must be a positive integer, got {max_length!r}")
        self._record("set_max_length", {"max_length": max_length}, now)
        self._max_length = max_length

    def policy_snapshot(self) -> dict[str, Any]:
        return {"max_length": self._max_length, "allowed_domains": self.allowed_domains()}

    def restore(self, policy: dict[str, Any]) -> None:
        self._max_length = int(policy["max_length"])
        self._allowed = {d.lower() for d in policy["allowed_domains"]}

    def _record(self, action: str, detail: dict[str, Any], now: Optional[int]) -> None:
        self._event_log.record(
            EventKind.VALIDATOR_POLICY_CHANGED,
            actor_id=self._controller.address,
            payload={"action": action, **detail},
            timestamp=now,
        )
        logger.info("Validator policy change: %s %s", action, detail)


def _clean_domain(domain: str) -> str:
    domain = domain.strip().lower()
    if not domain or "/" in domain or "://" in domain:
        raise ValueError(f"not a bare domain name: {domain!r}")
    return domain
