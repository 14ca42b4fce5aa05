"""TLS policy construction from certificate/key loaders.

A :class:`TLSConfigLoader` turns optional inputs into a :class:`TLSPolicy`.
A disabled policy is still a real object (with an empty chain) so callers
never branch on ``None``. Protocol floor, curve preference and cipher suite
allowlist are module constants and cannot be changed per instance.
"""
from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass, field
from datetime import UTC, datetime

from cryptography import x509

from .credentials import CertFile, CertificatePair, PrivateKeyFile
from .errors import IncompleteTLSConfigError
from .optional import Option

LOGGER = logging.getLogger(__name__)

MIN_TLS_VERSION = ssl.TLSVersion.TLSv1_3
CURVE_PREFERENCES: tuple[str, ...] = ("secp521r1", "secp384r1", "prime256v1")
CIPHER_SUITES: tuple[str, ...] = (
    "ECDHE-RSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES256-SHA",
    "AES256-GCM-SHA384",
    "AES256-SHA",
)


@dataclass(frozen=True)
class TLSPolicy:
    """Transport security settings produced by one resolution cycle."""

    enabled: bool
    server_name: Option[str] = field(default_factory=Option.none)
    skip_verify: bool = False
    certificate_pair: CertificatePair | None = None
    min_version: ssl.TLSVersion = field(default=MIN_TLS_VERSION, init=False)
    curve_preferences: tuple[str, ...] = field(default=CURVE_PREFERENCES, init=False)
    cipher_suites: tuple[str, ...] = field(default=CIPHER_SUITES, init=False)

    def __post_init__(self) -> None:
        """Reject enabled policies that could not authenticate a peer."""
        if not self.enabled:
            return
        if self.certificate_pair is None:
            raise IncompleteTLSConfigError("TLS is enabled but no certificate/key pair was loaded.")
        if self.server_name.is_none() and not self.skip_verify:
            raise IncompleteTLSConfigError(
                "TLS is enabled without a server name and skip_verify is false."
            )

    @classmethod
    def disabled(
        cls,
        *,
        server_name: Option[str] | None = None,
        skip_verify: bool = False,
    ) -> TLSPolicy:
        """Return a policy describing a plaintext transport."""
        return cls(
            enabled=False,
            server_name=server_name if server_name is not None else Option.none(),
            skip_verify=skip_verify,
        )

    @property
    def certificate_chain(self) -> tuple[x509.Certificate, ...]:
        """Return the loaded chain, empty when TLS is disabled."""
        if self.certificate_pair is None:
            return ()
        return self.certificate_pair.certificates

    @property
    def not_valid_after(self) -> datetime | None:
        """Return the leaf certificate expiry, if a chain is loaded."""
        if not self.certificate_chain:
            return None
        return self.certificate_chain[0].not_valid_after_utc

    def days_until_expiry(self, now: datetime | None = None) -> int | None:
        """Return whole days until the leaf certificate expires."""
        expiry = self.not_valid_after
        if expiry is None:
            return None
        return (expiry - (now or datetime.now(UTC))).days

    def server_context(self) -> ssl.SSLContext | None:
        """Return a server-side context, or None when TLS is disabled."""
        pair = self.certificate_pair
        if not self.enabled or pair is None:
            return None
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self._apply(context, pair)
        return context

    def client_context(self) -> ssl.SSLContext | None:
        """Return a client-side context, or None when TLS is disabled."""
        pair = self.certificate_pair
        if not self.enabled or pair is None:
            return None
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        if self.skip_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        else:
            context.load_default_certs()
        self._apply(context, pair)
        return context

    def _apply(self, context: ssl.SSLContext, pair: CertificatePair) -> None:
        context.minimum_version = self.min_version
        context.set_ciphers(":".join(self.cipher_suites))
        context.load_cert_chain(
            certfile=str(pair.certificate_path),
            keyfile=str(pair.key_path),
        )

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable summary of the policy."""
        server_name, _ = self.server_name.get()
        expiry = self.not_valid_after
        return {
            "enabled": self.enabled,
            "server_name": server_name,
            "skip_verify": self.skip_verify,
            "min_version": self.min_version.name,
            "curve_preferences": list(self.curve_preferences),
            "cipher_suites": list(self.cipher_suites),
            "certificate_chain": [
                cert.subject.rfc4514_string() for cert in self.certificate_chain
            ],
            "key_type": (
                self.certificate_pair.private_key.kind.value
                if self.certificate_pair is not None
                else None
            ),
            "not_valid_after": expiry.isoformat() if expiry is not None else None,
        }


@dataclass
class TLSConfigLoader:
    """Build a :class:`TLSPolicy` from optional flags and credential paths."""

    enabled: Option[bool] = field(default_factory=Option.none)
    server_name: Option[str] = field(default_factory=Option.none)
    skip_verify: Option[bool] = field(default_factory=Option.none)
    certificate: CertFile = field(default_factory=CertFile)
    private_key: PrivateKeyFile = field(default_factory=PrivateKeyFile)
    _previous: TLSPolicy | None = field(default=None, init=False, repr=False)

    def previous(self) -> TLSPolicy | None:
        """Return the policy produced by the last successful :meth:`update`."""
        return self._previous

    def update(self) -> TLSPolicy:
        """Validate inputs, load credentials and return a fresh policy."""
        enabled = self.enabled.get_or(False)
        skip_verify = self.skip_verify.get_or(False)

        if not enabled:
            policy = TLSPolicy.disabled(server_name=self.server_name, skip_verify=skip_verify)
            self._previous = policy
            LOGGER.debug("TLS disabled.")
            return policy

        if self.certificate.is_none() or self.private_key.is_none():
            raise IncompleteTLSConfigError("TLS was enabled, but cert or key file was not set.")
        if self.server_name.is_none() and not skip_verify:
            raise IncompleteTLSConfigError(
                "Cannot build a TLS config with enabled=true, skip_verify=false "
                "and no server name."
            )

        pair = self.private_key.read_certificate(self.certificate)
        policy = TLSPolicy(
            enabled=True,
            server_name=self.server_name,
            skip_verify=skip_verify,
            certificate_pair=pair,
        )
        self._previous = policy
        LOGGER.debug(
            "TLS enabled with %s key from %s.",
            pair.private_key.kind.value,
            pair.certificate_path,
        )
        return policy


__all__ = [
    "CIPHER_SUITES",
    "CURVE_PREFERENCES",
    "MIN_TLS_VERSION",
    "TLSConfigLoader",
    "TLSPolicy",
]
