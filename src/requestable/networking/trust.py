"""Server trust evaluation by public-key pinning.

The evaluator compares the SubjectPublicKeyInfo of the certificates a
server presents with those of a set of pinned certificates; one match is
enough to trust the connection.
"""

from __future__ import annotations

import enum
import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol, Sequence

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from requests.adapters import HTTPAdapter
from urllib3 import PoolManager
from urllib3.connection import HTTPSConnection
from urllib3.connectionpool import HTTPSConnectionPool

from .errors import (
    CertificateNotFoundError,
    CertificatesDoNotMatchError,
    TrustEvaluationError,
)

logger = logging.getLogger(__name__)

CERTIFICATE_EXTENSIONS = frozenset({".cer", ".crt", ".der", ".pem"})


class ChallengeDisposition(enum.Enum):
    USE_CREDENTIAL = "use_credential"
    CANCEL = "cancel"


@dataclass(frozen=True)
class TrustChallenge:
    """Certificates presented by ``host``, leaf first, DER encoded."""

    host: str
    certificates: tuple[bytes, ...] = ()


@dataclass(frozen=True)
class TrustCredential:
    host: str
    certificate: bytes


class TrustEvaluator(Protocol):
    def evaluate(
        self, challenge: TrustChallenge, certificates: Iterable[bytes]
    ) -> tuple[ChallengeDisposition, TrustCredential | None]: ...


def load_certificate(data: bytes) -> x509.Certificate:
    if data.lstrip().startswith(b"-----BEGIN"):
        return x509.load_pem_x509_certificate(data)
    return x509.load_der_x509_certificate(data)


def public_key_bytes(certificate: bytes) -> bytes | None:
    """Return the DER SubjectPublicKeyInfo of ``certificate``, or ``None``."""
    try:
        parsed = load_certificate(certificate)
    except ValueError:
        logger.debug("Skipping unparsable certificate")
        return None
    return parsed.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_certificates(directory: str | Path) -> list[bytes]:
    """Read every certificate file in ``directory`` as DER bytes.

    Files that cannot be parsed are skipped.
    """
    certificates: list[bytes] = []
    for path in sorted(Path(directory).iterdir()):
        if not path.is_file() or path.suffix.lower() not in CERTIFICATE_EXTENSIONS:
            continue
        try:
            parsed = load_certificate(path.read_bytes())
        except (OSError, ValueError) as exc:
            logger.warning("Unable to load certificate %s: %s", path, exc)
            continue
        certificates.append(parsed.public_bytes(serialization.Encoding.DER))
    return certificates


class ServerTrustEvaluator:
    """Pin server public keys against ``certificates``.

    With ``pinning_enabled`` false every challenge that carries a
    certificate is accepted.
    """

    def __init__(
        self, certificates: Iterable[bytes] = (), pinning_enabled: bool = True
    ) -> None:
        self.certificates = tuple(certificates)
        self.pinning_enabled = pinning_enabled

    def evaluate_trust(
        self, presented: Sequence[bytes], certificates: Iterable[bytes]
    ) -> None:
        if not presented:
            raise CertificateNotFoundError("server presented no certificate")
        pinned = {key for key in map(public_key_bytes, certificates) if key}
        offered = {key for key in map(public_key_bytes, presented) if key}
        if pinned.isdisjoint(offered):
            raise CertificatesDoNotMatchError(
                "no server public key matches a pinned certificate"
            )

    def accept(
        self, challenge: TrustChallenge
    ) -> tuple[ChallengeDisposition, TrustCredential | None]:
        if not challenge.certificates:
            return ChallengeDisposition.CANCEL, None
        return ChallengeDisposition.USE_CREDENTIAL, TrustCredential(
            challenge.host, challenge.certificates[0]
        )

    def evaluate(
        self,
        challenge: TrustChallenge,
        certificates: Iterable[bytes] | None = None,
    ) -> tuple[ChallengeDisposition, TrustCredential | None]:
        if not self.pinning_enabled:
            return self.accept(challenge)
        pinned = self.certificates if certificates is None else tuple(certificates)
        try:
            self.evaluate_trust(challenge.certificates, pinned)
        except TrustEvaluationError as exc:
            logger.warning("Rejecting %s: %s", challenge.host, exc)
            return ChallengeDisposition.CANCEL, None
        return self.accept(challenge)


def peer_certificates(sock: Any) -> tuple[bytes, ...]:
    """Return the DER chain presented on a TLS socket, leaf first."""
    if sock is None:
        return ()
    get_chain = getattr(sock, "get_unverified_chain", None)
    if get_chain is not None:
        chain = get_chain()
        if chain:
            return tuple(bytes(cert) for cert in chain)
    getpeercert = getattr(sock, "getpeercert", None)
    if getpeercert is None:
        return ()
    leaf = getpeercert(binary_form=True)
    return (leaf,) if leaf else ()


TrustCheck = Callable[[str, Any], None]


class PinnedHTTPSConnection(HTTPSConnection):
    """HTTPS connection that runs ``trust_check`` once the handshake is done.

    The check sees the socket before any request bytes are written; a
    rejection closes the connection.
    """

    trust_check: TrustCheck | None = None

    def connect(self) -> None:
        super().connect()
        if self.trust_check is None:
            return
        try:
            self.trust_check(self.host, self.sock)
        except TrustEvaluationError:
            self.close()
            raise


class PinnedHTTPSConnectionPool(HTTPSConnectionPool):
    ConnectionCls = PinnedHTTPSConnection

    def __init__(
        self, host: str, port: int | None = None, *, trust_check: TrustCheck, **kwargs: Any
    ) -> None:
        super().__init__(host, port, **kwargs)
        self.trust_check = trust_check

    def _new_conn(self):  # type: ignore[no-untyped-def]
        conn = super()._new_conn()
        conn.trust_check = self.trust_check
        return conn


class TrustEvaluatingAdapter(HTTPAdapter):
    """HTTPAdapter running a :class:`TrustEvaluator` on new HTTPS connections.

    Pinning happens right after the TLS handshake, so a rejected server
    never receives the request line, headers or body. The rejection
    surfaces as :class:`TrustEvaluationError`.
    """

    def __init__(
        self,
        evaluator: TrustEvaluator,
        certificates: Iterable[bytes] | None = None,
        **kwargs: Any,
    ) -> None:
        # init_poolmanager runs inside HTTPAdapter.__init__
        self.evaluator = evaluator
        self.certificates = None if certificates is None else tuple(certificates)
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        self._pin(self.poolmanager)

    def proxy_manager_for(self, proxy, **proxy_kwargs):  # type: ignore[no-untyped-def]
        manager = super().proxy_manager_for(proxy, **proxy_kwargs)
        self._pin(manager)
        return manager

    def _pin(self, manager: PoolManager) -> None:
        https_pool = manager.pool_classes_by_scheme.get("https")
        if isinstance(https_pool, functools.partial):
            return
        if https_pool is not HTTPSConnectionPool:
            raise TrustEvaluationError(
                f"cannot pin connections made by {https_pool!r}"
            )
        manager.pool_classes_by_scheme = {
            **manager.pool_classes_by_scheme,
            "https": functools.partial(
                PinnedHTTPSConnectionPool, trust_check=self.check_trust
            ),
        }

    def check_trust(self, host: str, sock: Any) -> None:
        challenge = TrustChallenge(host=host, certificates=peer_certificates(sock))
        disposition, _ = self.evaluator.evaluate(
            challenge, self.certificates  # type: ignore[arg-type]
        )
        if disposition is not ChallengeDisposition.USE_CREDENTIAL:
            raise TrustEvaluationError(f"server trust rejected for {host}")
