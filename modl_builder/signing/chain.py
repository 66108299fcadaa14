"""Certificate chain loading (.p7b DER/PEM or PEM bundle), leaf-first ordering, PEM export."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from ..core.errors import ArchiveIOError, ConfigurationError

logger = logging.getLogger(__name__)

_PEM_PKCS7 = b"-----BEGIN PKCS7-----"
_PEM_CERT = b"-----BEGIN CERTIFICATE-----"


def parse_certificate_chain(data: bytes) -> List[x509.Certificate]:
    """Parse chain bytes in stored order. Raises ConfigurationError when nothing parses."""
    try:
        if _PEM_PKCS7 in data:
            certs = pkcs7.load_pem_pkcs7_certificates(data)
        elif _PEM_CERT in data:
            certs = x509.load_pem_x509_certificates(data)
        else:
            try:
                certs = pkcs7.load_der_pkcs7_certificates(data)
            except ValueError:
                certs = [x509.load_der_x509_certificate(data)]
    except ValueError as exc:
        raise ConfigurationError(f"Certificate chain could not be parsed: {exc}") from exc
    if not certs:
        raise ConfigurationError("Certificate chain is empty")
    return list(certs)


def order_leaf_first(certs: Sequence[x509.Certificate]) -> List[x509.Certificate]:
    """
    Walk issuer links from the one certificate that issues nothing else.
    Ambiguous or broken chains keep the supplied order.
    """
    certs = list(certs)
    if len(certs) < 2:
        return certs
    issuers = {c.issuer for c in certs if c.issuer != c.subject}
    leaves = [c for c in certs if c.subject not in issuers]
    if len(leaves) != 1:
        return certs
    by_subject = {c.subject: c for c in certs}
    ordered = [leaves[0]]
    while len(ordered) < len(certs):
        cur = ordered[-1]
        nxt = by_subject.get(cur.issuer)
        if nxt is None or nxt in ordered:
            break
        ordered.append(nxt)
    if len(ordered) != len(certs):
        return certs
    return ordered


def load_certificate_chain(path: str | Path) -> List[x509.Certificate]:
    """Read and order the chain file. Missing file is an I/O error."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read certificate chain {path}: {exc}", path) from exc
    chain = order_leaf_first(parse_certificate_chain(data))
    logger.info("Loaded certificate chain %s (%d certificates)", path, len(chain))
    return chain


def chain_to_pem(chain: Sequence[x509.Certificate]) -> bytes:
    return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in chain)


__all__ = ["chain_to_pem", "load_certificate_chain", "order_leaf_first", "parse_certificate_chain"]
