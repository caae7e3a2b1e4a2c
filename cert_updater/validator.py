"""
Local certificate validation.

Every check here runs before any network call, so a certificate that is
malformed, issued for another host, about to expire, or not matching its
private key is never uploaded.
"""

import ipaddress
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization

from .bundle import LocalCertificateBundle
from .helpers import normalize_domain
from .logger import get_logger


DEFAULT_RENEWAL_WINDOW = timedelta(days=30)

# First PEM block of any type; the END label must match the BEGIN label
PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n(.*?)-----END \1-----",
    re.DOTALL,
)


class ValidationError(Exception):
    """Raised when the local certificate fails validation."""
    pass


class PEMDecodeError(ValidationError):
    """Raised when the fullchain holds no parseable certificate."""
    pass


class HostnameMismatchError(ValidationError):
    """Raised when the certificate is not valid for the domain."""
    pass


class ExpiredOrExpiringError(ValidationError):
    """Raised when the certificate expires inside the renewal window."""
    pass


class KeyMismatchError(ValidationError):
    """Raised when the private key does not belong to the certificate."""
    pass


@dataclass(frozen=True)
class ParsedCertificate:
    """Read-only view over the leaf certificate of the fullchain."""
    hostnames: Tuple[str, ...]
    ip_addresses: Tuple[str, ...]
    common_name: Optional[str]
    not_before: datetime
    not_after: datetime


def _first_certificate(fullchain_pem: bytes) -> x509.Certificate:
    match = PEM_BLOCK_RE.search(fullchain_pem)
    if match is None:
        raise PEMDecodeError("Failed to decode fullchain: no PEM block found")

    block_type = match.group(1).decode("ascii")
    if block_type != "CERTIFICATE":
        raise PEMDecodeError(
            f"Failed to parse certificate: first PEM block is {block_type}"
        )

    try:
        return x509.load_pem_x509_certificate(match.group(0), default_backend())
    except ValueError as e:
        raise PEMDecodeError(f"Failed to parse certificate: {e}")


def decode_certificate(fullchain_pem: bytes) -> ParsedCertificate:
    """
    Parse the leaf certificate out of a fullchain PEM.

    Args:
        fullchain_pem: Leaf certificate followed by its intermediates

    Returns:
        ParsedCertificate for the leaf

    Raises:
        PEMDecodeError: If no PEM block is found or it is not an X.509 certificate
    """
    cert = _first_certificate(fullchain_pem)

    common_name = None
    for attribute in cert.subject.get_attributes_for_oid(x509.oid.NameOID.COMMON_NAME):
        common_name = attribute.value
        break

    hostnames: Tuple[str, ...] = ()
    ip_addresses: Tuple[str, ...] = ()
    try:
        san_ext = cert.extensions.get_extension_for_oid(
            x509.oid.ExtensionOID.SUBJECT_ALTERNATIVE_NAME
        )
        hostnames = tuple(san_ext.value.get_values_for_type(x509.DNSName))
        ip_addresses = tuple(
            str(ip) for ip in san_ext.value.get_values_for_type(x509.IPAddress)
        )
    except x509.ExtensionNotFound:
        # Legacy certificates without SANs are matched on the subject CN
        if common_name:
            hostnames = (common_name,)

    return ParsedCertificate(
        hostnames=hostnames,
        ip_addresses=ip_addresses,
        common_name=common_name,
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
    )


def _matches_pattern(pattern: str, host: str) -> bool:
    """
    Match a host against a certificate name.

    A wildcard is only honoured as the whole leftmost label and covers
    exactly one label: ``*.example.org`` matches ``www.example.org`` but
    not ``example.org`` or ``a.b.example.org``.
    """
    pattern = normalize_domain(pattern)
    if not pattern:
        return False

    if pattern.startswith("*."):
        host_labels = host.split(".")
        pattern_labels = pattern.split(".")
        if len(host_labels) != len(pattern_labels) or not host_labels[0]:
            return False
        return host_labels[1:] == pattern_labels[1:]

    return pattern == host


def verify_hostname(parsed: ParsedCertificate, domain: str) -> None:
    """
    Check that the certificate is valid for the domain.

    Names come from the SAN extension. Only a certificate with no SAN
    extension at all is matched on its subject CN. Current TLS clients
    and browsers no longer accept the CN, so such a certificate passes
    here but may still be rejected when served.

    Raises:
        HostnameMismatchError: If no SAN (or legacy CN) matches the domain
    """
    host = normalize_domain(domain)
    if not host:
        raise HostnameMismatchError("Empty domain name given")

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = None

    if ip is not None:
        if any(ipaddress.ip_address(candidate) == ip for candidate in parsed.ip_addresses):
            return
    elif any(_matches_pattern(name, host) for name in parsed.hostnames):
        return

    names = ", ".join(parsed.hostnames + parsed.ip_addresses) or "none"
    raise HostnameMismatchError(
        f"Certificate is not valid for {domain} (valid for: {names})"
    )


def verify_not_expiring_soon(
    parsed: ParsedCertificate,
    now: Optional[datetime] = None,
    renewal_window: timedelta = DEFAULT_RENEWAL_WINDOW,
) -> None:
    """
    Check that the certificate outlives the renewal window.

    Args:
        parsed: Parsed leaf certificate
        now: Reference time (defaults to the current UTC time)
        renewal_window: Look-ahead interval

    Raises:
        ExpiredOrExpiringError: If now + renewal_window is after notAfter
    """
    if now is None:
        now = datetime.now(timezone.utc)

    if now + renewal_window > parsed.not_after:
        raise ExpiredOrExpiringError(
            f"Certificate has expired or expires within {renewal_window.days} days "
            f"(notAfter {parsed.not_after.isoformat()})"
        )


def verify_key_pairing(fullchain_pem: bytes, privkey_pem: bytes) -> None:
    """
    Check that the private key belongs to the leaf certificate.

    The key is loaded and its public half compared with the certificate's
    SubjectPublicKeyInfo.

    Raises:
        KeyMismatchError: If the key cannot be loaded or does not match
    """
    cert = _first_certificate(fullchain_pem)

    try:
        private_key = serialization.load_pem_private_key(
            privkey_pem, password=None, backend=default_backend()
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyMismatchError(f"Cannot load private key: {e}")

    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    der = serialization.Encoding.DER
    key_public = private_key.public_key().public_bytes(der, spki)
    cert_public = cert.public_key().public_bytes(der, spki)

    if key_public != cert_public:
        raise KeyMismatchError("Private key does not match the certificate public key")


def validate_bundle(
    bundle: LocalCertificateBundle,
    now: Optional[datetime] = None,
    renewal_window: timedelta = DEFAULT_RENEWAL_WINDOW,
) -> ParsedCertificate:
    """
    Run all local checks in order, stopping at the first failure.

    Args:
        bundle: Loaded certificate artifacts
        now: Reference time (defaults to the current UTC time)
        renewal_window: Look-ahead interval for the expiry check

    Returns:
        ParsedCertificate for the leaf

    Raises:
        ValidationError: The first check that failed
    """
    logger = get_logger()

    parsed = decode_certificate(bundle.fullchain)
    verify_hostname(parsed, bundle.domain)
    verify_not_expiring_soon(parsed, now=now, renewal_window=renewal_window)
    verify_key_pairing(bundle.fullchain, bundle.privkey)

    logger.debug(
        f"Local certificate {parsed.common_name or '(no CN)'} valid for "
        f"{', '.join(parsed.hostnames)} from {parsed.not_before.isoformat()} "
        f"until {parsed.not_after.isoformat()}"
    )
    return parsed
