"""
Remote certificate platform interface.

The run only needs four operations from the CDN: list the certificate
inventory one page at a time, upload a private key, upload a certificate,
and delete a certificate. FastlyClient implements them over HTTP; tests
use an in-memory implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, List, Optional

from .helpers import normalize_domain


class PlatformError(Exception):
    """Raised when a call to the certificate platform fails."""
    pass


class AuthenticationError(PlatformError):
    """Raised when the platform rejects the API credentials."""
    pass


class TransportError(PlatformError):
    """Raised on network failures or undecodable responses."""
    pass


class UploadError(PlatformError):
    """Raised when the platform does not accept a new key or certificate."""
    pass


@dataclass(frozen=True)
class RemoteCertificateRecord:
    """One certificate from the platform inventory."""
    id: str
    domains: FrozenSet[str]
    not_after: Optional[datetime]
    name: Optional[str] = None

    def covers(self, domain: str) -> bool:
        """Check whether this record is associated with the domain."""
        return normalize_domain(domain) in {normalize_domain(d) for d in self.domains}


@dataclass
class InventoryPage:
    """One page of the certificate inventory."""
    records: List[RemoteCertificateRecord] = field(default_factory=list)
    next_page_url: Optional[str] = None

    @property
    def is_last(self) -> bool:
        return not self.next_page_url


@dataclass(frozen=True)
class CreateCertificateResponse:
    """Outcome of a certificate upload request."""
    status_code: int
    reason: str = ""
    certificate_id: Optional[str] = None


class CertificatePlatform(ABC):
    """Capabilities the updater needs from a certificate platform."""

    #: URL of the first inventory page
    inventory_url: str = "/tls/certificates"

    @abstractmethod
    def list_certificates(self, page_url: str) -> InventoryPage:
        """
        Fetch one page of the certificate inventory.

        Raises:
            AuthenticationError: If the credentials are rejected
            TransportError: On network or decoding failure
        """
        pass

    @abstractmethod
    def create_private_key(self, name: str, key_pem: bytes) -> str:
        """
        Upload a private key.

        Returns:
            Id of the new key resource

        Raises:
            PlatformError: If the key was not created
        """
        pass

    @abstractmethod
    def create_certificate(
        self,
        name: str,
        cert_blob: bytes,
        intermediates_blob: bytes,
    ) -> CreateCertificateResponse:
        """
        Upload a certificate and its intermediates.

        The HTTP status is returned rather than judged here; the caller
        decides what counts as success.

        Raises:
            TransportError: If no response was received
        """
        pass

    @abstractmethod
    def delete_certificate(self, certificate_id: str) -> None:
        """
        Delete a certificate.

        Raises:
            PlatformError: If the certificate was not deleted
        """
        pass
