"""
Keep a CDN's TLS certificate for a domain in sync with the local one.

This package contains:
- logger: Centralized logging setup
- config_loader: Renewal configuration and YAML settings
- bundle: Local certificate artifact loading
- validator: Local certificate checks
- remote: Platform interface and inventory records
- fastly: Fastly TLS API client
- inventory: Paginated inventory search
- helpers: Rotation decision and expiry helpers
- rotation: Remote certificate rotation
- updater: Run driver
"""

from .logger import setup_logger, get_logger
from .config_loader import (
    load_certificate_paths,
    load_settings,
    resolve_api_token,
    CertificatePaths,
    Config,
    ConfigurationError,
)
from .bundle import (
    load_bundle,
    LocalCertificateBundle,
    BundleError,
    ArtifactReadError,
    EmptyArtifactError,
    InvalidArtifactError,
)
from .validator import (
    decode_certificate,
    verify_hostname,
    verify_not_expiring_soon,
    verify_key_pairing,
    validate_bundle,
    ParsedCertificate,
    ValidationError,
    PEMDecodeError,
    HostnameMismatchError,
    ExpiredOrExpiringError,
    KeyMismatchError,
)
from .remote import (
    CertificatePlatform,
    RemoteCertificateRecord,
    InventoryPage,
    CreateCertificateResponse,
    PlatformError,
    AuthenticationError,
    TransportError,
    UploadError,
)
from .fastly import FastlyClient
from .inventory import iter_inventory_pages, find_certificate_record, scan_inventory
from .helpers import (
    decide,
    is_expiring_soon,
    normalize_domain,
    RotationAction,
    RotationDecision,
)
from .rotation import execute_rotation, RotationResult, RotationStatus
from .updater import run_update, RunState, RunSummary

__all__ = [
    # Logger
    "setup_logger",
    "get_logger",
    # Config
    "load_certificate_paths",
    "load_settings",
    "resolve_api_token",
    "CertificatePaths",
    "Config",
    "ConfigurationError",
    # Bundle
    "load_bundle",
    "LocalCertificateBundle",
    "BundleError",
    "ArtifactReadError",
    "EmptyArtifactError",
    "InvalidArtifactError",
    # Validator
    "decode_certificate",
    "verify_hostname",
    "verify_not_expiring_soon",
    "verify_key_pairing",
    "validate_bundle",
    "ParsedCertificate",
    "ValidationError",
    "PEMDecodeError",
    "HostnameMismatchError",
    "ExpiredOrExpiringError",
    "KeyMismatchError",
    # Platform
    "CertificatePlatform",
    "RemoteCertificateRecord",
    "InventoryPage",
    "CreateCertificateResponse",
    "PlatformError",
    "AuthenticationError",
    "TransportError",
    "UploadError",
    "FastlyClient",
    # Inventory
    "iter_inventory_pages",
    "find_certificate_record",
    "scan_inventory",
    # Decision
    "decide",
    "is_expiring_soon",
    "normalize_domain",
    "RotationAction",
    "RotationDecision",
    # Rotation
    "execute_rotation",
    "RotationResult",
    "RotationStatus",
    # Run
    "run_update",
    "RunState",
    "RunSummary",
]
