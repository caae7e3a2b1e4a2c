"""
Local certificate bundle loading.

Reads the four PEM artifacts certbot leaves for a domain and checks that
none of them is empty or anything but ASCII PEM text. Either all four are
returned or an error is raised.
"""

from dataclasses import dataclass
from pathlib import Path

from .config_loader import CertificatePaths
from .logger import get_logger


class BundleError(Exception):
    """Raised when the local certificate artifacts cannot be used."""
    pass


class ArtifactReadError(BundleError):
    """Raised when an artifact path cannot be read."""
    pass


class EmptyArtifactError(BundleError):
    """Raised when an artifact file has no content."""
    pass


class InvalidArtifactError(BundleError):
    """Raised when an artifact is not ASCII PEM text."""
    pass


@dataclass(frozen=True)
class LocalCertificateBundle:
    """
    PEM material for one domain, as issued by the renewal tool.

    ``cert`` + ``chain`` is what gets uploaded; ``fullchain`` is what gets
    parsed and verified locally.
    """
    domain: str
    cert: bytes
    chain: bytes
    fullchain: bytes
    privkey: bytes

    def __repr__(self) -> str:
        return (
            f"LocalCertificateBundle(domain={self.domain!r}, cert={len(self.cert)}B, "
            f"chain={len(self.chain)}B, fullchain={len(self.fullchain)}B, privkey=<redacted>)"
        )


PEM_BEGIN_MARKER = b"-----BEGIN "


def _read_artifact(label: str, path: str, pem_required: bool = False) -> bytes:
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ArtifactReadError(f"Cannot read {label} file {path}: {e}")

    if not data.strip():
        raise EmptyArtifactError(f"Empty {label} file: {path}")

    # The API takes the PEM text verbatim
    try:
        data.decode("ascii")
    except UnicodeDecodeError:
        raise InvalidArtifactError(f"{label} file is not ASCII PEM text: {path}")

    if pem_required and PEM_BEGIN_MARKER not in data:
        raise InvalidArtifactError(f"No PEM block in {label} file: {path}")

    return data


def load_bundle(domain: str, paths: CertificatePaths) -> LocalCertificateBundle:
    """
    Read the four PEM artifacts for a domain.

    Args:
        domain: Domain the certificate was issued for
        paths: Artifact locations from the renewal configuration

    Returns:
        LocalCertificateBundle with all four buffers populated

    Raises:
        ArtifactReadError: If any path is unreadable
        EmptyArtifactError: If any artifact is empty
        InvalidArtifactError: If any artifact is not ASCII, or cert or chain
            holds no PEM block
    """
    logger = get_logger()

    bundle = LocalCertificateBundle(
        domain=domain,
        cert=_read_artifact("cert", paths.cert, pem_required=True),
        chain=_read_artifact("chain", paths.chain, pem_required=True),
        fullchain=_read_artifact("fullchain", paths.fullchain),
        privkey=_read_artifact("privkey", paths.privkey),
    )

    logger.debug(f"Loaded {bundle!r}")
    return bundle
