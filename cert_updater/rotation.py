"""
Certificate rotation on the remote platform.

Order of operations:
1. Upload the private key (failure aborts the rotation)
2. Upload the certificate with its intermediates (only 201 Created counts)
3. When replacing, delete the previous certificate (failure is logged only)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .bundle import LocalCertificateBundle
from .helpers import RotationAction, RotationDecision
from .logger import get_logger
from .remote import CertificatePlatform, PlatformError, UploadError


HTTP_CREATED = 201


class RotationStatus(Enum):
    """Result of a completed rotation."""
    ROTATED = "rotated"
    ROTATED_WITH_ORPHAN = "rotated_with_orphan"


@dataclass
class RotationResult:
    """What a rotation changed on the platform."""
    status: RotationStatus
    private_key_id: Optional[str] = None
    certificate_id: Optional[str] = None
    deleted_id: Optional[str] = None
    orphaned_id: Optional[str] = None
    delete_error: Optional[str] = None


def execute_rotation(
    platform: CertificatePlatform,
    bundle: LocalCertificateBundle,
    decision: RotationDecision,
) -> RotationResult:
    """
    Upload the local key and certificate and retire the previous record.

    Args:
        platform: Platform to mutate
        bundle: Validated local certificate artifacts
        decision: CreateFresh or Replace decision

    Returns:
        RotationResult describing the new and deleted resources

    Raises:
        ValueError: If called with a NoOp decision
        UploadError: If the key or certificate upload fails
    """
    logger = get_logger()

    if not decision.needs_rotation:
        raise ValueError("execute_rotation called with a NoOp decision")

    domain = bundle.domain

    logger.info("Uploading private key.")
    try:
        private_key_id = platform.create_private_key(domain, bundle.privkey)
    except UploadError:
        raise
    except PlatformError as e:
        raise UploadError(f"Problem uploading private key. {e}")

    logger.info("Uploading fullchain.")
    try:
        response = platform.create_certificate(domain, bundle.cert, bundle.chain)
    except PlatformError as e:
        raise UploadError(f"Problem uploading certificate. {e}")

    # Strict contract: other 2xx codes are not accepted
    if response.status_code != HTTP_CREATED:
        raise UploadError(
            f"Problem uploading certificate. Status: {response.reason or response.status_code}"
        )

    logger.success(f"Uploaded certificate for {domain}")

    result = RotationResult(
        status=RotationStatus.ROTATED,
        private_key_id=private_key_id or None,
        certificate_id=response.certificate_id,
    )

    if decision.action is RotationAction.REPLACE:
        old_id = decision.existing_id
        logger.info("Deleting old cert.")
        try:
            platform.delete_certificate(old_id)
        except PlatformError as e:
            logger.error(f"Problem deleting old certificate {old_id}. {e}")
            result.status = RotationStatus.ROTATED_WITH_ORPHAN
            result.orphaned_id = old_id
            result.delete_error = str(e)
        else:
            result.deleted_id = old_id

    logger.info("Successfully updated certificate!")
    return result
