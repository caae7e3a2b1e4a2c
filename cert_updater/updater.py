"""
Run driver for one domain.

Loads and validates the local certificate, finds the domain's certificate
on the platform, decides whether to rotate, and rotates if needed. Stage
errors end the run in the ABORTED state with a non-zero exit code; the
caller decides what to do with it.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .bundle import BundleError, load_bundle
from .config_loader import ConfigurationError, load_certificate_paths
from .helpers import RotationAction, decide, format_expiration_status, normalize_domain
from .inventory import scan_inventory
from .logger import get_logger
from .remote import CertificatePlatform, PlatformError
from .rotation import RotationStatus, execute_rotation
from .validator import DEFAULT_RENEWAL_WINDOW, ValidationError, validate_bundle


EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


class RunState(Enum):
    """Where a run got to."""
    START = "start"
    LOADED = "loaded"
    VALIDATED = "validated"
    SCANNED = "scanned"
    DECIDED = "decided"
    IDLE = "idle"
    ROTATED = "rotated"
    ROTATED_WITH_ORPHAN = "rotated_with_orphan"
    ABORTED = "aborted"


@dataclass
class RunSummary:
    """Complete record of one run."""
    domain: str
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    completed_at: Optional[str] = None
    dry_run: bool = False
    state: RunState = RunState.START
    decision: Optional[str] = None
    local_not_before: Optional[datetime] = None
    local_not_after: Optional[datetime] = None
    existing_id: Optional[str] = None
    existing_not_after: Optional[datetime] = None
    existing_name: Optional[str] = None
    private_key_id: Optional[str] = None
    certificate_id: Optional[str] = None
    deleted_id: Optional[str] = None
    orphaned_id: Optional[str] = None
    delete_error: Optional[str] = None
    error: Optional[str] = None
    exit_code: int = EXIT_SUCCESS

    @property
    def success(self) -> bool:
        return self.exit_code == EXIT_SUCCESS

    def abort(self, message: str, exit_code: int = EXIT_FAILURE) -> None:
        """Mark the run as aborted."""
        self.state = RunState.ABORTED
        self.error = message
        self.exit_code = exit_code

    def finalize(self) -> None:
        """Mark execution as complete."""
        self.completed_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "domain": self.domain,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "dry_run": self.dry_run,
            "success": self.success,
            "state": self.state.value.upper(),
            "decision": self.decision,
            "local_not_before": iso(self.local_not_before),
            "local_not_after": iso(self.local_not_after),
            "existing_certificate": {
                "id": self.existing_id,
                "name": self.existing_name,
                "not_after": iso(self.existing_not_after),
            } if self.existing_id else None,
            "new_private_key_id": self.private_key_id,
            "new_certificate_id": self.certificate_id,
            "deleted_certificate_id": self.deleted_id,
            "orphaned_certificate_id": self.orphaned_id,
            "delete_error": self.delete_error,
            "error": self.error,
            "exit_code": self.exit_code,
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


def run_update(
    domain: str,
    renewal_conf_path: str,
    platform_factory: Callable[[], CertificatePlatform],
    renewal_window: timedelta = DEFAULT_RENEWAL_WINDOW,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> RunSummary:
    """
    Synchronize the platform's certificate for a domain with the local one.

    The platform is only created once the local certificate has passed
    validation, so a bad local certificate never causes a request.

    Args:
        domain: Domain to synchronize; normalized once and used for
            validation, the inventory search and the upload names
        renewal_conf_path: certbot renewal configuration for the domain
        platform_factory: Callable returning the platform client
        renewal_window: Look-ahead interval for both expiry checks
        dry_run: If True, stop after the decision
        now: Reference time (defaults to the current UTC time)

    Returns:
        RunSummary with the final state and exit code
    """
    logger = get_logger()
    domain = normalize_domain(domain)
    summary = RunSummary(domain=domain, dry_run=dry_run)

    if now is None:
        now = datetime.now(timezone.utc)

    try:
        logger.step("Retrieving local certificate.")
        paths = load_certificate_paths(renewal_conf_path)
        bundle = load_bundle(domain, paths)
        summary.state = RunState.LOADED

        logger.step("Validating local certificate.")
        parsed = validate_bundle(bundle, now=now, renewal_window=renewal_window)
        summary.local_not_before = parsed.not_before
        summary.local_not_after = parsed.not_after
        summary.state = RunState.VALIDATED
        logger.info(
            f"Local certificate: {format_expiration_status(parsed.not_after, renewal_window, now=now)}"
        )

        logger.step("Creating Fastly client.")
        platform = platform_factory()

        logger.step("Retrieving Fastly certificate.")
        record = scan_inventory(platform, domain)
        summary.state = RunState.SCANNED
        if record is not None:
            summary.existing_id = record.id
            summary.existing_not_after = record.not_after
            summary.existing_name = record.name
            label = f"{record.id} ({record.name})" if record.name else record.id
            logger.info(
                f"Found certificate {label} for {domain}: "
                f"{format_expiration_status(record.not_after, renewal_window, now=now)}"
            )

        decision = decide(
            now,
            renewal_window,
            record.id if record else None,
            record.not_after if record else None,
        )
        summary.decision = str(decision)
        summary.state = RunState.DECIDED

        if decision.action is RotationAction.NO_OP:
            logger.info(
                f"Old certificate does not expire in {renewal_window.days} days. Nothing changed."
            )
            summary.state = RunState.IDLE
            return summary

        if decision.action is RotationAction.CREATE_FRESH:
            logger.info("No certificate is available. Uploading local cert.")
        else:
            logger.info("Certificate is old. Uploading local cert.")

        if dry_run:
            logger.warning(f"DRY RUN - would rotate certificate: {decision}")
            return summary

        result = execute_rotation(platform, bundle, decision)
        summary.private_key_id = result.private_key_id
        summary.certificate_id = result.certificate_id
        summary.deleted_id = result.deleted_id
        if result.status is RotationStatus.ROTATED_WITH_ORPHAN:
            summary.orphaned_id = result.orphaned_id
            summary.delete_error = result.delete_error
            summary.state = RunState.ROTATED_WITH_ORPHAN
        else:
            summary.state = RunState.ROTATED

    except ConfigurationError as e:
        logger.abort(f"Configuration error: {e}")
        summary.abort(str(e), EXIT_CONFIG_ERROR)
    except BundleError as e:
        logger.abort(f"Local certificate error: {e}")
        summary.abort(str(e))
    except ValidationError as e:
        logger.abort(f"Local certificate invalid: {e}")
        summary.abort(str(e))
    except PlatformError as e:
        logger.abort(f"Fastly error: {e}")
        summary.abort(str(e))

    return summary
