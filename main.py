#!/usr/bin/env python3
"""
Fastly Certificate Updater - Main Entry Point.

Updates the Fastly TLS certificate for a domain with the local certificate
issued by certbot. The remote certificate is replaced only when it is
missing or expires within the renewal window.

Usage:
    # Update the certificate for a domain
    python main.py /etc/letsencrypt/renewal/example.org.conf example.org <fastly-api-token>

    # Token from the environment, settings from YAML
    FASTLY_API_TOKEN=... python main.py --settings settings.yaml \\
        /etc/letsencrypt/renewal/example.org.conf example.org

    # Dry run (no changes on Fastly)
    python main.py --dry-run /etc/letsencrypt/renewal/example.org.conf example.org
"""

import argparse
import sys
import traceback
from datetime import timedelta
from typing import List, Optional

from cert_updater.logger import setup_logger, get_logger
from cert_updater.config_loader import (
    ConfigurationError,
    load_settings,
    resolve_api_token,
    validate_renewal_window,
)
from cert_updater.fastly import FastlyClient
from cert_updater.updater import (
    EXIT_CONFIG_ERROR,
    EXIT_FAILURE,
    RunState,
    RunSummary,
    run_update,
)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description=(
            "Update the Fastly certificate for a domain with the local certificate."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Arguments:
  config-path       Path to the certbot renewal config file
                    (/etc/letsencrypt/renewal/example.org.conf)
  domain-name       Domain name of the certificate (example.org)
  fastly-api-token  Fastly API token (falls back to the settings file,
                    then the FASTLY_API_TOKEN environment variable)

Examples:
  %(prog)s /etc/letsencrypt/renewal/example.org.conf example.org TOKEN
  %(prog)s --dry-run --verbose /etc/letsencrypt/renewal/example.org.conf example.org
        """,
    )

    parser.add_argument(
        "config_path",
        metavar="config-path",
        help="Path to the certbot renewal config file",
    )
    parser.add_argument(
        "domain_name",
        metavar="domain-name",
        help="Domain name of the certificate",
    )
    parser.add_argument(
        "api_token",
        metavar="fastly-api-token",
        nargs="?",
        default=None,
        help="Fastly API token",
    )

    parser.add_argument(
        "--settings",
        type=str,
        default=None,
        help="Path to a YAML settings file",
    )
    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="Override the Fastly API base URL",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        help="Override the renewal window (days, default: 30)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Test mode: decide but don't change anything on Fastly",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write the log to this file",
    )
    parser.add_argument(
        "--json-summary",
        action="store_true",
        help="Output machine-readable JSON summary at the end of execution",
    )

    args = parser.parse_args(argv)

    if not args.domain_name.strip():
        parser.error("domain-name must not be empty")

    return args


def print_run_summary(summary: RunSummary, output_json: bool = False) -> None:
    """
    Print the summary block at the end of a run.

    Args:
        summary: RunSummary for the run
        output_json: If True, also output machine-readable JSON
    """
    logger = get_logger()
    separator = "=" * 70

    status_str = "SUCCESS" if summary.success else "FAILED"
    if summary.dry_run:
        status_str += " (DRY RUN)"

    logger.info("")
    logger.info(separator)
    logger.info("RUN SUMMARY")
    logger.info(separator)
    logger.info(f"Status:   {status_str}")
    logger.info(f"Domain:   {summary.domain}")
    logger.info(f"State:    {summary.state.value.upper()}")
    if summary.decision:
        logger.info(f"Decision: {summary.decision}")
    if summary.certificate_id:
        logger.info(f"New certificate: {summary.certificate_id}")
    if summary.deleted_id:
        logger.info(f"Deleted certificate: {summary.deleted_id}")
    if summary.state is RunState.ROTATED_WITH_ORPHAN:
        logger.warning(
            f"Old certificate {summary.orphaned_id} could not be deleted and is orphaned "
            f"({summary.delete_error})"
        )
    if summary.error:
        logger.error(f"Error:    {summary.error}")
    logger.info(f"Started:   {summary.started_at}")
    logger.info(f"Completed: {summary.completed_at}")
    logger.info(f"Exit Code: {summary.exit_code}")
    logger.info(separator)

    # Status line for CI/CD pipeline parsing
    if summary.success:
        print("PIPELINE_STATUS=SUCCESS")
    else:
        print("PIPELINE_STATUS=FAILURE")

    if output_json:
        logger.info("--- BEGIN JSON SUMMARY ---")
        print(summary.to_json())
        logger.info("--- END JSON SUMMARY ---")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Exit Codes:
        0 - Certificate up to date, rotated, or rotated with an orphaned old record
        1 - Local certificate or Fastly error
        2 - Configuration error

    Returns:
        Exit code
    """
    args = parse_arguments(argv)

    logger = setup_logger(
        verbose=args.verbose,
        use_colors=not args.no_color,
        log_file=args.log_file,
    )

    logger.section(f"Fastly Certificate Updater - {args.domain_name}")

    summary = RunSummary(domain=args.domain_name, dry_run=args.dry_run)

    try:
        config = load_settings(args.settings)

        if args.threshold is not None:
            validate_renewal_window(args.threshold)
            config.settings.renewal_window_days = args.threshold
            logger.info(f"Renewal window overridden to {args.threshold} days")

        if args.api_url:
            config.fastly.api_url = args.api_url

        dry_run = args.dry_run or config.settings.dry_run
        if dry_run:
            logger.warning("DRY RUN MODE - No changes will be made on Fastly")

        api_token = resolve_api_token(args.api_token, config)

        summary = run_update(
            domain=args.domain_name.strip(),
            renewal_conf_path=args.config_path,
            platform_factory=lambda: FastlyClient(
                api_token,
                api_url=config.fastly.api_url,
                timeout=config.fastly.timeout,
            ),
            renewal_window=timedelta(days=config.settings.renewal_window_days),
            dry_run=dry_run,
        )

    except ConfigurationError as e:
        logger.abort(f"Configuration error: {e}")
        summary.abort(str(e), EXIT_CONFIG_ERROR)

    except Exception as e:
        logger.abort(f"Unexpected error: {e}")
        summary.abort(str(e), EXIT_FAILURE)
        if args.verbose:
            traceback.print_exc()

    summary.finalize()
    print_run_summary(summary, output_json=args.json_summary)

    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
