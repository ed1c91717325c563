#!/usr/bin/env python3
"""
Let's Encrypt for Azure - Main Entry Point.

Resolves, for every configured certificate, the resource that consumes
the certificate, the Key Vault that stores it and the storage account
that answers HTTP challenges, then reports on or updates the stored
certificate.

Usage:
    # Resolve providers and report certificate expiry for every entry
    python main.py --config config.yaml

    # Only the entry for a given host name
    python main.py --config config.yaml --host www.example.com

    # Import a renewed PFX into the resolved certificate store
    python main.py --task import --host www.example.com --pfx cert.pfx
"""

import argparse
import json
import os
import signal
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from letsencrypt_azure.logger import setup_logger, get_logger
from letsencrypt_azure.config_loader import load_config, Config, ConfigurationError, CertificateRenewalOptions
from letsencrypt_azure.azure_helper import AzureHelper
from letsencrypt_azure.cancellation import OperationCancelledError
from letsencrypt_azure.keyvault import KeyVaultError
from letsencrypt_azure.providers import RenewalOptionParser
from letsencrypt_azure.helpers import is_expiring_soon, format_days_remaining, format_expiration_status


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION = 2
EXIT_CANCELLED = 130


class EntryStatus(Enum):
    """Status of one certificate entry."""
    VALID = "valid"
    RENEWAL_DUE = "renewal_due"
    IMPORTED = "imported"
    FAILED = "failed"


@dataclass
class EntryResult:
    """Result of processing one certificate entry."""
    host_names: List[str]
    status: EntryStatus
    message: str
    target: Optional[str] = None
    certificate_store: Optional[str] = None
    certificate_name: Optional[str] = None
    storage_auth: Optional[str] = None
    days_remaining: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host_names": self.host_names,
            "status": self.status.value.upper(),
            "message": self.message,
            "target": self.target,
            "certificate_store": self.certificate_store,
            "certificate_name": self.certificate_name,
            "storage_auth": self.storage_auth,
            "days_remaining": self.days_remaining,
        }


@dataclass
class ExecutionSummary:
    """Complete execution summary for the run."""
    task: str
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    completed_at: Optional[str] = None
    exit_code: int = EXIT_OK
    results: List[EntryResult] = field(default_factory=list)
    global_errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.exit_code == EXIT_OK

    def add_result(self, result: EntryResult) -> None:
        self.results.append(result)
        if result.status == EntryStatus.FAILED and self.exit_code == EXIT_OK:
            self.exit_code = EXIT_FAILURE

    def add_global_error(self, error: str, exit_code: int = EXIT_FAILURE) -> None:
        self.global_errors.append(error)
        self.exit_code = exit_code

    def finalize(self) -> None:
        self.completed_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "success": self.success,
            "exit_code": self.exit_code,
            "results": [r.to_dict() for r in self.results],
            "global_errors": self.global_errors,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def get_pfx_password(args_password: Optional[str] = None) -> Optional[str]:
    """
    Get PFX password from command-line argument or the PFX_PASSWORD environment variable.
    """
    if args_password is not None:
        return args_password
    return os.environ.get("PFX_PASSWORD")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Let's Encrypt certificate management for Azure CDN",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --config config.yaml                       # Report on every certificate
  %(prog)s --host www.example.com                     # Report on one certificate
  %(prog)s --task import --host www.example.com --pfx cert.pfx
        """,
    )

    parser.add_argument(
        "--task",
        type=str,
        choices=["status", "import"],
        default="status",
        help="Task: 'status' resolves providers and reports expiry, 'import' uploads a PFX",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Only process the certificate entry containing this host name",
    )
    parser.add_argument(
        "--pfx",
        type=str,
        default=None,
        help="Import mode: path to the PFX file to upload",
    )
    parser.add_argument(
        "--pfx-password",
        type=str,
        default=None,
        help="Password for the PFX file (falls back to PFX_PASSWORD env var)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        help="Override renewal threshold (days)",
    )
    parser.add_argument(
        "--json-summary",
        action="store_true",
        help="Output machine-readable JSON summary at the end of execution",
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

    args = parser.parse_args(argv)

    if args.task == "import" and not (args.pfx and args.host):
        parser.error("--task import requires --pfx and --host")

    return args


def select_entries(config: Config, host: Optional[str]) -> List[CertificateRenewalOptions]:
    """Certificate entries to process, optionally filtered by host name."""
    if host is None:
        return list(config.certificates)

    wanted = host.lower()
    return [
        entry for entry in config.certificates
        if wanted in (h.lower() for h in entry.host_names)
    ]


def process_status(
    entry: CertificateRenewalOptions,
    parser: RenewalOptionParser,
    threshold_days: int,
    cancel_event: threading.Event,
) -> EntryResult:
    """
    Resolve the providers of one entry and report on its current certificate.
    """
    logger = get_logger()
    providers = parser.resolve(entry, cancel_event)
    store = providers.certificate_store
    storage = providers.challenge_responder.storage

    logger.info(f"  Target: {providers.target.type} {providers.target.name} "
                f"(endpoints: {', '.join(providers.target.endpoints)})")
    logger.info(f"  Store: {store.type} {store.name}/{store.certificate_name}")
    logger.info(f"  Challenge storage: {storage.account_name}/{storage.container_name} "
                f"via {storage.auth_method}")

    certificate = store.get_certificate()
    expires_on = certificate.expires_on if certificate else None
    if certificate is None:
        message = "No certificate in store"
    else:
        message = format_expiration_status(expires_on, threshold_days)

    status = EntryStatus.RENEWAL_DUE if is_expiring_soon(expires_on, threshold_days) else EntryStatus.VALID
    return EntryResult(
        host_names=entry.host_names,
        status=status,
        message=message,
        target=providers.target.name,
        certificate_store=store.name,
        certificate_name=store.certificate_name,
        storage_auth=storage.auth_method,
        days_remaining=format_days_remaining(expires_on),
    )


def process_import(
    entry: CertificateRenewalOptions,
    parser: RenewalOptionParser,
    pfx_path: str,
    pfx_password: Optional[str],
) -> EntryResult:
    """
    Import a PFX into the resolved certificate store of one entry.
    """
    store = parser.parse_certificate_store(entry)

    with open(pfx_path, "rb") as f:
        pfx_data = f.read()

    imported = store.upload(pfx_data, pfx_password)
    return EntryResult(
        host_names=entry.host_names,
        status=EntryStatus.IMPORTED,
        message=f"Imported version {imported['version']}",
        certificate_store=store.name,
        certificate_name=store.certificate_name,
        days_remaining=format_days_remaining(imported["expires_on"]),
    )


def print_execution_summary(summary: ExecutionSummary, output_json: bool = False) -> None:
    """
    Print the execution summary.

    Args:
        summary: ExecutionSummary with all results
        output_json: If True, also output machine-readable JSON
    """
    logger = get_logger()
    logger.section("EXECUTION SUMMARY")
    logger.info(f"Status: {'SUCCESS' if summary.success else 'FAILED'}")
    logger.info(f"Task: {summary.task}")
    logger.info(f"Started: {summary.started_at}")
    logger.info(f"Completed: {summary.completed_at}")

    for result in summary.results:
        label = ", ".join(result.host_names)
        if result.status == EntryStatus.FAILED:
            logger.failure(f"{label}: {result.message}")
        else:
            logger.info(f"  [{result.status.value.upper()}] {label}: {result.message}")

    for error in summary.global_errors:
        logger.error(f"  - {error}")

    logger.info(f"Exit Code: {summary.exit_code}")

    if output_json:
        print(summary.to_json())


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Exit Codes:
        0 - All operations succeeded
        1 - One or more entries failed
        2 - Configuration error
        130 - Cancelled

    Returns:
        Exit code
    """
    args = parse_arguments(argv)
    logger = setup_logger(verbose=args.verbose, use_colors=not args.no_color)
    logger.info("Let's Encrypt for Azure")

    summary = ExecutionSummary(task=args.task)
    cancel_event = threading.Event()

    def _cancel(signum, frame):
        logger.warning("Cancellation requested")
        cancel_event.set()

    previous_handlers = {
        signum: signal.signal(signum, _cancel) for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        return _run(args, summary, cancel_event)
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)


def _run(args: argparse.Namespace, summary: ExecutionSummary, cancel_event: threading.Event) -> int:
    """Process the selected certificate entries and print the summary."""
    logger = get_logger()

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.failure(f"Configuration error: {e}")
        summary.add_global_error(str(e), EXIT_CONFIGURATION)
        summary.finalize()
        print_execution_summary(summary, args.json_summary)
        return summary.exit_code

    threshold_days = args.threshold or config.settings.renewal_threshold_days
    parser = RenewalOptionParser(AzureHelper.from_settings(config.azure))

    entries = select_entries(config, args.host)
    if not entries:
        summary.add_global_error(f"No certificate entry matches host {args.host}", EXIT_CONFIGURATION)

    for entry in entries:
        logger.subsection(", ".join(entry.host_names))
        try:
            if args.task == "import":
                result = process_import(entry, parser, args.pfx, get_pfx_password(args.pfx_password))
            else:
                result = process_status(entry, parser, threshold_days, cancel_event)
            logger.success(result.message)
        except OperationCancelledError as e:
            summary.add_global_error(str(e), EXIT_CANCELLED)
            break
        except ConfigurationError as e:
            logger.failure(f"Configuration error: {e}")
            summary.add_result(EntryResult(entry.host_names, EntryStatus.FAILED, str(e)))
            summary.exit_code = EXIT_CONFIGURATION
        except (KeyVaultError, OSError) as e:
            logger.failure(str(e))
            summary.add_result(EntryResult(entry.host_names, EntryStatus.FAILED, str(e)))
        except Exception as e:
            logger.exception(f"Unexpected error for {entry.primary_host_name}")
            summary.add_result(EntryResult(entry.host_names, EntryStatus.FAILED, f"{type(e).__name__}: {e}"))

    summary.finalize()
    print_execution_summary(summary, args.json_summary)
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
