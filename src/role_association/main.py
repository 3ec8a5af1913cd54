"""Main entry point for the DB cluster role association reconciler.

Runs one convergence pass over the manifest at MANIFEST_PATH and exits:
0 when every association reached its declared state, 1 on any failure,
2 when static credentials were found in the environment.

SIGTERM / SIGINT cancel in-flight convergence waits instead of killing the
process mid-call; every operation is idempotent so the next run resumes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TextIO

from .client import RdsAssociationClient
from .config import Config, ConfigurationError
from .manifest import EntryAction, apply_manifest
from .manifest_loader import ManifestLoadError, load_manifest
from .reconciler import AssociationReconciler
from .session import StaticCredentialsError, get_rds_client

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_LOG_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO, stream: TextIO | None = None) -> None:
    """Configure structured logging with JSON output (stdout by default)."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from the AWS SDK
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def main() -> int:
    """Run one convergence pass.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    try:
        manifest = load_manifest(config.manifest_path)
    except ManifestLoadError as e:
        logger.error(
            "Manifest loading failed",
            extra={"error": str(e), "manifest_path": str(config.manifest_path)},
        )
        return 1

    try:
        client = RdsAssociationClient(get_rds_client(config))
    except StaticCredentialsError as e:
        logger.critical(
            "Security violation: static credentials detected in environment",
            extra={"error": str(e)},
        )
        return 2

    reconciler = AssociationReconciler.from_config(config, client)

    logger.info(
        "Starting association reconciler",
        extra={
            "region": config.region,
            "manifest_path": str(config.manifest_path),
            "associations": len(manifest.associations),
        },
    )

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal, cancelling in-flight waits", extra={"signal": sig.name})
        cancel_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        result = await apply_manifest(
            reconciler,
            manifest,
            max_concurrency=config.max_concurrent_reconciles,
            cancel_event=cancel_event,
        )
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1

    if not result.success:
        logger.error(
            "Reconciliation failed",
            extra={
                "failed": [entry.composite_id for entry in result.failed],
                "failed_count": result.count(EntryAction.FAILED),
            },
        )
        return 1

    logger.info("Reconciliation complete", extra={"duration_seconds": result.duration_seconds})
    return 0


def run() -> None:
    """Entry point for the reconciler process."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
