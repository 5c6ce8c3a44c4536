import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog


def setup_logging(
    log_level: str = "INFO", log_to_file: bool = True, logs_dir: str = "logs"
) -> None:
    """Set up logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to rotating files in addition to console
        logs_dir: Directory for app.log, errors.log and audit.log
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.set_exc_info,
            (
                structlog.processors.JSONRenderer()
                if log_to_file
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # httpx logs every Bot API request (with the token in the URL) at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if not log_to_file:
        return

    path = Path(logs_dir)
    path.mkdir(parents=True, exist_ok=True)

    app_handler = logging.handlers.RotatingFileHandler(
        path / "app.log", maxBytes=10 * 1024 * 1024, backupCount=5  # 10MB
    )
    app_handler.setLevel(logging.INFO)
    app_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
        )
    )
    root_logger.addHandler(app_handler)

    error_handler = logging.handlers.RotatingFileHandler(
        path / "errors.log", maxBytes=5 * 1024 * 1024, backupCount=10  # 5MB
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s - %(exc_info)s"
        )
    )
    root_logger.addHandler(error_handler)

    # Operator decisions, one JSON object per line
    audit_handler = logging.handlers.RotatingFileHandler(
        path / "audit.log", maxBytes=5 * 1024 * 1024, backupCount=10
    )
    audit_handler.setLevel(logging.INFO)
    audit_handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger = logging.getLogger("audit")
    audit_logger.addHandler(audit_handler)
    audit_logger.propagate = True


def get_audit_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Structured logger for operator actions."""
    return structlog.get_logger(name or "audit")


def log_operator_action(
    action: str,
    target: str,
    operator_id: Optional[str],
    changed: bool = True,
    logger: Optional[structlog.BoundLogger] = None,
    **details: Any,
) -> None:
    """Record an operator decision (approve, reject, remove, add...).

    Args:
        action: What the operator did
        target: ``kind:external_id`` of the affected identity, or a job ref
        operator_id: Telegram id of the operator
        changed: False when the action was a no-op (already in that state)
    """
    if logger is None:
        logger = get_audit_logger()

    logger.info(
        "operator_action",
        action=action,
        target=target,
        operator_id=operator_id,
        changed=changed,
        at=datetime.now(timezone.utc).isoformat(),
        **details,
    )
