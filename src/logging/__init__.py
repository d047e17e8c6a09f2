"""Structured logging configuration using structlog."""

import logging
import re
import sys

import structlog

from src.config.settings import Settings

# Bearer tokens in headers and Stripe keys/client secrets
# e.g. "Bearer eyJhbGciOi...", sk_test_51H..., pi_3N..._secret_kq2...
_SECRET_PATTERNS = (
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+"), r"\1<TOKEN_REDACTED>"),
    (re.compile(r"\b[sr]k_(?:test|live)_[A-Za-z0-9]+"), "<STRIPE_KEY_REDACTED>"),
    (re.compile(r"\bpi_[A-Za-z0-9]+_secret_[A-Za-z0-9]+"), "<CLIENT_SECRET_REDACTED>"),
)


def redact_secrets(value: str) -> str:
    """Replace tokens and payment secrets in a string."""
    for pattern, replacement in _SECRET_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


class SecretRedactingFilter(logging.Filter):
    """Filter that redacts sensitive tokens from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets from log message."""
        if record.msg and isinstance(record.msg, str):
            record.msg = redact_secrets(record.msg)
        if record.args:
            record.args = tuple(
                redact_secrets(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def _redact_secrets(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    """Structlog processor to redact secrets from event dictionaries."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = redact_secrets(value)
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    secret_filter = SecretRedactingFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, log_level.upper()))
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(secret_filter)
    root_logger.addHandler(handler)

    # httpx logs full request lines; stripe logs request bodies at debug
    for logger_name in ("httpx", "httpcore", "stripe"):
        lib_logger = logging.getLogger(logger_name)
        lib_logger.addFilter(secret_filter)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def setup_logging_from_settings(settings: Settings) -> None:
    """Configure logging at the configured level and tag events with the deployment."""
    setup_logging(settings.log_level)
    structlog.contextvars.bind_contextvars(
        app=settings.app_name,
        environment=settings.environment,
    )
