"""
Logging setup shared by the API process and the standalone refresh scheduler.

Records pass through a filter that masks MercadoLibre credentials, so a stray
token in an exception message never reaches the log sink.
"""

import logging
import re
import sys

# APP_USR-... access tokens, TG-... refresh tokens and bearer headers.
_CREDENTIAL_PATTERN = re.compile(
    r"\b(?:APP_USR|TG)-[A-Za-z0-9-]+|(?<=Bearer )[A-Za-z0-9._~+/=-]+"
)
_REDACTED = "[REDACTED]"


def redact_credentials(text: str) -> str:
    return _CREDENTIAL_PATTERN.sub(_REDACTED, text)


class CredentialRedactionFilter(logging.Filter):
    """Rewrite the rendered message with credentials masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_credentials(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the service-wide format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    redaction = CredentialRedactionFilter()
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CredentialRedactionFilter) for f in handler.filters):
            handler.addFilter(redaction)
    # httpx logs every request line at INFO, including query strings.
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["CredentialRedactionFilter", "configure_logging", "redact_credentials"]
