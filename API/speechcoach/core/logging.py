import logging
import re
import sys

DOMAIN_CHECKIN = "checkin"
DOMAIN_PLANNING = "planning"
DOMAIN_EVALUATION = "evaluation"
DOMAIN_PRACTICE = "practice"
DOMAIN_IMAGERY = "imagery"

LOG_FORMAT = "%(asctime)s | %(levelname)s | [%(domain)s] | %(name)s | %(message)s"
_HANDLER_NAME = "speechcoach-stdout"

# Header and query-string shapes used by the Gemini, Unsplash and Bing clients.
_SECRET_RE = re.compile(
    r"(?i)("
    r"x-goog-api-key\s*[=:]\s*"
    r"|ocp-apim-subscription-key\s*[=:]\s*"
    r"|client-id\s+"
    r"|api[_-]?key\s*[=:]\s*"
    r"|[?&]key="
    r"|authorization\s*[=:]\s*bearer\s+"
    r"|token\s*[=:]\s*"
    r")([^\s,;&]+)"
)


def get_domain_logger(name: str, domain: str) -> logging.LoggerAdapter[logging.Logger]:
    """Logger whose records carry `domain`, shown in the `[...]` column of every line."""
    return logging.LoggerAdapter(logging.getLogger(name), {"domain": domain})


def redact_secrets(message: str) -> str:
    return _SECRET_RE.sub(r"\1[REDACTED]", str(message or ""))


class ServiceRecordFilter(logging.Filter):
    """Defaults the domain column and masks credentials before a record is written."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "domain"):
            record.domain = "app"  # type: ignore[attr-defined]
        record.msg = redact_secrets(record.getMessage())
        record.args = ()
        return True


class HealthCheckAccessFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not ("GET /health" in message and " 200" in message)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(ServiceRecordFilter())
        root.addHandler(handler)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    access = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthCheckAccessFilter) for f in access.filters):
        access.addFilter(HealthCheckAccessFilter())
