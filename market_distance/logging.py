import logging
import re
import sys
from typing import Optional

import structlog
from market_distance.core.config import settings

# Maps requests carry the API key as a query parameter, and httpx errors echo the URL.
_API_KEY_PARAM = re.compile(r"([?&]key=)[^&\s'\"]+")
REDACTED = "***"

# Outbound clients that log every request at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "redis")


def redact_api_key(text: str) -> str:
    return _API_KEY_PARAM.sub(rf"\g<1>{REDACTED}", text)


def redact_api_key_processor(logger, method_name, event_dict):
    """structlog processor: scrub the Maps key from every string value."""
    for field, value in event_dict.items():
        if isinstance(value, str) and "key=" in value:
            event_dict[field] = redact_api_key(value)
    return event_dict


class RedactApiKeyFilter(logging.Filter):
    """Same scrubbing for plain stdlib records (the Maps clients log with f-strings)."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "key=" in message:
            record.msg = redact_api_key(message)
            record.args = None
        return True


def configure_logging(level: Optional[str] = None):
    """
    Configures structlog to intercept standard library logs and setup
    JSON rendering for production or Console rendering for local development.

    `level` defaults to LOG_LEVEL. Outbound HTTP and Redis client chatter is
    held at WARNING whatever the level.
    """
    is_local = settings.ENV.lower() == "development"
    level = (level or settings.LOG_LEVEL).upper()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        redact_api_key_processor,
    ]

    if is_local:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer()
        ]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactApiKeyFilter) for f in handler.filters):
            handler.addFilter(RedactApiKeyFilter())

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for _log in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logger = logging.getLogger(_log)
        logger.handlers = []
        logger.propagate = True
