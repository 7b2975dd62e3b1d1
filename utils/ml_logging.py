import json
import logging
import os
from typing import Optional

from colorama import Fore, Style
from colorama import init as colorama_init

# Early .env load to check DISABLE_CLOUD_TELEMETRY before importing any OTel
try:
    from dotenv import load_dotenv

    if os.path.isfile(".env"):
        load_dotenv(override=False)
except ImportError:
    pass

_telemetry_disabled = os.getenv("DISABLE_CLOUD_TELEMETRY", "false").lower() == "true"

if not _telemetry_disabled:
    from opentelemetry import trace
    from opentelemetry.sdk._logs import LoggingHandler
    from utils.telemetry_config import is_azure_monitor_configured
else:
    trace = None
    LoggingHandler = None
    is_azure_monitor_configured = lambda: False

colorama_init(autoreset=True)

# Define a new logging level named "KEYINFO" with a level of 25
KEYINFO_LEVEL_NUM = 25
logging.addLevelName(KEYINFO_LEVEL_NUM, "KEYINFO")


def keyinfo(self: logging.Logger, message, *args, **kws):
    if self.isEnabledFor(KEYINFO_LEVEL_NUM):
        self._log(KEYINFO_LEVEL_NUM, message, args, **kws)


logging.Logger.keyinfo = keyinfo


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "name": record.name,
            "process": record.processName,
            "level": record.levelname,
            "trace_id": getattr(record, "trace_id", "-"),
            "span_id": getattr(record, "span_id", "-"),
            "call_id": getattr(record, "call_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
            "operation_name": getattr(record, "operation_name", "-"),
            "message": record.getMessage(),
            "file": record.filename,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Structured extras passed via `extra={...}` that look like signaling fields
        for attr_name, value in record.__dict__.items():
            if attr_name.startswith(("call_", "event_", "transport_")):
                log_record.setdefault(attr_name, value)

        return json.dumps(log_record, default=str)


class PrettyFormatter(logging.Formatter):
    LEVEL_COLORS = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.GREEN,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.MAGENTA,
        "KEYINFO": Fore.BLUE,
    }

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.datefmt)
        level = record.levelname
        color = self.LEVEL_COLORS.get(level, "")
        msg = record.getMessage()
        call_id = getattr(record, "call_id", "-")
        suffix = f" {Fore.WHITE}[{call_id}]{Style.RESET_ALL}" if call_id != "-" else ""
        return (
            f"{Fore.WHITE}[{timestamp}]{Style.RESET_ALL} {color}{level}{Style.RESET_ALL}"
            f" - {Fore.BLUE}{record.name}{Style.RESET_ALL}: {msg}{suffix}"
        )


class TraceLogFilter(logging.Filter):
    """Stamp trace/span ids and signaling correlation ids onto every record."""

    def filter(self, record):
        record.trace_id = "-"
        record.span_id = "-"
        record.operation_name = getattr(record, "operation_name", "-")
        record.call_id = getattr(record, "call_id", "-")
        record.user_id = getattr(record, "user_id", "-")

        if _telemetry_disabled or trace is None:
            return True

        span = trace.get_current_span()
        context = span.get_span_context() if span else None
        if context and context.trace_id:
            record.trace_id = f"{context.trace_id:032x}"
        if context and context.span_id:
            record.span_id = f"{context.span_id:016x}"

        if span and span.is_recording():
            span_attributes = getattr(span, "attributes", None) or {}
            if record.call_id == "-":
                record.call_id = span_attributes.get("call.id", "-")
            if record.user_id == "-":
                record.user_id = span_attributes.get("user.id", "-")
            if record.operation_name == "-":
                record.operation_name = span_attributes.get(
                    "operation.name", getattr(span, "name", "-")
                )

        return True


def set_span_correlation_attributes(
    call_id: Optional[str] = None,
    user_id: Optional[str] = None,
    operation_name: Optional[str] = None,
    custom_attributes: Optional[dict] = None,
) -> None:
    """
    Set correlation attributes on the current span so they show up as
    customDimensions in Application Insights and on log records.
    """
    if _telemetry_disabled or trace is None:
        return

    span = trace.get_current_span()
    if not span or not span.is_recording():
        return

    if call_id:
        span.set_attribute("call.id", call_id)
    if user_id:
        span.set_attribute("user.id", user_id)
    if operation_name:
        span.set_attribute("operation.name", operation_name)

    if custom_attributes:
        for key, value in custom_attributes.items():
            if isinstance(value, (str, int, float, bool)):
                span.set_attribute(key, value)


def get_logger(
    name: str = "telecall",
    level: Optional[int] = None,
    include_stream_handler: bool = True,
) -> logging.Logger:
    logger = logging.getLogger(name)

    if level is not None or logger.level == 0:
        logger.setLevel(level or logging.INFO)

    is_production = os.environ.get("ENV", "dev").lower() == "prod"

    has_azure_handler = LoggingHandler is not None and any(
        isinstance(h, LoggingHandler) for h in logger.handlers
    )
    if (
        not has_azure_handler
        and LoggingHandler is not None
        and is_azure_monitor_configured()
    ):
        logger.addHandler(LoggingHandler(level=logging.INFO))

    if not any(isinstance(f, TraceLogFilter) for f in logger.filters):
        logger.addFilter(TraceLogFilter())

    if include_stream_handler and not any(
        isinstance(h, logging.StreamHandler) for h in logger.handlers
    ):
        sh = logging.StreamHandler()
        sh.setFormatter(JsonFormatter() if is_production else PrettyFormatter())
        sh.addFilter(TraceLogFilter())
        logger.addHandler(sh)

    return logger
