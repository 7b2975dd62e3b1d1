import logging
import os

# Ensure environment variables from .env are available BEFORE we check DISABLE_CLOUD_TELEMETRY.
try:
    from dotenv import load_dotenv  # type: ignore

    if os.path.isfile(".env"):
        load_dotenv(override=False)
except ImportError:
    pass

from azure.core.exceptions import HttpResponseError
from opentelemetry.sdk.resources import Resource

logger = logging.getLogger(__name__)
_azure_monitor_configured = False


def suppress_azure_sdk_logs():
    """Silence the exporter's own chatter so it does not drown signaling logs."""
    for logger_name in (
        "azure.core.pipeline.policies.http_logging_policy",
        "azure.monitor.opentelemetry.exporter.export._base",
    ):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


suppress_azure_sdk_logs()


def is_azure_monitor_configured() -> bool:
    """Return True when Azure Monitor finished configuring successfully."""

    return _azure_monitor_configured


def setup_azure_monitor(logger_name: str = None):
    """
    Configure Azure Monitor / Application Insights if a connection string is available.

    Args:
        logger_name (str, optional): Name for the Azure Monitor logger. Defaults to
            ``AZURE_MONITOR_LOGGER_NAME`` or ``telecall``.
    """
    global _azure_monitor_configured

    _azure_monitor_configured = False

    # Allow hard opt-out for local dev, tests and debugging.
    if os.getenv("DISABLE_CLOUD_TELEMETRY", "true").lower() == "true":
        logger.info(
            "Telemetry disabled (DISABLE_CLOUD_TELEMETRY=true) - skipping Azure Monitor setup"
        )
        return

    connection_string = os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING")
    if not connection_string:
        logger.info(
            "APPLICATIONINSIGHTS_CONNECTION_STRING not found, skipping Azure Monitor configuration"
        )
        return

    logger_name = logger_name or os.getenv("AZURE_MONITOR_LOGGER_NAME", "telecall")
    resource_attrs = {
        "service.name": "telecall-signaling",
        "service.namespace": "telehealth",
    }
    env_name = os.getenv("ENVIRONMENT")
    if env_name:
        resource_attrs["service.environment"] = env_name

    try:
        from azure.monitor.opentelemetry import configure_azure_monitor

        configure_azure_monitor(
            resource=Resource.create(resource_attrs),
            logger_name=logger_name,
            connection_string=connection_string,
            enable_live_metrics=False,
            instrumentation_options={
                "fastapi": {"enabled": True},
                "redis": {"enabled": True},
                "httpx": {"enabled": True},
                "django": {"enabled": False},
                "flask": {"enabled": False},
                "psycopg2": {"enabled": False},
            },
        )
        _azure_monitor_configured = True
        logger.info("Azure Monitor configured (logger=%s)", logger_name)
    except ImportError:
        logger.warning(
            "Azure Monitor OpenTelemetry not available. Install azure-monitor-opentelemetry package."
        )
    except HttpResponseError as e:
        logger.error("HTTP error configuring Azure Monitor: %s", e)
