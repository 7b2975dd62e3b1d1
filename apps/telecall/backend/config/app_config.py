"""
Application Configuration Objects
=================================

Structured configuration objects using dataclasses for the telecall service.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .feature_flags import DEBUG_MODE, ENABLE_TRACING, ENVIRONMENT
from .infrastructure import (
    ALLOWED_ORIGINS,
    REDIS_HOST,
    REDIS_PORT,
    REDIS_SSL,
    SIGNALING_JWT_SECRET,
)
from .signaling_config import (
    CALL_PURGE_DELAY_SECONDS,
    CALL_RING_TIMEOUT_SECONDS,
    EVENT_CLEANUP_INTERVAL_SECONDS,
    EVENT_RETENTION_SECONDS,
    REDIS_CHANNEL_PREFIX,
    SIGNALING_SERVICE_ROLE,
    SIGNALING_SERVICE_USER_ID,
    SIGNALING_TRANSPORT,
    TRANSPORT_HEARTBEAT_SECONDS,
)


@dataclass
class CallLifecycleConfig:
    """Timings the call coordinator runs with."""

    purge_delay_seconds: float = CALL_PURGE_DELAY_SECONDS
    ring_timeout_seconds: float = CALL_RING_TIMEOUT_SECONDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "purge_delay_seconds": self.purge_delay_seconds,
            "ring_timeout_seconds": self.ring_timeout_seconds,
        }


@dataclass
class TransportConfig:
    """Which transport the service joins and how."""

    kind: str = SIGNALING_TRANSPORT
    service_user_id: str = SIGNALING_SERVICE_USER_ID
    service_role: str = SIGNALING_SERVICE_ROLE
    heartbeat_seconds: float = TRANSPORT_HEARTBEAT_SECONDS
    redis_host: str = REDIS_HOST
    redis_port: int = REDIS_PORT
    redis_ssl: bool = REDIS_SSL
    channel_prefix: str = REDIS_CHANNEL_PREFIX

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "service_user_id": self.service_user_id,
            "service_role": self.service_role,
            "heartbeat_seconds": self.heartbeat_seconds,
            "redis_host": self.redis_host,
            "redis_port": self.redis_port,
            "redis_ssl": self.redis_ssl,
            "channel_prefix": self.channel_prefix,
        }


@dataclass
class RelayConfig:
    """Event relay retention settings."""

    retention_seconds: int = EVENT_RETENTION_SECONDS
    cleanup_interval_seconds: int = EVENT_CLEANUP_INTERVAL_SECONDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "retention_seconds": self.retention_seconds,
            "cleanup_interval_seconds": self.cleanup_interval_seconds,
        }


@dataclass
class SecurityConfig:
    """Configuration for token verification and CORS."""

    verify_tokens: bool = bool(SIGNALING_JWT_SECRET)
    allowed_origins: List[str] = field(default_factory=lambda: ALLOWED_ORIGINS.copy())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verify_tokens": self.verify_tokens,
            "allowed_origins": self.allowed_origins,
        }


@dataclass
class AppConfig:
    """Complete application configuration."""

    calls: CallLifecycleConfig = field(default_factory=CallLifecycleConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    environment: str = ENVIRONMENT
    debug_mode: bool = DEBUG_MODE
    enable_tracing: bool = ENABLE_TRACING

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "calls": self.calls.to_dict(),
            "transport": self.transport.to_dict(),
            "relay": self.relay.to_dict(),
            "security": self.security.to_dict(),
            "environment": self.environment,
            "debug_mode": self.debug_mode,
            "enable_tracing": self.enable_tracing,
        }
