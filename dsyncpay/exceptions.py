"""
Custom exceptions for dsyncpay.

Defines the error taxonomy shared by the provider adapters, the metadata
store and the routing layer.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class DSyncPayError(Exception):
    """Base exception for all dsyncpay errors."""

    message: str
    error_code: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        logger.error(
            "%s: %s (Code: %s, Details: %s)",
            self.__class__.__name__,
            self.message,
            self.error_code,
            self.details,
        )

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}" if self.error_code else self.message


@dataclass
class ValidationError(DSyncPayError):
    """Raised when a required creation field is missing or malformed."""

    field: Optional[str] = None
    value: Any = None
    constraints: Optional[dict[str, Any]] = None

    def __post_init__(self):
        self.details.update(
            {
                k: v
                for k, v in {
                    "field": self.field,
                    "value": self.value,
                    "constraints": self.constraints,
                }.items()
                if v is not None
            }
        )
        self.error_code = self.error_code or "VALIDATION_ERROR"
        super().__post_init__()


@dataclass
class AuthError(DSyncPayError):
    """Raised when the provider credential exchange fails."""

    provider: Optional[str] = None
    status_code: Optional[int] = None

    def __post_init__(self):
        self.details.update(
            {
                k: v
                for k, v in {
                    "provider": self.provider,
                    "status_code": self.status_code,
                }.items()
                if v is not None
            }
        )
        self.error_code = self.error_code or "AUTH_ERROR"
        super().__post_init__()


@dataclass
class ProviderError(DSyncPayError):
    """Raised for non-2xx provider responses and transport failures."""

    provider: Optional[str] = None
    operation: Optional[str] = None
    status_code: Optional[int] = None
    response_body: Any = None

    def __post_init__(self):
        self.details.update(
            {
                k: v
                for k, v in {
                    "provider": self.provider,
                    "operation": self.operation,
                    "status_code": self.status_code,
                    "response_body": self.response_body,
                }.items()
                if v is not None
            }
        )
        self.error_code = self.error_code or "PROVIDER_ERROR"
        super().__post_init__()


@dataclass
class SignatureError(DSyncPayError):
    """Raised when an inbound webhook fails HMAC authentication."""

    provider: Optional[str] = None

    def __post_init__(self):
        if self.provider is not None:
            self.details["provider"] = self.provider
        self.error_code = self.error_code or "SIGNATURE_ERROR"
        super().__post_init__()
        logger.warning("Webhook rejected: %s (Provider: %s)", self.message, self.provider)


@dataclass
class StorageError(DSyncPayError):
    """Raised for metadata store errors."""

    storage_type: Optional[str] = None
    operation: Optional[str] = None
    entity_id: Optional[str] = None

    def __post_init__(self):
        self.details.update(
            {
                k: v
                for k, v in {
                    "storage_type": self.storage_type,
                    "operation": self.operation,
                    "entity_id": self.entity_id,
                }.items()
                if v is not None
            }
        )
        self.error_code = self.error_code or "STORAGE_ERROR"
        super().__post_init__()


@dataclass
class ConfigurationError(DSyncPayError):
    """Raised for configuration errors."""

    config_key: Optional[str] = None
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None

    def __post_init__(self):
        self.details.update(
            {
                k: v
                for k, v in {
                    "config_key": self.config_key,
                    "expected_value": self.expected_value,
                    "actual_value": self.actual_value,
                }.items()
                if v is not None
            }
        )
        self.error_code = self.error_code or "CONFIGURATION_ERROR"
        super().__post_init__()
