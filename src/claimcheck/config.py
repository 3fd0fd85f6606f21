"""Client configuration.

Settings load from keyword arguments, ``CLAIMCHECK_*`` environment variables
and an optional ``.env`` file. Connection settings also accept the usual Azure
variable names (``SERVICEBUS_CONNECTION_STRING``,
``AZURE_STORAGE_CONNECTION_STRING``). The model is frozen once built.

Example:
    config = ClientConfiguration(
        message_size_threshold=64 * 1024,
        blob_key_prefix="orders/",
        blob_ttl_days=7,
    )
"""

from __future__ import annotations

import base64
import hashlib
from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from claimcheck.constants import (
    BLOB_POINTER_MARKER,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_DEAD_LETTER_REASON,
    DEFAULT_MESSAGE_SIZE_THRESHOLD,
    DEFAULT_SAS_URI_PROPERTY,
    LEGACY_RESERVED_ATTRIBUTE_NAME,
    MAX_ALLOWED_PROPERTIES,
    RESERVED_ATTRIBUTE_NAME,
)
from claimcheck.errors import ConfigurationError
from claimcheck.extensions import (
    BlobNameResolver,
    DefaultBlobNameResolver,
    DefaultMessageBodyReplacer,
    DefaultSizeCriteria,
    MessageBodyReplacer,
    SizeCriteria,
    StorageConnectionStringProvider,
)
from claimcheck.validation import validate_blob_key_prefix

__all__ = [
    "BLOB_POINTER_MARKER",
    "LEGACY_RESERVED_ATTRIBUTE_NAME",
    "RESERVED_ATTRIBUTE_NAME",
    "ClientConfiguration",
    "EncryptionSettings",
    "get_configuration",
]

BlobAccessTier = Literal["Hot", "Cool", "Cold", "Archive"]


class EncryptionSettings(BaseModel):
    """Server-side encryption options for stored payloads.

    An encryption scope and a customer-provided key are mutually exclusive.
    """

    model_config = ConfigDict(frozen=True)

    encryption_scope: str | None = None
    customer_provided_key: str | None = Field(default=None, repr=False)
    customer_provided_key_sha256: str | None = Field(default=None, repr=False)

    def has_encryption_scope(self) -> bool:
        return bool(self.encryption_scope)

    def has_customer_provided_key(self) -> bool:
        return bool(self.customer_provided_key)

    def key_sha256(self) -> str | None:
        """Return the base64 SHA-256 of the customer key, computing it if needed."""
        if not self.customer_provided_key:
            return None
        if self.customer_provided_key_sha256:
            return self.customer_provided_key_sha256
        key_bytes = base64.b64decode(self.customer_provided_key)
        return base64.b64encode(hashlib.sha256(key_bytes).digest()).decode("ascii")

    def ensure_consistent(self) -> None:
        if self.has_encryption_scope() and self.has_customer_provided_key():
            raise ConfigurationError(
                "Cannot use both an encryption scope and a customer-provided key"
            )


class ClientConfiguration(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CLAIMCHECK_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    # Offloading
    message_size_threshold: int = Field(default=DEFAULT_MESSAGE_SIZE_THRESHOLD, ge=0)
    always_through_blob: bool = False
    payload_support_enabled: bool = True
    blob_key_prefix: str = ""
    default_content_type: str = DEFAULT_CONTENT_TYPE

    # Cleanup
    cleanup_blob_on_delete: bool = True
    auto_cleanup_on_complete: bool = False
    blob_ttl_days: int = Field(default=0, ge=0)
    ttl_cleanup_interval_minutes: int = Field(default=0, ge=0)

    # Retry
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_millis: int = Field(default=1000, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    retry_max_backoff_millis: int = Field(default=30000, ge=0)

    # Dead-letter handling
    dead_letter_on_failure: bool = True
    dead_letter_reason: str = DEFAULT_DEAD_LETTER_REASON
    max_delivery_count: int = Field(default=10, ge=1)

    # Wire compatibility
    use_legacy_reserved_attribute_name: bool = True
    max_allowed_properties: int = Field(default=MAX_ALLOWED_PROPERTIES, ge=0)
    enable_duplicate_detection_id: bool = False

    # Receive behaviour
    ignore_payload_not_found: bool = False
    receive_only_mode: bool = False

    # Blob options
    blob_access_tier: BlobAccessTier | None = None
    encryption: EncryptionSettings = Field(default_factory=EncryptionSettings)

    # Shared access signatures
    sas_enabled: bool = False
    sas_token_validation_time: timedelta = timedelta(days=7)
    message_property_for_blob_sas_uri: str = DEFAULT_SAS_URI_PROPERTY

    # Observability
    tracing_enabled: bool = True
    metrics_enabled: bool = True
    log_level: str = "INFO"
    log_json: bool = True

    # Connections
    servicebus_connection_string: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices(
            "CLAIMCHECK_SERVICEBUS_CONNECTION_STRING",
            "SERVICEBUS_CONNECTION_STRING",
        ),
    )
    queue_name: str = Field(
        default="my-queue",
        validation_alias=AliasChoices(
            "CLAIMCHECK_QUEUE_NAME", "SERVICEBUS_QUEUE_NAME"
        ),
    )
    storage_connection_string: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices(
            "CLAIMCHECK_STORAGE_CONNECTION_STRING",
            "AZURE_STORAGE_CONNECTION_STRING",
        ),
    )
    storage_account_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CLAIMCHECK_STORAGE_ACCOUNT_URL", "AZURE_ACCOUNT_URL"
        ),
    )
    container_name: str = Field(
        default="large-messages",
        validation_alias=AliasChoices(
            "CLAIMCHECK_CONTAINER_NAME", "AZURE_STORAGE_CONTAINER"
        ),
    )

    # Extension points (code only, never loaded from the environment)
    size_criteria: SizeCriteria | None = Field(default=None, exclude=True)
    blob_name_resolver: BlobNameResolver | None = Field(default=None, exclude=True)
    body_replacer: MessageBodyReplacer | None = Field(default=None, exclude=True)
    connection_string_provider: StorageConnectionStringProvider | None = Field(
        default=None, exclude=True
    )

    @field_validator("blob_key_prefix", mode="before")
    @classmethod
    def _check_prefix(cls, value: str | None) -> str:
        return validate_blob_key_prefix(value)

    @model_validator(mode="after")
    def _check_encryption(self) -> ClientConfiguration:
        self.encryption.ensure_consistent()
        return self

    @property
    def reserved_attribute_name(self) -> str:
        """Name of the payload-size property written on offloaded messages."""
        if self.use_legacy_reserved_attribute_name:
            return LEGACY_RESERVED_ATTRIBUTE_NAME
        return RESERVED_ATTRIBUTE_NAME

    def resolve_size_criteria(self) -> SizeCriteria:
        if self.size_criteria is not None:
            return self.size_criteria
        return DefaultSizeCriteria(self.message_size_threshold, self.always_through_blob)

    def resolve_blob_name_resolver(self) -> BlobNameResolver:
        return self.blob_name_resolver or DefaultBlobNameResolver()

    def resolve_body_replacer(self) -> MessageBodyReplacer:
        return self.body_replacer or DefaultMessageBodyReplacer()

    def resolve_storage_connection_string(self) -> str | None:
        if self.connection_string_provider is not None:
            return self.connection_string_provider.get_connection_string()
        return self.storage_connection_string


@lru_cache
def get_configuration() -> ClientConfiguration:
    """Return the process-wide configuration loaded from the environment."""
    return ClientConfiguration()
