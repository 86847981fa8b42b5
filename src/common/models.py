"""
Pydantic models for Burnmail mailbox entities.

This module defines the data models exchanged with the mail.tm API and
persisted locally, providing validation, serialization, and type safety.
Field names are snake_case; the API's camelCase names are kept as aliases
so ``model_dump(by_alias=True)`` reproduces the wire format.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class MailboxModel(BaseModel):
    """Base model for all mailbox entities."""

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to its JSON wire representation."""
        return self.model_dump(mode="json", by_alias=True)


class Address(MailboxModel):
    """An email address with an optional display name."""

    address: str = Field(default="", description="Email address")
    name: str = Field(default="", description="Display name")

    @field_validator("name", mode="before")
    @classmethod
    def ensure_name(cls, v: Any) -> str:
        """The API sends null for missing display names."""
        return v or ""

    def __str__(self) -> str:
        if self.name and self.name != self.address:
            return f"{self.name} <{self.address}>"
        return self.address


class MessageSummary(MailboxModel):
    """A message as it appears in the inbox listing."""

    id: str = Field(..., description="Message identifier")
    account_id: str = Field(default="", alias="accountId")
    msgid: str = Field(default="", description="RFC 5322 Message-ID")
    from_: Address = Field(default_factory=Address, alias="from")
    to: list[Address] = Field(default_factory=list)
    subject: str = Field(default="", description="Message subject")
    intro: str = Field(default="", description="Preview snippet")
    seen: bool = Field(default=False, description="Whether the message is read")
    is_deleted: bool = Field(default=False, alias="isDeleted")
    has_attachments: bool = Field(default=False, alias="hasAttachments")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    download_url: str = Field(default="", alias="downloadUrl")
    created_at: datetime = Field(default=EPOCH, alias="createdAt")
    updated_at: datetime = Field(default=EPOCH, alias="updatedAt")

    @field_validator("subject", "intro", "msgid", "download_url", mode="before")
    @classmethod
    def ensure_text(cls, v: Any) -> str:
        """Normalise null text fields to empty strings."""
        return v or ""

    @field_validator("to", mode="before")
    @classmethod
    def ensure_list(cls, v: Any) -> list:
        """Ensure recipient field is a list."""
        if v is None:
            return []
        return list(v)

    @property
    def sender(self) -> str:
        """The sender's email address."""
        return self.from_.address

    def with_seen(self, seen: bool = True) -> "MessageSummary":
        """Return a copy with the read flag changed."""
        return self.model_copy(update={"seen": seen})


class Attachment(MailboxModel):
    """Attachment descriptor; the bytes are fetched on demand."""

    id: str = Field(..., description="Attachment identifier")
    filename: str = Field(default="attachment", description="File name")
    content_type: str = Field(
        default="application/octet-stream", alias="contentType"
    )
    disposition: str = Field(default="attachment")
    transfer_encoding: str = Field(default="", alias="transferEncoding")
    related: bool = Field(default=False)
    size: int = Field(default=0, ge=0, description="Size in bytes")
    download_url: str = Field(default="", alias="downloadUrl")

    @property
    def size_kb(self) -> float:
        """Size in kilobytes."""
        return self.size / 1024.0


class MessageDetail(MessageSummary):
    """A fully fetched message including body and attachments."""

    cc: list[Any] = Field(default_factory=list)
    bcc: list[Any] = Field(default_factory=list)
    flagged: bool = Field(default=False)
    verifications: Any = Field(default=None)
    retention: bool = Field(default=False)
    retention_date: Optional[datetime] = Field(None, alias="retentionDate")
    text: str = Field(default="", description="Plain text body")
    html: list[str] = Field(default_factory=list, description="HTML fragments")
    attachments: list[Attachment] = Field(default_factory=list)

    @field_validator("text", mode="before")
    @classmethod
    def ensure_body(cls, v: Any) -> str:
        """Normalise a null body to an empty string."""
        return v or ""

    @field_validator("html", "cc", "bcc", "attachments", mode="before")
    @classmethod
    def ensure_sequence(cls, v: Any) -> list:
        """Normalise null collections; a lone HTML string becomes one fragment."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return list(v)

    @property
    def html_source(self) -> str:
        """All HTML fragments joined into one document."""
        return "".join(self.html)


class Domain(MailboxModel):
    """A mail domain offered by the provider."""

    id: str = Field(..., description="Domain identifier")
    domain: str = Field(..., description="Domain name")
    is_active: bool = Field(default=False, alias="isActive")
    is_private: bool = Field(default=False, alias="isPrivate")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class Account(MailboxModel):
    """A provider account as returned by the API."""

    id: str = Field(..., description="Account identifier")
    address: str = Field(..., description="Email address")
    quota: int = Field(default=0)
    used: int = Field(default=0)
    is_disabled: bool = Field(default=False, alias="isDisabled")
    is_deleted: bool = Field(default=False, alias="isDeleted")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class AuthToken(MailboxModel):
    """Bearer token issued by the login endpoint."""

    token: str = Field(..., description="Bearer token")
    id: str = Field(default="", description="Account identifier")


class AccountData(MailboxModel):
    """Locally stored account credentials."""

    address: str = Field(..., description="Email address")
    password: str = Field(..., description="Account password")
    token: str = Field(default="", description="Bearer token")
    account_id: str = Field(default="", alias="accountId")
    created_at: str = Field(default="", alias="createdAt")


class CacheSnapshot(BaseModel):
    """The persisted message listing with the time it was taken."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[MessageSummary] = Field(default_factory=list)
    timestamp: datetime = Field(..., description="When the snapshot was taken")

    def age_seconds(self, now: datetime) -> float:
        """Seconds elapsed between the snapshot and ``now``."""
        timestamp = self.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return (now - timestamp).total_seconds()
