"""Pydantic models for posts as they move through ingestion, upload and storage."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_HOSTED_PREFIXES = ("https://", "http://")


def is_hosted_url(url: str) -> bool:
    """Return True if *url* looks like a resolved, externally hosted link."""
    return bool(url) and url.startswith(_HOSTED_PREFIXES)


class MediaItem(BaseModel):
    """An attachment waiting to be uploaded to the media host.

    Either ``content`` (a multipart file part) or ``source_url`` (a Twilio
    MMS media link) is set, never both.
    """

    model_config = ConfigDict(frozen=True)

    content_type: str = "application/octet-stream"
    content: bytes | None = None
    source_url: str | None = None
    filename: str | None = None

    @model_validator(mode="after")
    def _exactly_one_source(self) -> MediaItem:
        if (self.content is None) == (self.source_url is None):
            raise ValueError("media item needs exactly one of content or source_url")
        if self.content is not None and not self.content:
            raise ValueError("media item content must be non-empty")
        return self

    @property
    def size(self) -> int:
        return len(self.content) if self.content is not None else 0


class PostCandidate(BaseModel):
    """A validated submission whose media are not yet hosted."""

    model_config = ConfigDict(frozen=True)

    sender: str
    body: str
    media: tuple[MediaItem, ...] = ()


class NewPost(BaseModel):
    """A fully resolved post, ready to be written to the store."""

    model_config = ConfigDict(frozen=True)

    sender: str
    body: str
    media_urls: tuple[str, ...] = ()

    @field_validator("media_urls")
    @classmethod
    def _all_hosted(cls, urls: tuple[str, ...]) -> tuple[str, ...]:
        for url in urls:
            if not is_hosted_url(url):
                raise ValueError(f"unresolved media reference: {url!r}")
        return urls


class StoredPost(BaseModel):
    """A post read back from the store, as handed to the renderer."""

    model_config = ConfigDict(frozen=True)

    id: int
    sender: str
    body: str
    media_urls: tuple[str, ...] = ()
    created_at: datetime


class PageResult(BaseModel):
    """One window of posts plus whether more exist beyond it."""

    model_config = ConfigDict(frozen=True)

    posts: list[StoredPost] = Field(default_factory=list)
    has_more: bool = False
