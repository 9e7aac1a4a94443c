"""Turn a decoded form submission into a :class:`PostCandidate`.

Kept free of framework types so the rules are testable on plain tuples.
Two media shapes are understood, in this order:

1. file parts of a multipart form, in the order they were sent;
2. Twilio MMS links (``NumMedia`` plus ``MediaUrl{N}`` /
   ``MediaContentType{N}``), ordered by ``N``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import BinaryIO, Protocol

from pydantic import ValidationError

from backend.app.models.post import MediaItem, PostCandidate

BODY_FIELD = "Body"
NUM_MEDIA_FIELD = "NumMedia"
MAX_MEDIA_ITEMS = 10


class FilePart(Protocol):
    """The parts of an uploaded file the parser reads."""

    file: BinaryIO
    filename: str | None
    content_type: str | None


FormValue = str | FilePart


def _file_media(fields: Sequence[tuple[str, FormValue]], errors: list[str]) -> list[MediaItem]:
    media: list[MediaItem] = []
    for name, value in fields:
        if isinstance(value, str):
            continue
        content = value.file.read()
        if not content:
            errors.append(f"File part '{name}' is empty")
            continue
        media.append(
            MediaItem(
                content=content,
                content_type=value.content_type or "application/octet-stream",
                filename=value.filename,
            )
        )
    return media


def _mms_media(text: dict[str, str], errors: list[str]) -> list[MediaItem]:
    raw_count = text.get(NUM_MEDIA_FIELD)
    if raw_count is None:
        return []
    try:
        count = int(raw_count)
    except ValueError:
        errors.append(f"{NUM_MEDIA_FIELD} is not an integer: {raw_count!r}")
        return []
    if count < 0:
        errors.append(f"{NUM_MEDIA_FIELD} must not be negative")
        return []

    media: list[MediaItem] = []
    for i in range(count):
        url = text.get(f"MediaUrl{i}", "").strip()
        if not url:
            errors.append(f"MediaUrl{i} is missing")
            continue
        media.append(
            MediaItem(
                source_url=url,
                content_type=text.get(f"MediaContentType{i}") or "application/octet-stream",
            )
        )
    return media


def parse_post(
    fields: Sequence[tuple[str, FormValue]],
    *,
    sender: str,
) -> tuple[PostCandidate | None, list[str]]:
    """Validate form *fields* and build a post candidate.

    Returns ``(candidate, errors)``; *candidate* is ``None`` whenever
    *errors* is non-empty. Nothing partial is ever returned.
    """
    errors: list[str] = []

    text: dict[str, str] = {}
    for name, value in fields:
        if isinstance(value, str):
            text.setdefault(name, value)

    body = text.get(BODY_FIELD)
    if body is None:
        errors.append(f"Missing required field '{BODY_FIELD}'")

    try:
        media = _file_media(fields, errors) + _mms_media(text, errors)
    except ValidationError as exc:
        errors.append(f"Invalid media item: {exc.error_count()} error(s)")
        media = []

    if len(media) > MAX_MEDIA_ITEMS:
        errors.append(f"Too many media items ({len(media)} > {MAX_MEDIA_ITEMS})")

    if body is not None and not body.strip() and not media and not errors:
        errors.append("Post has neither text nor media")

    if errors:
        return None, errors

    assert body is not None
    return PostCandidate(sender=sender, body=body, media=tuple(media)), []
