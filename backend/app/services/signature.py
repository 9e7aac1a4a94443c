"""Sender authentication for inbound write requests.

Writes arrive from Twilio on behalf of a single allow-listed phone number.
Twilio signs every webhook with the account auth token:

- form-encoded bodies: ``base64(HMAC-SHA1(token, url + k1 + v1 + k2 + v2 ...))``
  with the POST parameters sorted by name;
- any other body: the URL carries ``bodySHA256=<hex sha256 of the body>``
  and the signature covers the URL alone.

The signature arrives in the ``X-Twilio-Signature`` header. The gate fails
closed: anything missing or unparseable is a rejection.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from urllib.parse import parse_qsl, urlsplit

SIGNATURE_HEADER = "x-twilio-signature"
SENDER_FIELD = "From"
FORM_URLENCODED = "application/x-www-form-urlencoded"


@dataclass(frozen=True)
class GateDecision:
    """Outcome of a signature check. ``reason`` is for logs only."""

    accepted: bool
    reason: str = "ok"

    def __bool__(self) -> bool:
        return self.accepted


@runtime_checkable
class SignatureProvider(Protocol):
    """Validates that a request really comes from the allowed sender."""

    def validate(
        self,
        *,
        url: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        params: Sequence[tuple[str, str]] | None,
        allowed_sender: str | None,
        secret: str | None,
    ) -> GateDecision:
        ...


def compute_signature(secret: str, url: str, params: Sequence[tuple[str, str]] = ()) -> str:
    """Return Twilio's base64 HMAC-SHA1 signature for *url* and *params*."""
    payload = url + "".join(f"{k}{v}" for k, v in sorted(params))
    digest = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def body_sha256(raw_body: bytes) -> str:
    return hashlib.sha256(raw_body).hexdigest()


def _is_form_urlencoded(headers: Mapping[str, str]) -> bool:
    content_type = headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower() == FORM_URLENCODED


def _query_value(url: str, name: str) -> str | None:
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == name:
            return value
    return None


class TwilioSignatureProvider:
    """Checks Twilio request signatures and the ``From`` field."""

    def validate(
        self,
        *,
        url: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        params: Sequence[tuple[str, str]] | None,
        allowed_sender: str | None,
        secret: str | None,
    ) -> GateDecision:
        if not secret or not allowed_sender:
            return GateDecision(False, "auth_not_configured")

        signature = headers.get(SIGNATURE_HEADER)
        if not signature:
            return GateDecision(False, "missing_signature")

        if params is None:
            return GateDecision(False, "unparseable_form")

        if _is_form_urlencoded(headers):
            expected = compute_signature(secret, url, params)
        else:
            declared_hash = _query_value(url, "bodySHA256")
            if declared_hash is None:
                return GateDecision(False, "missing_body_hash")
            actual_hash = body_sha256(raw_body).encode("ascii")
            if not hmac.compare_digest(declared_hash.lower().encode("utf-8"), actual_hash):
                return GateDecision(False, "body_hash_mismatch")
            expected = compute_signature(secret, url)

        provided = signature.strip().encode("ascii", "replace")
        if not hmac.compare_digest(expected.encode("ascii"), provided):
            return GateDecision(False, "signature_mismatch")

        senders = [v for k, v in params if k == SENDER_FIELD]
        if len(senders) != 1:
            return GateDecision(False, "missing_sender")
        if senders[0] != allowed_sender:
            return GateDecision(False, "sender_not_allowed")

        return GateDecision(True)
