"""Inbound email normalization.

The mail provider posts each reply either as pre-split form fields
(to, from, subject, text, html) or, when raw forwarding is enabled, as the
full MIME source. Both shapes are reduced to one InboundEmail record and
attachments are saved to attachment storage on the way through.
"""

import asyncio
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from infrastructure.ingest.mime_parser import (
    parse_mime_message,
    extract_metadata,
    extract_attachments,
    AttachmentInfo,
    EmailMetadata,
)
from observability.metrics import inbound_attachments_total
from .ports import AttachmentStoragePort
from .schemas import AttachmentDescriptor

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9.-]")
DEFAULT_ATTACHMENT_NAME = "attachment"


@dataclass
class InboundEmailPayload:
    """Webhook fields as posted by the mail provider."""
    to: Optional[str] = None
    from_email: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    envelope: Optional[str] = None
    raw_email: Optional[Union[str, bytes]] = None


@dataclass
class InboundEmail:
    """Canonical inbound email after normalization."""
    to: Optional[str] = None
    from_email: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    message_id: Optional[str] = None
    attachments: List[AttachmentDescriptor] = field(default_factory=list)


def sanitize_filename(filename: Optional[str]) -> str:
    """Keep only [A-Za-z0-9.-] from an attachment's original name."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("", filename or "")
    return cleaned or DEFAULT_ATTACHMENT_NAME


def generate_attachment_filename(original: Optional[str]) -> str:
    """Collision-resistant storage name: random id + sanitized original name."""
    return f"{uuid.uuid4().hex}-{sanitize_filename(original)}"


def _parse_envelope(envelope: Optional[str]) -> Optional[Dict[str, Any]]:
    if not envelope:
        return None
    try:
        parsed = json.loads(envelope)
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not parse envelope: {e}")
        return None
    return parsed if isinstance(parsed, dict) else None


def _envelope_address(envelope: Optional[Dict[str, Any]], key: str) -> Optional[str]:
    """First address under `key`; SendGrid sends `to` as a list and `from` as a string."""
    if not envelope:
        return None
    value = envelope.get(key)
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, str) and value else None


def _first_present(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


async def save_attachments(
    attachments: List[AttachmentInfo],
    storage: AttachmentStoragePort,
) -> List[AttachmentDescriptor]:
    """Persist attachments one by one.

    A failure on one attachment is logged and skipped; the remaining
    attachments are still saved.
    """
    saved: List[AttachmentDescriptor] = []

    for attachment in attachments:
        stored_name = generate_attachment_filename(attachment.filename)
        try:
            stored = await storage.store_attachment(
                filename=stored_name,
                content=attachment.content,
                mime_type=attachment.mime_type or "application/octet-stream",
            )
        except Exception as e:
            inbound_attachments_total.labels(status="failed").inc()
            logger.error(f"Failed to save attachment {attachment.filename!r}: {e}")
            continue

        inbound_attachments_total.labels(status="saved").inc()
        saved.append(AttachmentDescriptor(
            filename=attachment.filename or DEFAULT_ATTACHMENT_NAME,
            storage_path=stored.storage_path,
            mime_type=stored.mime_type,
            size_bytes=attachment.size_bytes,
        ))
        logger.info(f"Saved attachment {attachment.filename!r} as {stored_name}")

    return saved


def _parse_raw_email(raw_email: Union[str, bytes]) -> Tuple[EmailMetadata, List[AttachmentInfo]]:
    msg = parse_mime_message(raw_email)
    return extract_metadata(msg), extract_attachments(msg)


async def _fill_from_raw(
    email: InboundEmail,
    raw_email: Union[str, bytes],
    storage: AttachmentStoragePort,
) -> None:
    # Raw sources can run to tens of megabytes; parse them off the event loop
    loop = asyncio.get_running_loop()
    try:
        metadata, attachments = await loop.run_in_executor(None, _parse_raw_email, raw_email)
    except Exception as e:
        logger.error(f"Failed to parse raw email: {e}")
        return

    email.to = _first_present(email.to, metadata.to_email)
    email.from_email = _first_present(email.from_email, metadata.from_email)
    email.subject = _first_present(email.subject, metadata.subject)
    email.text = _first_present(email.text, metadata.text)
    email.html = _first_present(email.html, metadata.html)
    email.message_id = metadata.message_id

    logger.info(
        f"Parsed raw email: text_length={len(email.text or '')}, "
        f"html_length={len(email.html or '')}, attachments={len(attachments)}"
    )

    if attachments:
        email.attachments = await save_attachments(attachments, storage)


async def normalize_inbound_email(
    payload: InboundEmailPayload,
    storage: AttachmentStoragePort,
) -> InboundEmail:
    """Build the canonical inbound email from a webhook payload.

    Direct fields win over values recovered from the raw MIME source; raw
    values only fill fields that were absent or empty. A raw source that
    cannot be parsed is logged and the direct fields are used as they are.
    Addresses still missing after that are taken from the SMTP envelope.
    """
    email = InboundEmail(
        to=payload.to or None,
        from_email=payload.from_email or None,
        subject=payload.subject or None,
        text=payload.text or None,
        html=payload.html or None,
    )

    if payload.raw_email:
        await _fill_from_raw(email, payload.raw_email, storage)

    envelope = _parse_envelope(payload.envelope)
    email.to = _first_present(email.to, _envelope_address(envelope, "to"))
    email.from_email = _first_present(email.from_email, _envelope_address(envelope, "from"))

    return email
