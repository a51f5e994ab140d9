"""MIME Parser for raw inbound email.

Handles parsing of raw MIME source forwarded by the mail provider, extraction
of header metadata and body parts, and attachment extraction. Supports
RFC 2047 encoded headers and filenames and nested multipart messages.
"""

import email
import email.policy
import logging
from email.message import EmailMessage
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


class AttachmentInfo:
    """Information about an email attachment."""

    def __init__(
        self,
        filename: str,
        content: bytes,
        mime_type: str,
        size_bytes: int
    ):
        self.filename = filename
        self.content = content
        self.mime_type = mime_type
        self.size_bytes = size_bytes

    def __repr__(self):
        return f"<AttachmentInfo(filename={self.filename!r}, mime_type={self.mime_type}, size={self.size_bytes})>"


class EmailMetadata:
    """Extracted metadata and body content from an email message."""

    def __init__(
        self,
        message_id: Optional[str],
        from_email: Optional[str],
        to_email: Optional[str],
        subject: Optional[str],
        text: Optional[str] = None,
        html: Optional[str] = None,
    ):
        self.message_id = message_id
        self.from_email = from_email
        self.to_email = to_email
        self.subject = subject
        self.text = text
        self.html = html


def parse_mime_message(raw_mime: Union[bytes, str]) -> EmailMessage:
    """Parse raw MIME source into an EmailMessage.

    Args:
        raw_mime: Raw MIME message (bytes, or str as posted in a form field)

    Returns:
        EmailMessage: Parsed MIME message

    Raises:
        ValueError: If MIME parsing fails
    """
    if isinstance(raw_mime, str):
        raw_mime = raw_mime.encode("utf-8", errors="surrogateescape")

    try:
        msg = email.message_from_bytes(
            raw_mime,
            policy=email.policy.default
        )
    except Exception as e:
        logger.error(f"Failed to parse MIME message: {e}")
        raise ValueError(f"Invalid MIME message: {e}")

    if not msg.keys() and not msg.get_payload():
        raise ValueError("Invalid MIME message: no headers or content")

    return msg


def _header(msg: EmailMessage, name: str) -> Optional[str]:
    value = msg.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _body_part(msg: EmailMessage, subtype: str) -> Optional[str]:
    part = msg.get_body(preferencelist=(subtype,))
    if part is None or part.get_content_subtype() != subtype:
        return None
    try:
        return part.get_content()
    except (LookupError, UnicodeError) as e:
        # Unknown or lying charset: fall back to a lossy decode
        logger.warning(f"Could not decode text/{subtype} part: {e}")
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def extract_metadata(msg: EmailMessage) -> EmailMetadata:
    """Extract headers and the plain-text / HTML bodies from a parsed message.

    Args:
        msg: Parsed email message

    Returns:
        EmailMetadata: Extracted metadata
    """
    return EmailMetadata(
        message_id=_header(msg, 'Message-ID'),
        from_email=_header(msg, 'From'),
        to_email=_header(msg, 'To'),
        subject=_header(msg, 'Subject'),
        text=_body_part(msg, 'plain'),
        html=_body_part(msg, 'html'),
    )


def extract_attachments(msg: EmailMessage) -> List[AttachmentInfo]:
    """Extract all file attachments from MIME message.

    Walks the entire MIME tree. A part counts as an attachment when it is not
    a multipart container, carries a filename, and has an `attachment` or
    `inline` disposition (pasted screenshots arrive inline). Skips parts
    without a filename and parts with no content.

    Args:
        msg: Parsed email message

    Returns:
        List[AttachmentInfo]: List of extracted attachments
    """
    attachments = []

    for part in msg.walk():
        # Skip multipart containers
        if part.get_content_maintype() == 'multipart':
            continue

        if part.get_content_disposition() not in ('attachment', 'inline'):
            continue

        # Get filename (handles RFC 2047 / RFC 2231 encoding)
        filename = part.get_filename()
        if not filename:
            continue

        try:
            content = part.get_payload(decode=True)
        except Exception as e:
            logger.error(f"Failed to decode attachment {filename}: {e}")
            continue

        if not content:
            logger.warning(f"Attachment {filename} has no content, skipping")
            continue

        mime_type = part.get_content_type()
        attachments.append(AttachmentInfo(
            filename=filename,
            content=content,
            mime_type=mime_type,
            size_bytes=len(content)
        ))

        logger.info(
            f"Extracted attachment: {filename} ({mime_type}, {len(content)} bytes)"
        )

    return attachments
