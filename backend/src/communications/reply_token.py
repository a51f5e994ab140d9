"""Reply-to token codec.

Outbound order emails carry a synthetic Reply-To address of the form
`order-<slug>@<inbound-domain>`, where `<slug>` is the first 8 characters of
the order id. When the customer replies, the mail provider posts the message
to the inbound webhook and the token recovered from the `To` header routes it
back to the order thread.

    >>> encode_reply_token("a1b2c3d4-e5f6-7890-abcd-ef1234567890")
    'ord-a1b2c3d4'
    >>> build_reply_address("ord-a1b2c3d4", "parse.example.com")
    'order-a1b2c3d4@parse.example.com'
    >>> decode_reply_token("Orders <order-a1b2c3d4@parse.example.com>")
    'ord-a1b2c3d4'
"""

import re
from typing import Optional

TOKEN_PREFIX = "ord-"
ADDRESS_PREFIX = "order-"
SLUG_LENGTH = 8

_REPLY_ADDRESS_RE = re.compile(r"order-([a-z0-9-]+)@", re.IGNORECASE)


def encode_reply_token(order_id: str) -> str:
    """Derive the reply token for an order id."""
    return f"{TOKEN_PREFIX}{str(order_id)[:SLUG_LENGTH]}"


def token_slug(token: str) -> str:
    """Strip the `ord-` prefix from a token."""
    if token.startswith(TOKEN_PREFIX):
        return token[len(TOKEN_PREFIX):]
    return token


def build_reply_address(token: str, inbound_domain: str) -> str:
    """Build the synthetic Reply-To address for a token."""
    return f"{ADDRESS_PREFIX}{token_slug(token)}@{inbound_domain}"


def decode_reply_token(to_address) -> Optional[str]:
    """Recover the reply token from a `To` header value.

    The header may be a bare address, a display-name form, or a list of
    recipients; the first `order-<slug>@` match wins. Returns None when no
    reply address is present, including for empty or non-string input.
    """
    if not to_address or not isinstance(to_address, str):
        return None

    match = _REPLY_ADDRESS_RE.search(to_address)
    if not match:
        return None
    return f"{TOKEN_PREFIX}{match.group(1)}"
