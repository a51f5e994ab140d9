"""Plain-text order summary appended to outbound order emails.

Each ordered item carries a free-form options blob (`selectedOptions` or
`options`). The blob is parsed into typed option variants so every known
category renders with its own formatter:

- TextOption: ordinary key/value options ("Size: Medium")
- ArtworkOption: the `artworkOption` choice
- CustomTextOption: the `customText` block, either structured or free text
"""

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from models.order import Order

ARTWORK_KEY = "artworkOption"
CUSTOM_TEXT_KEY = "customText"

ARTWORK_LABELS = {
    "use_existing": "Use existing artwork",
    "send_later": "Will send later",
}

DOUBLE_RULE = "═" * 63
SINGLE_RULE = "─" * 63
OPTION_INDENT = "   "

_CAMEL_BOUNDARY_RE = re.compile(r"([A-Z])")


def humanize_option_key(key: str) -> str:
    """'schoolName' -> 'School Name'."""
    if not key:
        return key
    return key[0].upper() + _CAMEL_BOUNDARY_RE.sub(r" \1", key[1:])


class TextOption(BaseModel):
    kind: Literal["text"] = "text"
    label: str
    value: str

    def render(self) -> List[str]:
        return [f"{self.label}: {self.value}"]


class ArtworkOption(BaseModel):
    kind: Literal["artwork"] = "artwork"
    choice: str

    def render(self) -> List[str]:
        return [f"Artwork: {ARTWORK_LABELS.get(self.choice, self.choice)}"]


class CustomTextOption(BaseModel):
    """Custom print text: headline/subheadline/body fields or one free-text string."""
    kind: Literal["custom_text"] = "custom_text"
    headline: Optional[str] = None
    subheadline: Optional[str] = None
    body_text: Optional[str] = None
    free_text: Optional[str] = None

    def render(self) -> List[str]:
        if self.free_text:
            return [f"Custom Text: {self.free_text}"]

        lines = []
        if self.headline:
            lines.append(f"Headline: {self.headline}")
        if self.subheadline:
            lines.append(f"Subheadline: {self.subheadline}")
        if self.body_text:
            lines.append(f"Body Text: {self.body_text}")
        return lines


ItemOption = Annotated[
    Union[TextOption, ArtworkOption, CustomTextOption],
    Field(discriminator="kind"),
]

_item_options_adapter = TypeAdapter(List[ItemOption])


def parse_item_options(raw: Optional[Dict[str, Any]]) -> List[ItemOption]:
    """Turn an item's options blob into typed options.

    Plain options keep their original order and come first, followed by the
    artwork choice and the custom text block. Empty values are skipped.
    """
    if not raw or not isinstance(raw, dict):
        return []

    entries: List[Dict[str, Any]] = []
    for key, value in raw.items():
        if key in (ARTWORK_KEY, CUSTOM_TEXT_KEY) or not value:
            continue
        entries.append({"kind": "text", "label": humanize_option_key(key), "value": str(value)})

    artwork = raw.get(ARTWORK_KEY)
    if artwork:
        entries.append({"kind": "artwork", "choice": str(artwork)})

    custom_text = raw.get(CUSTOM_TEXT_KEY)
    if custom_text:
        if isinstance(custom_text, dict):
            entries.append({
                "kind": "custom_text",
                "headline": custom_text.get("headline") or None,
                "subheadline": custom_text.get("subheadline") or None,
                "body_text": custom_text.get("bodyText") or None,
            })
        else:
            entries.append({"kind": "custom_text", "free_text": str(custom_text)})

    return _item_options_adapter.validate_python(entries)


def _contact_lines(order: Order) -> List[str]:
    shipping = order.shipping_info or {}
    lines = [f"Order #:     {order.order_number}"]

    if shipping.get("isInternalOrder"):
        lines.append("Type:        Internal Academica Order")
        lines.append(f"Contact:     {shipping.get('contactName') or 'N/A'}")
        lines.append(f"Department:  {shipping.get('department') or 'N/A'}")
    else:
        lines.append(f"School:      {shipping.get('schoolName') or 'N/A'}")
        lines.append(f"Contact:     {shipping.get('contactName') or 'N/A'}")
        if shipping.get("positionTitle"):
            lines.append(f"Position:    {shipping['positionTitle']}")

    lines.append(f"Phone:       {shipping.get('phone') or 'N/A'}")
    lines.append(f"Email:       {shipping.get('email') or 'N/A'}")
    return lines


def _item_lines(index: int, item: Dict[str, Any]) -> List[str]:
    lines = [f"{index}. {item.get('name', '')}"]
    raw_options = item.get("selectedOptions") or item.get("options") or {}
    for option in parse_item_options(raw_options):
        lines.extend(f"{OPTION_INDENT}{line}" for line in option.render())
    return lines


def render_order_summary(order: Order) -> str:
    """Render the ORDER DETAILS / ORDER ITEMS block for an order."""
    lines = [
        DOUBLE_RULE,
        "ORDER DETAILS".center(63).rstrip(),
        DOUBLE_RULE,
        "",
    ]
    lines.extend(_contact_lines(order))
    lines.extend([
        "",
        SINGLE_RULE,
        "ORDER ITEMS".center(63).rstrip(),
        SINGLE_RULE,
        "",
    ])

    for index, item in enumerate(order.items or [], start=1):
        lines.extend(_item_lines(index, item))
        lines.append("")

    lines.append(DOUBLE_RULE)
    return "\n".join(lines) + "\n"


def compose_plain_text(body: str, order: Order) -> str:
    """Staff message followed by the order summary."""
    return f"{body}\n\n{render_order_summary(order)}"
