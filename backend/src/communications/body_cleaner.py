"""Reply body extraction: HTML flattening and quote/signature stripping.

Customers reply from Gmail, Outlook, Apple Mail, Yahoo and phones, and every
client quotes the previous message differently. The stripper keeps only the
newly written part of a reply with a single forward pass over the lines,
cutting at the first line that looks like the start of quoted history or a
signature.

This is a heuristic. A reply that genuinely starts a line with
"On Tuesday ..." followed by "... wrote:" will be cut, and quote formats from
unrecognized clients are kept.
"""

import re
from typing import Optional

# Client-specific quote containers. Everything from the marker to the end of
# the document is previous history.
_HTML_QUOTE_PATTERNS = [
    # Gmail
    re.compile(r"<div[^>]*class=[\"'][^\"']*gmail_quote[^\"']*[\"'][^>]*>.*$", re.IGNORECASE | re.DOTALL),
    # Outlook
    re.compile(r"<div[^>]*id=[\"']?appendonsend[\"']?[^>]*>.*$", re.IGNORECASE | re.DOTALL),
    re.compile(r"<blockquote[^>]*>.*</blockquote>", re.IGNORECASE | re.DOTALL),
    # Yahoo
    re.compile(r"<div[^>]*class=[\"'][^\"']*yahoo_quoted[^\"']*[\"'][^>]*>.*$", re.IGNORECASE | re.DOTALL),
]

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_P_CLOSE_RE = re.compile(r"</p>", re.IGNORECASE)
_DIV_CLOSE_RE = re.compile(r"</div>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")

_HTML_ENTITIES = [
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
]

SIGNATURE_DELIMITERS = {"--", "-- ", "---"}

_WROTE_LINE_RE = re.compile(r"^On\s+.+wrote:?\s*$", re.IGNORECASE)
_ON_DATE_START_RE = re.compile(
    r"^On\s+(Mon|Tue|Wed|Thu|Fri|Sat|Sun|Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec|\d)",
    re.IGNORECASE,
)
_WROTE_END_RE = re.compile(r"wrote:?\s*$", re.IGNORECASE)
_FROM_HEADER_RE = re.compile(r"^From:\s*.+$", re.IGNORECASE)
_OUTLOOK_SEPARATOR_RE = re.compile(r"^(_{10,}|-{10,})$")
_ORIGINAL_MESSAGE_RE = re.compile(r"^-+\s*Original Message\s*-+$", re.IGNORECASE)
_HORIZONTAL_RULE_RE = re.compile(r"^[-_=]{3,}$")
_MOBILE_SIGNATURE_RE = re.compile(
    r"^Sent from (my )?(iPhone|iPad|Android|Galaxy|Samsung|Mobile|Outlook)",
    re.IGNORECASE,
)
_GET_OUTLOOK_RE = re.compile(r"^Get Outlook for (iOS|Android)", re.IGNORECASE)

# How many lines after an "On <date> ..." line may hold the "wrote:" ending
WROTE_LOOKAHEAD_LINES = 3


def html_to_text(html: Optional[str]) -> str:
    """Flatten an HTML reply to plain text, dropping quoted history first."""
    if not html:
        return ""

    cleaned = html
    for pattern in _HTML_QUOTE_PATTERNS:
        cleaned = pattern.sub("", cleaned)

    cleaned = _BR_RE.sub("\n", cleaned)
    cleaned = _P_CLOSE_RE.sub("\n\n", cleaned)
    cleaned = _DIV_CLOSE_RE.sub("\n", cleaned)
    cleaned = _TAG_RE.sub("", cleaned)
    for entity, replacement in _HTML_ENTITIES:
        cleaned = cleaned.replace(entity, replacement)

    return cleaned.strip()


def _starts_wrapped_attribution(lines: list[str], index: int, stripped: str) -> bool:
    """Detect "On <date> Name <email> wrote:" split over several lines."""
    if not _ON_DATE_START_RE.match(stripped):
        return False

    end = min(index + 1 + WROTE_LOOKAHEAD_LINES, len(lines))
    for following in lines[index + 1:end]:
        following = following.strip()
        if following and _WROTE_END_RE.search(following):
            return True

    return "<" in stripped and "@" in stripped


def _is_cut_line(lines: list[str], index: int) -> bool:
    stripped = lines[index].strip()

    if stripped in SIGNATURE_DELIMITERS:
        return True
    if _WROTE_LINE_RE.match(stripped):
        return True
    if _starts_wrapped_attribution(lines, index, stripped):
        return True
    if stripped.startswith(">"):
        return True
    if _FROM_HEADER_RE.match(stripped):
        return True
    if _OUTLOOK_SEPARATOR_RE.match(stripped):
        return True
    if _ORIGINAL_MESSAGE_RE.match(stripped):
        return True
    if _HORIZONTAL_RULE_RE.match(stripped):
        return True
    if _MOBILE_SIGNATURE_RE.match(stripped):
        return True
    if _GET_OUTLOOK_RE.match(stripped):
        return True
    return False


def strip_quoted_reply(text: Optional[str]) -> str:
    """Keep only the newly written part of a plain-text reply.

    Lines are kept verbatim up to the first line that starts quoted history
    or a signature. Trailing blank lines are dropped and the result trimmed.
    Applying the function to its own output returns the output unchanged.
    """
    if not text:
        return ""

    lines = text.split("\n")
    kept = []
    for index, line in enumerate(lines):
        if _is_cut_line(lines, index):
            break
        kept.append(line)

    while kept and not kept[-1].strip():
        kept.pop()

    return "\n".join(kept).strip()


def extract_reply_body(text: Optional[str], html: Optional[str]) -> str:
    """Pick the best available body and strip quoted history from it.

    Plain text wins when it has any content; otherwise the HTML body is
    flattened to text.
    """
    if text and text.strip():
        body = text.strip()
    elif html:
        body = html_to_text(html)
    else:
        body = ""

    return strip_quoted_reply(body)
