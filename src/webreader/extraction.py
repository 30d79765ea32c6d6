"""Turn fetched payloads into plain text, page metadata and links."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from webreader.errors import ErrorCode, WebReaderError
from webreader.models.tools import Link

_WHITESPACE_RE = re.compile(r"\s+")
_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)
_HTML_TYPES = frozenset({"text/html", "application/xhtml+xml"})
_NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]
LINK_CONTEXT_CHARS = 50


@dataclass
class ParsedDocument:
    text: str
    title: str | None = None
    description: str | None = None
    links: list[Link] = field(default_factory=list)


def _normalize(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_html(content_type: str) -> bool:
    mime = content_type.split(";", 1)[0].strip().lower()
    return not mime or mime in _HTML_TYPES


def decode_payload(payload: bytes, content_type: str) -> str:
    match = _CHARSET_RE.search(content_type)
    charset = match.group(1) if match else "utf-8"
    try:
        return payload.decode(charset)
    except (LookupError, UnicodeDecodeError) as exc:
        raise WebReaderError(
            code=ErrorCode.DECODE_FAILED,
            message=f"Failed to decode page content as {charset}",
            suggestion="The page may be binary content rather than text.",
        ) from exc


def parse_document(
    payload: bytes,
    content_type: str,
    page_url: str,
    *,
    include_links: bool = False,
    same_site_only: bool = True,
) -> ParsedDocument:
    """Extract text (and optionally links) from a payload.

    Non-HTML payloads are returned as decoded text with no title or links.
    """
    decoded = decode_payload(payload, content_type)
    if not is_html(content_type):
        return ParsedDocument(text=decoded)

    soup = BeautifulSoup(decoded, "html.parser")
    for element in soup(_NON_CONTENT_TAGS):
        element.decompose()

    title = _normalize(soup.title.get_text()) if soup.title else None
    meta = soup.find("meta", attrs={"name": "description"})
    description = meta.get("content") if isinstance(meta, Tag) else None

    return ParsedDocument(
        text=_normalize(soup.get_text(" ")),
        title=title or None,
        description=str(description) if description else None,
        links=extract_links(soup, page_url, same_site_only) if include_links else [],
    )


def extract_links(soup: BeautifulSoup, page_url: str, same_site_only: bool) -> list[Link]:
    """Anchors with visible text, resolved against ``page_url``.

    Fragment and ``javascript:`` hrefs are skipped, and each href is kept once.
    """
    page_host = urlparse(page_url).hostname
    seen: set[str] = set()
    links: list[Link] = []
    for anchor in soup.select("a[href]"):
        text = _normalize(anchor.get_text(" "))
        href = str(anchor.get("href", ""))
        if not text or "#" in href or "javascript" in href or href in seen:
            continue
        seen.add(href)

        absolute = urljoin(page_url, href)
        if same_site_only and urlparse(absolute).hostname != page_host:
            continue

        before = anchor.find_previous_sibling(True)
        after = anchor.find_next_sibling(True)
        context_before = _normalize(before.get_text(" "))[-LINK_CONTEXT_CHARS:] if before else ""
        context_after = _normalize(after.get_text(" "))[:LINK_CONTEXT_CHARS] if after else ""

        links.append(
            Link(
                text=text,
                url=absolute,
                context_before=context_before or None,
                context_after=context_after or None,
            )
        )
    return links
