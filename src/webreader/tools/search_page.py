"""search_page: case-insensitive text search within a web page."""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING, Any

from webreader.extraction import parse_document
from webreader.models.tools import SearchMatch, SearchPageInput, SearchPageOutput
from webreader.tools._common import Timings, fetch_ok

if TYPE_CHECKING:
    from webreader.state import AppState

DESCRIPTION = (
    "Search for text within a web page and return every match position with context. "
    "Use fetch_page with the returned positions as offset to read the full content. "
    "Shares the cache with fetch_page. Use `render_js: true` for JavaScript-heavy sites."
)

CONTEXT_RADIUS = 100


def find_matches(text: str, query: str) -> list[SearchMatch]:
    """Non-overlapping, case-insensitive matches with ``CONTEXT_RADIUS`` chars either side."""
    matches: list[SearchMatch] = []
    for found in re.finditer(re.escape(query), text, re.IGNORECASE):
        start = max(found.start() - CONTEXT_RADIUS, 0)
        end = min(found.end() + CONTEXT_RADIUS, len(text))
        prefix = "..." if start > 0 else ""
        suffix = "..." if end < len(text) else ""
        matches.append(
            SearchMatch(position=found.start(), context=f"{prefix}{text[start:end]}{suffix}")
        )
    return matches


async def handle(params: SearchPageInput, state: AppState) -> dict[str, Any]:
    timings = Timings.start()
    response = await fetch_ok(state, params.url, params, params.render_js)
    timings.fetched = timings.parse_started = time.perf_counter()

    document = parse_document(
        response.payload,
        response.meta.content_type,
        params.url,
        include_links=params.include_links,
        same_site_only=params.same_site_links_only,
    )
    timings.parsed = time.perf_counter()

    matches = find_matches(document.text, params.query)
    search_time = time.perf_counter() - timings.parsed

    output = SearchPageOutput(
        url=params.url,
        query=params.query,
        matches=matches,
        total_matches=len(matches),
        title=document.title if params.include_metadata else None,
        description=document.description if params.include_metadata else None,
        webpage_length=len(document.text),
        links=document.links,
        statistics=timings.statistics(response, search_time=search_time),
    )
    return output.model_dump(mode="json")
