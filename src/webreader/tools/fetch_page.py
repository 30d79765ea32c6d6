"""fetch_page: paginated plain text of a web page."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from webreader.extraction import parse_document
from webreader.models.tools import FetchPageInput, FetchPageOutput
from webreader.tools._common import Timings, fetch_ok

if TYPE_CHECKING:
    from webreader.state import AppState

DESCRIPTION = (
    "Fetch web page content at a given URL and return paginated text. Use "
    "`render_js: true` for JavaScript-heavy sites (SPAs, Google Search, Reddit) and "
    "`render_js: false` (default) for faster fetching of static content. Returns cleaned "
    "text with HTML stripped. Pair with search_page: find positions there, then read the "
    "surrounding text here with offset/limit."
)


async def handle(params: FetchPageInput, state: AppState) -> dict[str, Any]:
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

    text = document.text
    total = len(text)
    start = min(params.offset, total)
    end = min(params.offset + params.limit, total)
    window = text[start:end]
    has_more = end < total

    output = FetchPageOutput(
        url=params.url,
        text=window,
        title=document.title if params.include_metadata else None,
        description=document.description if params.include_metadata else None,
        content_length=total,
        returned_length=len(window),
        offset=params.offset,
        has_more=has_more,
        next_offset=end if has_more else None,
        links=document.links,
        statistics=timings.statistics(response),
    )
    return output.model_dump(mode="json")
