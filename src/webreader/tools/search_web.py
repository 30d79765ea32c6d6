"""search_web: run a query on a search engine and return the result links."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from webreader.extraction import parse_document
from webreader.models.tools import SEARCH_QUERY_PLACEHOLDER, SearchWebInput, SearchWebOutput
from webreader.tools._common import Timings, fetch_ok

if TYPE_CHECKING:
    from webreader.state import AppState

DESCRIPTION = (
    "Search the web with a search engine (google, duckduckgo, duckduckgo-html, "
    "duckduckgo-lite, bing, brave) or a custom URL template containing "
    f"{SEARCH_QUERY_PLACEHOLDER}. Returns links with context from the results page. "
    "Read discovered URLs with fetch_page or search inside them with search_page."
)


def build_search_url(template: str, query: str) -> str:
    return template.replace(SEARCH_QUERY_PLACEHOLDER, quote(query, safe=""))


async def handle(params: SearchWebInput, state: AppState) -> dict[str, Any]:
    search_url = build_search_url(params.url_template, params.query)

    timings = Timings.start()
    response = await fetch_ok(state, search_url, params, params.effective_render_js)
    timings.fetched = timings.parse_started = time.perf_counter()

    # Result links point off-site by nature, so no same-site filtering here.
    document = parse_document(
        response.payload,
        response.meta.content_type,
        search_url,
        include_links=True,
        same_site_only=False,
    )
    timings.parsed = time.perf_counter()

    output = SearchWebOutput(
        query=params.query,
        search_engine=params.engine,
        search_url=search_url,
        title=document.title if params.include_metadata else None,
        description=document.description if params.include_metadata else None,
        links=document.links,
        link_count=len(document.links),
        statistics=timings.statistics(response),
    )
    return output.model_dump(mode="json")
