from __future__ import annotations

import re

from pydantic import BaseModel, field_validator, model_validator

SEARCH_QUERY_PLACEHOLDER = "{{{SEARCH_QUERY}}}"

# engine name -> (URL template, renders JavaScript by default)
SEARCH_ENGINES: dict[str, tuple[str, bool]] = {
    "google": ("https://www.google.com/search?q={{{SEARCH_QUERY}}}", True),
    "duckduckgo": ("https://duckduckgo.com/?q={{{SEARCH_QUERY}}}", True),
    "duckduckgo-html": ("https://duckduckgo.com/html/?q={{{SEARCH_QUERY}}}", False),
    "duckduckgo-lite": ("https://duckduckgo.com/lite/?q={{{SEARCH_QUERY}}}", False),
    "bing": ("https://www.bing.com/search?q={{{SEARCH_QUERY}}}", True),
    "brave": ("https://search.brave.com/search?q={{{SEARCH_QUERY}}}", False),
}

_TOKEN_RE = re.compile(r"^[!#$%&'*+.^_`|~0-9A-Za-z-]+$")


def _validate_http_url(v: str) -> str:
    v = v.strip()
    if len(v) > 2048:
        raise ValueError("url must not exceed 2048 characters")
    if not v.startswith(("http://", "https://")):
        raise ValueError("url must use http or https scheme")
    return v


def _check_header_value(name: str, value: str) -> None:
    # Header values go on the wire as ASCII; CR/LF would split the header.
    if not value.isascii() or any(c in value for c in "\r\n\0"):
        raise ValueError(f"{name} must be ASCII without line breaks")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class RequestOptions(BaseModel):
    """Options shared by every tool that goes through the fetch engine."""

    render_js: bool = False
    http_method: str = "GET"
    user_agent: str | None = None
    custom_headers: dict[str, str] = {}
    ignore_cache: bool = False
    include_metadata: bool = True

    @field_validator("http_method")
    @classmethod
    def validate_http_method(cls, v: str) -> str:
        v = v.strip().upper()
        if not _TOKEN_RE.match(v):
            raise ValueError(f"Invalid HTTP method: {v!r}")
        return v

    @field_validator("user_agent")
    @classmethod
    def validate_user_agent(cls, v: str | None) -> str | None:
        if v is not None:
            _check_header_value("user_agent", v)
        return v

    @field_validator("custom_headers")
    @classmethod
    def validate_custom_headers(cls, v: dict[str, str]) -> dict[str, str]:
        for name, value in v.items():
            if not _TOKEN_RE.match(name):
                raise ValueError(f"Invalid header name: {name!r}")
            _check_header_value(name, value)
        return v


class PageOptions(RequestOptions):
    url: str
    include_links: bool = False
    same_site_links_only: bool = True

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_http_url(v)


class FetchPageInput(PageOptions):
    offset: int = 0
    limit: int = 2500

    @field_validator("offset")
    @classmethod
    def validate_offset(cls, v: int) -> int:
        if v < 0:
            raise ValueError("offset must be >= 0")
        return v

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: int) -> int:
        if not 1 <= v <= 500_000:
            raise ValueError("limit must be between 1 and 500000")
        return v


class SearchPageInput(PageOptions):
    query: str

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be empty")
        return v


class SearchWebInput(RequestOptions):
    query: str
    engine: str = "duckduckgo-lite"
    custom_search_url: str | None = None
    # None means "use the engine's default"
    render_js: bool | None = None  # type: ignore[assignment]

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        return v

    @model_validator(mode="after")
    def validate_engine(self) -> SearchWebInput:
        # An engine value holding a template is shorthand for engine="custom".
        if self.engine not in SEARCH_ENGINES and SEARCH_QUERY_PLACEHOLDER in self.engine:
            self.custom_search_url = self.engine
            self.engine = "custom"
        if self.engine == "custom":
            if not self.custom_search_url:
                raise ValueError("custom_search_url is required when engine is 'custom'")
            if SEARCH_QUERY_PLACEHOLDER not in self.custom_search_url:
                raise ValueError(f"custom_search_url must contain {SEARCH_QUERY_PLACEHOLDER}")
            self.custom_search_url = _validate_http_url(self.custom_search_url)
        elif self.engine not in SEARCH_ENGINES:
            names = ", ".join(SEARCH_ENGINES)
            raise ValueError(
                f"Invalid engine: {self.engine!r}. Must be one of: {names}, or custom "
                f"with a URL template containing {SEARCH_QUERY_PLACEHOLDER}"
            )
        return self

    @property
    def url_template(self) -> str:
        if self.engine == "custom":
            return self.custom_search_url or ""
        return SEARCH_ENGINES[self.engine][0]

    @property
    def effective_render_js(self) -> bool:
        if self.render_js is not None:
            return self.render_js
        if self.engine == "custom":
            return False
        return SEARCH_ENGINES[self.engine][1]


class ClearCacheInput(BaseModel):
    pass


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class Link(BaseModel):
    """A link found on a page, with a little surrounding text."""

    text: str
    url: str
    context_before: str | None = None
    context_after: str | None = None


class FetchStatistics(BaseModel):
    total_time: float
    network_time: float
    parsing_time: float
    cache_hit: bool
    cache_age: float | None  # Seconds
    cache_ttl: float | None  # Seconds
    search_time: float | None = None


class FetchPageOutput(BaseModel):
    url: str
    text: str
    title: str | None
    description: str | None
    content_length: int
    returned_length: int
    offset: int
    has_more: bool
    next_offset: int | None
    links: list[Link]
    statistics: FetchStatistics


class SearchMatch(BaseModel):
    position: int
    context: str


class SearchPageOutput(BaseModel):
    url: str
    query: str
    matches: list[SearchMatch]
    total_matches: int
    title: str | None
    description: str | None
    webpage_length: int
    links: list[Link]
    statistics: FetchStatistics


class SearchWebOutput(BaseModel):
    query: str
    search_engine: str
    search_url: str
    title: str | None
    description: str | None
    links: list[Link]
    link_count: int
    statistics: FetchStatistics


class ClearCacheOutput(BaseModel):
    cleared: bool
    cache_dir: str
