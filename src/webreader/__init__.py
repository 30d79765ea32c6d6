"""webreader: fetch, render and cache web pages for MCP agents."""

__version__ = "0.1.0"
