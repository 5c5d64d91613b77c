"""Retrieval package.

Module scope:
- `web.web_module`: best-effort web search (`SearchProvider` port).
"""
