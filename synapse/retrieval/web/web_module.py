"""Best-effort web search module implementing the `SearchProvider` port.

Architectural role:
    Executes external web search and returns the single best result as a
    `SearchResult(snippet, url)` for the `web_search` tool and for claim
    verification evidence gathering.

Retrieval strategy:
    1. Try each configured provider (Tavily, Brave, SerpAPI, Google Custom Search)
       in order, skipping providers without credentials.
    2. Take the first HTTP(S) result of the first provider that returns one.
    3. When that result has no snippet, fetch the page and extract plain text via
       `trafilatura`.
    4. Strip prompt-injection patterns and normalize whitespace.

Failure model:
    Transient HTTP failures are retried with exponential backoff inside each
    provider call. A provider that still fails is logged and skipped. `search`
    itself never raises: with no usable result it returns `SearchResult.empty()`.

Determinism and performance:
    Deterministic for fixed network responses and configuration. In practice
    results vary with provider ranking and page churn.
"""

from __future__ import annotations

import asyncio
import html
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import httpx
import trafilatura
from dotenv import load_dotenv

from synapse.core.ports import SearchResult

load_dotenv()


logger = logging.getLogger(__name__)


def _provider_order() -> tuple[str, ...]:
    raw = os.getenv("WEB_SEARCH_PROVIDERS", "tavily,brave,serpapi,google")
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class WebModuleConfig:
    """Runtime configuration for `WebSearchModule`.

    Fields are read from environment variables at import time.

    Relevant environment variables:
        - `WEB_SEARCH_PROVIDERS` (comma-separated order)
        - `TAVILY_API_KEY`, `BRAVE_API_KEY`, `SERPAPI_API_KEY`
        - `GOOGLE_SEARCH_API_KEY`, `GOOGLE_SEARCH_CX`
        - `WEB_TIMEOUT_SECONDS`
        - `WEB_MAX_CHARS`
        - `WEB_USER_AGENT`
        - `WEB_RETRY_ATTEMPTS`
        - `WEB_BACKOFF_SECONDS`
    """

    providers: tuple[str, ...] = field(default_factory=_provider_order)
    tavily_api_key: str = os.getenv("TAVILY_API_KEY", "").strip()
    brave_api_key: str = os.getenv("BRAVE_API_KEY", "").strip()
    serpapi_api_key: str = os.getenv("SERPAPI_API_KEY", "").strip()
    google_api_key: str = os.getenv("GOOGLE_SEARCH_API_KEY", "").strip()
    google_cx: str = os.getenv("GOOGLE_SEARCH_CX", "").strip()
    timeout_seconds: float = float(os.getenv("WEB_TIMEOUT_SECONDS", "12"))
    max_chars: int = int(os.getenv("WEB_MAX_CHARS", "1500"))
    user_agent: str = os.getenv("WEB_USER_AGENT", "synapse-agent/1.0").strip()
    retry_attempts: int = int(os.getenv("WEB_RETRY_ATTEMPTS", "3"))
    backoff_seconds: float = float(os.getenv("WEB_BACKOFF_SECONDS", "0.5"))

    def has_credentials(self, provider: str) -> bool:
        if provider == "tavily":
            return bool(self.tavily_api_key)
        if provider == "brave":
            return bool(self.brave_api_key)
        if provider == "serpapi":
            return bool(self.serpapi_api_key)
        if provider == "google":
            return bool(self.google_api_key and self.google_cx)
        return False


class WebSearchModule:
    """Web search returning the best single result.

    Security model:
        Snippets and extracted page text are sanitized for prompt-injection-like
        token patterns before they reach prompts.
    """

    _TAVILY_URL = "https://api.tavily.com/search"
    _BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"
    _SERPAPI_URL = "https://serpapi.com/search.json"
    _GOOGLE_URL = "https://www.googleapis.com/customsearch/v1"

    _RETRY_STATUSES = (429, 500, 502, 503, 504)

    _INJECTION_PATTERNS = (
        r"ignore\s+previous\s+instructions?",
        r"\bsystem\s*:",
        r"\bassistant\s*:",
        r"\buser\s*:",
    )

    def __init__(self, config: WebModuleConfig | None = None) -> None:
        self.config = config or WebModuleConfig()

    async def search(self, query: str, max_results: int = 3) -> SearchResult:
        """Return the best result for `query`, or `SearchResult.empty()`.

        Args:
            query: Search query text.
            max_results: Result count requested from providers; only the first
                usable one is returned.
        """
        if not query or not query.strip():
            return SearchResult.empty()

        for provider in self.config.providers:
            if not self.config.has_credentials(provider):
                continue

            try:
                candidates = await self._search_provider(provider, query, max(1, max_results))
            except Exception:
                logger.warning("Search provider %s failed for query=%r", provider, query, exc_info=True)
                continue

            for snippet, url in candidates:
                if not self._is_http_url(url):
                    continue
                snippet = self._clean_snippet(snippet)
                if not snippet:
                    snippet = await self._page_excerpt(url)
                if snippet:
                    return SearchResult(snippet=snippet, url=url)

        logger.info("No usable search result for query=%r", query)
        return SearchResult.empty()

    async def _search_provider(
        self,
        provider: str,
        query: str,
        max_results: int,
    ) -> list[tuple[str, str]]:
        """Dispatch query to one provider and return `(snippet, url)` pairs.

        Provider strategy:
            - `tavily`: POST JSON endpoint.
            - `brave`: GET endpoint with subscription token header.
            - `serpapi`: GET endpoint with query params.
            - `google`: Custom Search JSON API.
        """
        if provider == "tavily":
            data = await self._request_json_with_retry(
                "POST",
                self._TAVILY_URL,
                headers={"Content-Type": "application/json"},
                json_body={
                    "api_key": self.config.tavily_api_key,
                    "query": query,
                    "max_results": max_results,
                },
            )
            return [
                (item.get("content", ""), item.get("url", ""))
                for item in data.get("results", [])
                if isinstance(item, dict)
            ]

        if provider == "brave":
            data = await self._request_json_with_retry(
                "GET",
                self._BRAVE_URL,
                headers={
                    **self._default_headers(),
                    "X-Subscription-Token": self.config.brave_api_key,
                },
                params={"q": query, "count": max_results},
            )
            return [
                (item.get("description", ""), item.get("url", ""))
                for item in data.get("web", {}).get("results", [])
                if isinstance(item, dict)
            ]

        if provider == "serpapi":
            data = await self._request_json_with_retry(
                "GET",
                self._SERPAPI_URL,
                headers=self._default_headers(),
                params={
                    "engine": "google",
                    "q": query,
                    "num": max_results,
                    "api_key": self.config.serpapi_api_key,
                },
            )
            return [
                (item.get("snippet", ""), item.get("link", ""))
                for item in data.get("organic_results", [])
                if isinstance(item, dict)
            ]

        if provider == "google":
            data = await self._request_json_with_retry(
                "GET",
                self._GOOGLE_URL,
                headers=self._default_headers(),
                params={
                    "key": self.config.google_api_key,
                    "cx": self.config.google_cx,
                    "q": query,
                    "num": min(max_results, 10),
                },
            )
            return [
                (item.get("snippet", ""), item.get("link", ""))
                for item in data.get("items", [])
                if isinstance(item, dict)
            ]

        raise RuntimeError(f"Unsupported search provider: {provider}")

    async def _page_excerpt(self, url: str) -> str:
        """Fetch a result page and return cleaned text, or `""` on any failure."""
        try:
            raw_html = await self._request_text_with_retry("GET", url, headers=self._default_headers())
        except Exception:
            logger.warning("Page fetch failed for url=%s", url, exc_info=True)
            return ""
        return self._clean_extracted_text(raw_html or "")

    async def _request_json_with_retry(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute HTTP request with retry and parse a JSON object response."""
        response_text = await self._request_text_with_retry(
            method,
            url,
            headers=headers,
            params=params,
            json_body=json_body,
        )

        if not response_text:
            return {}

        data = json.loads(response_text)
        return data if isinstance(data, dict) else {}

    async def _request_text_with_retry(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> str:
        """Execute HTTP request with retry/backoff for transient failures.

        Retry policy:
            Retries for status codes `429,500,502,503,504` and request transport
            errors up to `retry_attempts` using exponential backoff.

        Raises:
            RuntimeError: After retry exhaustion for transient status failures.
            httpx.HTTPStatusError/httpx.RequestError: For unrecoverable failures.
        """
        attempts = max(1, self.config.retry_attempts)

        for attempt in range(attempts):
            try:
                async with httpx.AsyncClient(
                    timeout=self.config.timeout_seconds,
                    follow_redirects=True,
                    headers=headers,
                ) as client:
                    response = await client.request(
                        method,
                        url,
                        params=params,
                        json=json_body,
                    )

                if response.status_code in self._RETRY_STATUSES:
                    if attempt < attempts - 1:
                        await asyncio.sleep(self._backoff(attempt))
                        continue
                    raise RuntimeError(
                        f"HTTP retry exhausted: status={response.status_code} url={url}"
                    )

                response.raise_for_status()
                return response.text

            except httpx.RequestError:
                if attempt < attempts - 1:
                    await asyncio.sleep(self._backoff(attempt))
                    continue
                raise

        raise RuntimeError(f"Request failed without error details for url={url}")

    def _clean_extracted_text(self, raw_html: str) -> str:
        """Extract and sanitize plain text from raw HTML.

        Sanitization pipeline:
            `trafilatura.extract` -> strip HTML/JS -> remove prompt tokens ->
            normalize whitespace -> cap at `max_chars`.
        """
        if not raw_html.strip():
            return ""

        extracted = trafilatura.extract(
            raw_html,
            include_comments=False,
            include_tables=False,
            include_images=False,
            include_links=False,
            favor_precision=True,
            output_format="txt",
        ) or ""

        return self._clean_snippet(extracted)

    def _clean_snippet(self, text: str) -> str:
        if not text or not text.strip():
            return ""

        cleaned = self._strip_html_js(text)
        cleaned = self._remove_prompt_injection_tokens(cleaned)
        cleaned = self._normalize_whitespace(cleaned)

        if len(cleaned) > self.config.max_chars:
            cleaned = cleaned[: self.config.max_chars].rstrip()

        return cleaned

    @staticmethod
    def _strip_html_js(text: str) -> str:
        """Remove markup and common script/style constructs from text."""
        text = re.sub(r"<script[^>]*>.*?</script>", " ", text, flags=re.IGNORECASE | re.DOTALL)
        text = re.sub(r"<style[^>]*>.*?</style>", " ", text, flags=re.IGNORECASE | re.DOTALL)
        text = re.sub(r"<[^>]+>", " ", text)
        text = re.sub(r"\bjavascript\s*:", " ", text, flags=re.IGNORECASE)
        return html.unescape(text)

    def _remove_prompt_injection_tokens(self, text: str) -> str:
        """Remove token patterns commonly used in prompt-injection text."""
        cleaned = text
        for pattern in self._INJECTION_PATTERNS:
            cleaned = re.sub(pattern, " ", cleaned, flags=re.IGNORECASE)
        return cleaned

    @staticmethod
    def _normalize_whitespace(text: str) -> str:
        """Normalize newline and spacing artifacts in extracted text."""
        text = text.replace("\r", "\n")
        text = re.sub(r"\n{3,}", "\n\n", text)
        text = re.sub(r"[\t\x0b\x0c ]+", " ", text)
        text = re.sub(r" *\n *", "\n", text)
        return text.strip()

    def _default_headers(self) -> dict[str, str]:
        """Build default HTTP headers for provider and page requests."""
        return {
            "Accept": "application/json, text/html;q=0.9,*/*;q=0.8",
            "User-Agent": self.config.user_agent,
        }

    def _backoff(self, attempt: int) -> float:
        """Compute exponential backoff delay for a retry attempt."""
        return self.config.backoff_seconds * (2 ** attempt)

    @staticmethod
    def _is_http_url(url: str) -> bool:
        """Return whether a URL is syntactically valid HTTP(S)."""
        try:
            parsed = urlparse(url)
            return parsed.scheme in {"http", "https"} and bool(parsed.netloc)
        except ValueError:
            return False
