"""Firecrawl-compatible HTTP adapter implementing search, extract and scrape."""

from __future__ import annotations
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from product_research.config.settings import Settings
from product_research.exceptions import (
    AuthenticationError,
    BillingError,
    ConfigurationError,
    ExtractFailure,
    ProviderError,
    RateLimitError,
    SearchFailure,
)
from product_research.providers.base import ScrapeResult
from product_research.tools.search_models import ResultKind, SearchHit

logger = logging.getLogger(__name__)

PROVIDER = "firecrawl"


class FirecrawlClient:
    """Sync client; one instance per run, closed by the caller."""

    name = PROVIDER

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.firecrawl.dev/v2",
        timeout: float = 30.0,
        poll_seconds: float = 2.0,
        max_polls: int = 30,
        client: Optional[httpx.Client] = None,
        sleeper: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ConfigurationError("FIRECRAWL_API_KEY not configured")
        self.base_url = base_url.rstrip("/")
        self.poll_seconds = poll_seconds
        self.max_polls = max_polls
        self.sleeper = sleeper
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if client is None:
            client = httpx.Client(base_url=self.base_url, timeout=timeout, headers=headers)
        else:
            client.headers.update(headers)
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirecrawlClient":
        return cls(
            api_key=settings.FIRECRAWL_API_KEY or "",
            base_url=settings.FIRECRAWL_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            poll_seconds=settings.EXTRACT_POLL_SECONDS,
            max_polls=settings.EXTRACT_MAX_POLLS,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "FirecrawlClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- transport ----

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((httpx.RequestError, httpx.HTTPStatusError)),
        reraise=True,
    )
    def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Send a request, retrying transport errors and 5xx only."""
        response = self._client.request(method, path, json=payload)
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]],
              failure: Type[ProviderError]) -> Dict[str, Any]:
        try:
            response = self._send(method, path, payload)
        except httpx.HTTPStatusError as e:
            raise failure(f"{PROVIDER} {path} failed: HTTP {e.response.status_code}",
                          provider=PROVIDER, status_code=e.response.status_code) from e
        except httpx.RequestError as e:
            raise failure(f"{PROVIDER} {path} transport error: {e}", provider=PROVIDER) from e

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(f"{PROVIDER} rejected credentials (HTTP {status})",
                                      provider=PROVIDER, status_code=status)
        if status == 402:
            raise BillingError(f"{PROVIDER} reports insufficient credits (HTTP 402)",
                               provider=PROVIDER, status_code=status)
        if status == 429:
            raise RateLimitError(f"{PROVIDER} rate limited (HTTP 429)",
                                 provider=PROVIDER, status_code=status)
        if status >= 400:
            raise failure(f"{PROVIDER} {path} failed: HTTP {status}", provider=PROVIDER, status_code=status)

        try:
            data = response.json()
        except ValueError as e:
            raise failure(f"{PROVIDER} {path} returned invalid JSON", provider=PROVIDER, status_code=status) from e
        if not isinstance(data, dict):
            raise failure(f"{PROVIDER} {path} returned {type(data).__name__}, expected object",
                          provider=PROVIDER, status_code=status)
        if data.get("success") is False:
            raise failure(f"{PROVIDER} {path} error: {data.get('error') or 'unknown'}",
                          provider=PROVIDER, status_code=status)
        return data

    # ---- capabilities ----

    def search(self, query: str, limit: int, locale: Optional[str] = None,
               result_kind: ResultKind = "web") -> List[SearchHit]:
        payload: Dict[str, Any] = {
            "query": query,
            "limit": limit,
            "sources": [{"type": result_kind}],
        }
        if locale:
            payload["country"] = locale.upper()
        data = self._call("POST", "/search", payload, SearchFailure)
        hits = _parse_search_response(data, result_kind)
        logger.info("%s search returned %d results for query: %s", PROVIDER, len(hits), query)
        return hits

    def extract(self, urls: Sequence[str], instruction: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"urls": list(urls), "prompt": instruction, "schema": schema}
        data = self._call("POST", "/extract", payload, ExtractFailure)
        if "data" in data and data.get("status") in (None, "completed"):
            return _extract_payload(data)

        job_id = data.get("id")
        if not job_id:
            raise ExtractFailure(f"{PROVIDER} extract returned neither data nor job id", provider=PROVIDER)

        for _ in range(self.max_polls):
            self.sleeper(self.poll_seconds)
            job = self._call("GET", f"/extract/{job_id}", None, ExtractFailure)
            status = job.get("status")
            if status == "completed":
                return _extract_payload(job)
            if status in ("failed", "cancelled"):
                raise ExtractFailure(f"{PROVIDER} extract job {job_id} {status}: {job.get('error') or ''}".strip(),
                                     provider=PROVIDER)
        raise ExtractFailure(f"{PROVIDER} extract job {job_id} did not finish after {self.max_polls} polls",
                             provider=PROVIDER)

    def scrape(self, url: str) -> ScrapeResult:
        data = self._call("POST", "/scrape", {"url": url, "formats": ["markdown"]}, SearchFailure)
        body = data.get("data") or {}
        return ScrapeResult(
            url=url,
            markdown=body.get("markdown") or "",
            structured_fields=body.get("metadata") or {},
        )


def _extract_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    payload = data.get("data")
    if not isinstance(payload, dict):
        raise ExtractFailure(f"{PROVIDER} extract returned no object payload", provider=PROVIDER)
    return payload


def _parse_search_response(data: Dict[str, Any], result_kind: ResultKind) -> List[SearchHit]:
    """Accept both the grouped ({web: [...], images: [...]}) and flat list shapes."""
    body = data.get("data")
    if isinstance(body, dict):
        items = body.get(result_kind) or []
    elif isinstance(body, list):
        items = body
    else:
        logger.warning("No data field in %s search response", PROVIDER)
        return []

    hits = []
    for item in items:
        if not isinstance(item, dict):
            continue
        url = item.get("url") or item.get("imageUrl")
        if not url:
            continue
        hits.append(SearchHit(
            url=url,
            title=item.get("title"),
            snippet=item.get("description") or item.get("snippet"),
            provider=PROVIDER,
        ))
    return hits
