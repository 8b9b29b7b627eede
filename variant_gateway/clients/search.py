# variant_gateway/clients/search.py
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

log = logging.getLogger("variant_gateway.search")

# ------------------------------------------------------------------------------------
# Config
# ------------------------------------------------------------------------------------
ELASTICSEARCH_URL: str = os.getenv("ELASTICSEARCH_URL", "http://localhost:9200")
ELASTICSEARCH_USERNAME: str = os.getenv("ELASTICSEARCH_USERNAME", "")
ELASTICSEARCH_PASSWORD: str = os.getenv("ELASTICSEARCH_PASSWORD", "")
REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "25"))
SEARCH_PAGE_SIZE: int = int(os.getenv("SEARCH_PAGE_SIZE", "10000"))

_RETRIES = int(os.getenv("HTTP_RETRIES", "2"))
_BACKOFF = float(os.getenv("HTTP_BACKOFF", "0.25"))  # seconds

DEFAULT_TIMEOUT = httpx.Timeout(REQUEST_TIMEOUT_SECONDS, connect=4.0)

# Sort used by every paged variant query; variant_id breaks ties between
# multiallelic records at the same position so cursors advance deterministically.
POSITION_SORT: List[Dict[str, Any]] = [{"pos": {"order": "asc"}}]
TIEBREAKER_FIELD = "variant_id"


class SearchBackendError(RuntimeError):
    """Transport failure, timeout, non-2xx or malformed response from the search backend."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def make_http_client(base_url: str = ELASTICSEARCH_URL) -> httpx.AsyncClient:
    auth = None
    if ELASTICSEARCH_USERNAME:
        auth = httpx.BasicAuth(ELASTICSEARCH_USERNAME, ELASTICSEARCH_PASSWORD)
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=DEFAULT_TIMEOUT,
        auth=auth,
        headers={"Accept": "application/json", "Content-Type": "application/json"},
    )


# ------------------------------------------------------------------------------------
# HTTP + retries/backoff
# ------------------------------------------------------------------------------------
async def _request_with_retries(
    http: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    json_body: Optional[Any] = None,
    retries: int = _RETRIES,
    backoff: float = _BACKOFF,
) -> httpx.Response:
    last_exc: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            r = await http.request(method, url, json=json_body)
            if r.status_code >= 500:
                # retry 5xx
                last_exc = httpx.HTTPStatusError(f"server error {r.status_code}", request=r.request, response=r)
                raise last_exc
            return r
        except (httpx.TransportError, httpx.HTTPStatusError) as e:
            last_exc = e
            if attempt >= retries:
                break
            log.warning("%s %s failed (%s), retrying", method, url, e.__class__.__name__)
            await asyncio.sleep(backoff * (2**attempt))
    assert last_exc is not None
    status = last_exc.response.status_code if isinstance(last_exc, httpx.HTTPStatusError) else None
    raise SearchBackendError(f"{method} {url} failed: {last_exc}", status_code=status) from last_exc


def _json(r: httpx.Response) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError as e:
        raise SearchBackendError(f"Malformed response from {r.request.url}", status_code=r.status_code) from e
    if not isinstance(data, dict):
        raise SearchBackendError(f"Unexpected response shape from {r.request.url}", status_code=r.status_code)
    return data


# ------------------------------------------------------------------------------------
# Client
# ------------------------------------------------------------------------------------
class SearchClient:
    """
    Thin async client for an Elasticsearch-compatible document store.

    All failures surface as SearchBackendError; "not found" on a document get
    is the only non-2xx answer that is translated into a value (None).
    """

    def __init__(self, http: httpx.AsyncClient, *, retries: int = _RETRIES, backoff: float = _BACKOFF):
        self.http = http
        self.retries = retries
        self.backoff = backoff

    async def _call(self, method: str, url: str, json_body: Optional[Any] = None) -> httpx.Response:
        return await _request_with_retries(
            self.http, method, url, json_body=json_body, retries=self.retries, backoff=self.backoff
        )

    async def search(self, index: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        url = f"/{index}/_search"
        r = await self._call("POST", url, dict(body))
        if r.status_code >= 400:
            raise SearchBackendError(f"POST {url} -> {r.status_code}", status_code=r.status_code)
        return _json(r)

    async def search_hits(self, index: str, body: Mapping[str, Any]) -> List[Dict[str, Any]]:
        data = await self.search(index, body)
        try:
            return list(data["hits"]["hits"])
        except (KeyError, TypeError) as e:
            raise SearchBackendError(f"Search response from {index} has no hits") from e

    async def count(self, index: str, query: Mapping[str, Any]) -> int:
        url = f"/{index}/_count"
        r = await self._call("POST", url, {"query": dict(query)})
        if r.status_code >= 400:
            raise SearchBackendError(f"POST {url} -> {r.status_code}", status_code=r.status_code)
        data = _json(r)
        try:
            return int(data["count"])
        except (KeyError, TypeError, ValueError) as e:
            raise SearchBackendError(f"Count response from {index} has no count") from e

    async def get_document(self, index: str, doc_id: str) -> Optional[Dict[str, Any]]:
        url = f"/{index}/_doc/{doc_id}"
        r = await self._call("GET", url)
        if r.status_code == 404:
            return None
        if r.status_code >= 400:
            raise SearchBackendError(f"GET {url} -> {r.status_code}", status_code=r.status_code)
        data = _json(r)
        if data.get("found") is False:
            return None
        return data.get("_source")

    async def index_metadata(self, index: str) -> Dict[str, Any]:
        """The `_meta` block of an index mapping (index may be an alias)."""
        url = f"/{index}/_mapping"
        r = await self._call("GET", url)
        if r.status_code >= 400:
            raise SearchBackendError(f"GET {url} -> {r.status_code}", status_code=r.status_code)
        data = _json(r)
        if not data:
            raise SearchBackendError(f"No mapping returned for {index}")
        mapping = next(iter(data.values()))
        return ((mapping or {}).get("mappings") or {}).get("_meta") or {}


# ------------------------------------------------------------------------------------
# Exhaustive fetch
# ------------------------------------------------------------------------------------
def with_tiebreaker(sort: Sequence[Mapping[str, Any]], field: str = TIEBREAKER_FIELD) -> List[Dict[str, Any]]:
    out = [dict(s) for s in sort]
    if not any(field in s for s in out):
        out.append({field: {"order": "asc"}})
    return out


async def fetch_all_search_results(
    client: SearchClient,
    index: str,
    query: Mapping[str, Any],
    *,
    sort: Sequence[Mapping[str, Any]] = POSITION_SORT,
    source: Optional[Sequence[str]] = None,
    page_size: int = SEARCH_PAGE_SIZE,
) -> List[Dict[str, Any]]:
    """
    Every hit matching `query`, in sort order, across as many pages as needed.

    Pages are requested strictly in sequence with a search_after cursor taken
    from the previous page's last hit. A page shorter than `page_size` ends the
    fetch. Any failing page fails the whole fetch.
    """
    if page_size < 1:
        raise ValueError("page_size must be positive")

    body: Dict[str, Any] = {
        "query": dict(query),
        "sort": with_tiebreaker(sort),
        "size": page_size,
    }
    if source is not None:
        body["_source"] = list(source)

    hits: List[Dict[str, Any]] = []
    cursor: Optional[List[Any]] = None
    pages = 0
    while True:
        if cursor is not None:
            body["search_after"] = cursor
        page = await client.search_hits(index, body)
        pages += 1
        hits.extend(page)
        if len(page) < page_size:
            break
        last_sort = page[-1].get("sort")
        if not last_sort:
            raise SearchBackendError(f"Hit from {index} is missing sort values; cannot page")
        cursor = list(last_sort)

    log.debug("fetched %d hits from %s in %d page(s)", len(hits), index, pages)
    return hits
