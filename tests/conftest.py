"""Shared fixtures: an in-memory Elasticsearch stand-in served through httpx.MockTransport."""
import json
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx
import pytest
import pytest_asyncio

from variant_gateway.clients.search import SearchClient
from variant_gateway.regions import xposition


def _get(doc: Dict[str, Any], path: str) -> Any:
    cur: Any = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


def _project(doc: Dict[str, Any], paths: List[str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for path in paths:
        value = _get(doc, path)
        if value is None:
            continue
        parts = path.split(".")
        cur = out
        for part in parts[:-1]:
            cur = cur.setdefault(part, {})
        cur[parts[-1]] = value
    return out


def _as_list(clauses: Any) -> List[Dict[str, Any]]:
    if clauses is None:
        return []
    return clauses if isinstance(clauses, list) else [clauses]


def matches(doc: Dict[str, Any], q: Dict[str, Any]) -> bool:
    if "bool" in q:
        b = q["bool"]
        if not all(matches(doc, c) for c in _as_list(b.get("filter"))):
            return False
        should = _as_list(b.get("should"))
        if should:
            return any(matches(doc, c) for c in should)
        return True
    if "term" in q:
        field, value = next(iter(q["term"].items()))
        actual = _get(doc, field)
        if isinstance(actual, list):
            return value in actual
        return actual == value
    if "range" in q:
        field, bounds = next(iter(q["range"].items()))
        actual = _get(doc, field)
        if actual is None:
            return False
        if "gte" in bounds and actual < bounds["gte"]:
            return False
        if "lte" in bounds and actual > bounds["lte"]:
            return False
        return True
    raise ValueError(f"unsupported query clause: {q}")


class FakeSearchBackend:
    """Answers _search, _count, _doc and _mapping for the indices it holds."""

    def __init__(self, max_result_window: int = 10000):
        self.docs: Dict[str, List[Tuple[str, Dict[str, Any]]]] = {}
        self.meta: Dict[str, Dict[str, Any]] = {}
        self.requests: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []
        self.fail_search_calls: Set[int] = set()
        self.fail_mapping_for: Set[str] = set()
        self.max_result_window = max_result_window
        self._search_calls = 0

    def add(self, index: str, doc_id: str, source: Dict[str, Any]) -> None:
        self.docs.setdefault(index, []).append((doc_id, source))

    def search_requests(self, index: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            body for method, path, body in self.requests
            if path.endswith("/_search") and (index is None or path == f"/{index}/_search")
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        parts = request.url.path.strip("/").split("/")
        index, op = parts[0], parts[1]

        if op == "_search":
            self._search_calls += 1
            if self._search_calls in self.fail_search_calls:
                return httpx.Response(500, json={"error": "search_phase_execution_exception"})
            return httpx.Response(200, json=self._search(index, body or {}))

        if op == "_count":
            query = (body or {}).get("query", {"bool": {}})
            n = sum(1 for _, doc in self.docs.get(index, []) if matches(doc, query))
            return httpx.Response(200, json={"count": n})

        if op == "_doc":
            for doc_id, doc in self.docs.get(index, []):
                if doc_id == parts[2]:
                    return httpx.Response(200, json={"_id": doc_id, "found": True, "_source": doc})
            return httpx.Response(404, json={"_id": parts[2], "found": False})

        if op == "_mapping":
            if index in self.fail_mapping_for:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(200, json={f"{index}-000001": {"mappings": {"_meta": self.meta.get(index, {})}}})

        return httpx.Response(400, json={"error": f"unsupported path {request.url.path}"})

    def _search(self, index: str, body: Dict[str, Any]) -> Dict[str, Any]:
        size = body.get("size", 10)
        if size > self.max_result_window:
            raise AssertionError("result window is too large")
        query = body.get("query", {"bool": {}})
        sort_fields = [next(iter(s)) for s in body.get("sort", [])]
        found = [(doc_id, doc) for doc_id, doc in self.docs.get(index, []) if matches(doc, query)]

        def sort_key(item):
            return tuple(_get(item[1], f) for f in sort_fields)

        if sort_fields:
            found.sort(key=sort_key)
            if "search_after" in body:
                cursor = tuple(body["search_after"])
                found = [item for item in found if sort_key(item) > cursor]

        hits = []
        for doc_id, doc in found[:size]:
            hit: Dict[str, Any] = {"_id": doc_id, "_source": doc}
            if "_source" in body:
                hit["_source"] = _project(doc, body["_source"])
            if sort_fields:
                hit["sort"] = list(sort_key((doc_id, doc)))
            hits.append(hit)
        return {"hits": {"total": {"value": len(found), "relation": "eq"}, "hits": hits}}


# ------------------------------------------------------------------------------
# Sample data
# ------------------------------------------------------------------------------
GENE_ID = "ENSG00000169174"
OTHER_GENE_ID = "ENSG00000000001"

CONSEQUENCES = [
    {"gene_id": GENE_ID, "transcript_id": "ENST00000302118", "major_consequence": "missense_variant"},
    {"gene_id": GENE_ID, "transcript_id": "ENST00000452118", "major_consequence": "synonymous_variant"},
    {"gene_id": OTHER_GENE_ID, "transcript_id": "ENST00000999999", "major_consequence": "stop_gained"},
]


def variant_doc(chrom: str, pos: int, ref: str = "G", alt: str = "A", variation_id: int = 0,
                consequences: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    csqs = CONSEQUENCES if consequences is None else consequences
    variant_id = f"{chrom}-{pos}-{ref}-{alt}"
    value = {
        "alt": alt,
        "chrom": chrom,
        "clinical_significance": ["Pathogenic"],
        "clinvar_variation_id": str(variation_id),
        "gnomad": None,
        "gold_stars": 2,
        "in_gnomad": False,
        "major_consequence": "missense_variant",
        "pos": pos,
        "ref": ref,
        "reference_genome": "GRCh38",
        "review_status": "criteria provided, multiple submitters, no conflicts",
        "transcript_consequences": csqs,
        "variant_id": variant_id,
        "submissions": [{"submitter_name": "lab"}],
    }
    return {
        "chrom": chrom,
        "pos": pos,
        "xpos": xposition(chrom, pos),
        "variant_id": variant_id,
        "gene_id": sorted({c["gene_id"] for c in csqs}),
        "transcript_id": [c["transcript_id"] for c in csqs],
        "value": value,
    }


@pytest.fixture
def backend():
    return FakeSearchBackend()


@pytest.fixture
def http_client(backend):
    return httpx.AsyncClient(transport=httpx.MockTransport(backend), base_url="http://es.test")


@pytest_asyncio.fixture
async def search_client(http_client):
    yield SearchClient(http_client, retries=0)
    await http_client.aclose()
