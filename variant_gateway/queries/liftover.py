# variant_gateway/queries/liftover.py
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from ..clients.search import SearchBackendError, SearchClient
from ..ids import is_variant_id

log = logging.getLogger("variant_gateway.liftover")

LIFTOVER_INDEX = os.getenv("LIFTOVER_INDEX", "liftover")
LIFTOVER_MAX_RESULTS = 100


def _side_query(side: str, variant_id: str, reference_genome: str) -> Dict[str, Any]:
    return {
        "query": {
            "bool": {
                "filter": [
                    {"term": {f"{side}.variant_id": variant_id}},
                    {"term": {f"{side}.reference_genome": reference_genome}},
                ]
            }
        },
        "size": LIFTOVER_MAX_RESULTS,
    }


class LiftoverResolver:
    """
    Lookups in the liftover index, which holds one document per directed
    correspondence: {source: {variant_id, reference_genome}, liftover: {...}}.
    Correspondences whose counterpart id is malformed are dropped.
    """

    def __init__(self, search: SearchClient, index: str = LIFTOVER_INDEX):
        self.search = search
        self.index = index

    async def _resolve(self, side: str, counterpart: str, variant_id: str, reference_genome: str) -> List[Dict[str, Any]]:
        hits = await self.search.search_hits(self.index, _side_query(side, variant_id, reference_genome))
        try:
            docs = [hit["_source"] for hit in hits]
        except (KeyError, TypeError) as e:
            raise SearchBackendError(f"Search response from {self.index} has a hit without _source") from e
        out = []
        for doc in docs:
            other = (doc.get(counterpart) or {}).get("variant_id")
            if is_variant_id(other):
                out.append(doc)
            else:
                log.debug("dropping liftover of %s with malformed %s id %r", variant_id, counterpart, other)
        return out

    async def resolve_by_source(self, variant_id: str, reference_genome: str) -> List[Dict[str, Any]]:
        return await self._resolve("source", "liftover", variant_id, reference_genome)

    async def resolve_by_target(self, variant_id: str, reference_genome: str) -> List[Dict[str, Any]]:
        return await self._resolve("liftover", "source", variant_id, reference_genome)
