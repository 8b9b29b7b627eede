# variant_gateway/queries/clinvar.py
"""
ClinVar variant queries against the per-build variant indices.

Gene and transcript queries are planned as one term filter plus a
disjunction of range clauses over the merged, padded CDS regions, fetched
exhaustively, shaped into summaries and cached per entity. Region queries
are fetched and shaped the same way but never cached.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..cache import SingleFlightCache, variant_cache_key
from ..clients.search import SEARCH_PAGE_SIZE, SearchBackendError, SearchClient, fetch_all_search_results
from ..consequences import GeneContext, QueryContext, RegionContext, TranscriptContext, consequence_selector
from ..models import REFERENCE_GENOMES, Gene, Transcript
from ..regions import GenomicRegion, coding_regions
from ..throttle import ThrottledRefresher

log = logging.getLogger("variant_gateway.clinvar")

CLINVAR_VARIANT_INDICES: Dict[str, str] = {
    "GRCh37": os.getenv("CLINVAR_GRCH37_INDEX", "clinvar_grch37_variants"),
    "GRCh38": os.getenv("CLINVAR_GRCH38_INDEX", "clinvar_grch38_variants"),
}

# TTLs (seconds); region queries are not cached
GENE_CACHE_TTL_S = int(os.getenv("GENE_CACHE_TTL_S", str(7 * 24 * 3600)))
TRANSCRIPT_CACHE_TTL_S = int(os.getenv("TRANSCRIPT_CACHE_TTL_S", "3600"))
RELEASE_DATE_THROTTLE_S = float(os.getenv("RELEASE_DATE_THROTTLE_S", "300"))

SUMMARY_FIELDS: List[str] = [
    "alt",
    "chrom",
    "clinical_significance",
    "clinvar_variation_id",
    "gnomad",
    "gold_stars",
    "in_gnomad",
    "major_consequence",
    "pos",
    "ref",
    "reference_genome",
    "review_status",
    "transcript_consequences",
    "variant_id",
]
# documents keep the variant record under "value"
SUMMARY_QUERY_FIELDS: List[str] = [f"value.{f}" for f in SUMMARY_FIELDS]


def variant_index(reference_genome: str) -> str:
    try:
        return CLINVAR_VARIANT_INDICES[reference_genome]
    except KeyError:
        raise ValueError(f"Unknown reference genome: {reference_genome!r}") from None


# ================================================================================================
# Shape variant summary
# ================================================================================================

def shape_variant_summary(context: QueryContext) -> Callable[[Mapping[str, Any]], Dict[str, Any]]:
    get_consequence = consequence_selector(context)

    def _shape(variant: Mapping[str, Any]) -> Dict[str, Any]:
        summary = {k: v for k, v in variant.items() if k != "transcript_consequences"}
        summary["transcript_consequence"] = get_consequence(variant) or {}
        return summary

    return _shape


# ================================================================================================
# Query builders
# ================================================================================================

def region_filter(region: GenomicRegion) -> Dict[str, Any]:
    return {
        "bool": {
            "filter": [
                {"term": {"chrom": region.chrom}},
                {"range": {"pos": {"gte": region.start, "lte": region.stop}}},
            ]
        }
    }


def entity_filter(field: str, value: str, regions: Sequence[GenomicRegion]) -> Dict[str, Any]:
    clauses: List[Dict[str, Any]] = [{"term": {field: value}}]
    if regions:
        ranges = [{"range": {"pos": {"gte": r.start, "lte": r.stop}}} for r in regions]
        clauses.append({"bool": {"should": ranges, "minimum_should_match": 1}})
    return {"bool": {"filter": clauses}}


def _document_value(doc: Mapping[str, Any], index: str, *path: str) -> Dict[str, Any]:
    cur: Any = doc
    try:
        for key in path:
            cur = cur[key]
    except (KeyError, TypeError) as e:
        raise SearchBackendError(f"Document from {index} has no {'.'.join(path)}") from e
    if not isinstance(cur, dict):
        raise SearchBackendError(f"Document from {index} has a malformed {'.'.join(path)}")
    return cur


def _gene_cache_key(reference_genome: str, gene: Gene) -> str:
    return variant_cache_key(reference_genome, "gene", gene.gene_id)


def _transcript_cache_key(reference_genome: str, transcript: Transcript) -> str:
    return variant_cache_key(reference_genome, "transcript", transcript.transcript_id)


# ================================================================================================
# Queries
# ================================================================================================

class ClinvarVariantQueries:
    def __init__(
        self,
        search: SearchClient,
        cache: SingleFlightCache,
        *,
        page_size: int = SEARCH_PAGE_SIZE,
        gene_ttl_s: int = GENE_CACHE_TTL_S,
        transcript_ttl_s: int = TRANSCRIPT_CACHE_TTL_S,
        release_date_window_s: float = RELEASE_DATE_THROTTLE_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.search = search
        self.page_size = page_size
        self.fetch_variants_by_gene = cache.wrap(self._fetch_variants_by_gene, _gene_cache_key, gene_ttl_s)
        self.fetch_variants_by_transcript = cache.wrap(
            self._fetch_variants_by_transcript, _transcript_cache_key, transcript_ttl_s
        )
        self.fetch_release_date = ThrottledRefresher(
            self._fetch_release_date, release_date_window_s, clock=clock, name="clinvar_release_date"
        )

    # -------- release date --------
    async def _fetch_release_date(self) -> Optional[str]:
        tasks = [
            asyncio.ensure_future(self.search.index_metadata(variant_index(build)))
            for build in REFERENCE_GENOMES
        ]
        try:
            metadata = await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            # reap the sibling task
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        release_dates = [(m.get("table_globals") or {}).get("clinvar_release_date") for m in metadata]
        if release_dates[0] != release_dates[1]:
            log.error(
                "ClinVar release dates do not match: %s=%s %s=%s",
                REFERENCE_GENOMES[0], release_dates[0], REFERENCE_GENOMES[1], release_dates[1],
            )
        return release_dates[0]

    # -------- count --------
    async def count_variants_in_region(self, reference_genome: str, region: GenomicRegion) -> int:
        return await self.search.count(variant_index(reference_genome), region_filter(region))

    # -------- point lookups --------
    async def fetch_variant_by_id(self, reference_genome: str, variant_id: str) -> Optional[Dict[str, Any]]:
        hits = await self.search.search_hits(
            variant_index(reference_genome),
            {"query": {"bool": {"filter": {"term": {"variant_id": variant_id}}}}, "size": 1},
        )
        if not hits:
            return None
        return _document_value(hits[0], variant_index(reference_genome), "_source", "value")

    async def fetch_variant_by_clinvar_variation_id(
        self, reference_genome: str, clinvar_variation_id: str
    ) -> Optional[Dict[str, Any]]:
        doc = await self.search.get_document(variant_index(reference_genome), clinvar_variation_id)
        if doc is None:
            return None
        return _document_value(doc, variant_index(reference_genome), "value")

    # -------- summaries --------
    async def _fetch_summaries(
        self, reference_genome: str, query: Mapping[str, Any], context: QueryContext
    ) -> List[Dict[str, Any]]:
        hits = await fetch_all_search_results(
            self.search,
            variant_index(reference_genome),
            query,
            source=SUMMARY_QUERY_FIELDS,
            page_size=self.page_size,
        )
        shape = shape_variant_summary(context)
        index = variant_index(reference_genome)
        return [shape(_document_value(hit, index, "_source", "value")) for hit in hits]

    async def _fetch_variants_by_gene(self, reference_genome: str, gene: Gene) -> List[Dict[str, Any]]:
        regions = coding_regions(gene.exons, chrom=gene.chrom)
        query = entity_filter("gene_id", gene.gene_id, regions)
        return await self._fetch_summaries(reference_genome, query, GeneContext(gene.gene_id))

    async def _fetch_variants_by_transcript(
        self, reference_genome: str, transcript: Transcript
    ) -> List[Dict[str, Any]]:
        regions = coding_regions(transcript.exons, chrom=transcript.chrom)
        query = entity_filter("transcript_id", transcript.transcript_id, regions)
        return await self._fetch_summaries(
            reference_genome, query, TranscriptContext(transcript.transcript_id)
        )

    async def fetch_variants_by_region(self, reference_genome: str, region: GenomicRegion) -> List[Dict[str, Any]]:
        return await self._fetch_summaries(reference_genome, region_filter(region), RegionContext())
