# variant_gateway/routers/clinvar_router.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from ..ids import validate_clinvar_variation_id, validate_variant_id
from ..models import Gene, ReferenceGenome, RegionCount, Transcript, VariantSummaries
from ..queries.clinvar import ClinvarVariantQueries
from ..regions import GenomicRegion, coding_regions

router = APIRouter(prefix="/clinvar", tags=["ClinVar variants"])


def _queries(request: Request) -> ClinvarVariantQueries:
    return request.app.state.clinvar


def _region(chrom: str, start: int, stop: int) -> GenomicRegion:
    try:
        return GenomicRegion.from_coordinates(chrom, start, stop)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None


def _check_exons(entity: Gene | Transcript) -> None:
    try:
        coding_regions(entity.exons, chrom=entity.chrom)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid exon: {e}") from None


@router.get("/release-date")
async def release_date(request: Request) -> Dict[str, Optional[str]]:
    return {"release_date": await _queries(request).fetch_release_date()}


@router.get("/variant/{variant_id}")
async def variant_by_id(
    request: Request,
    variant_id: str,
    reference_genome: ReferenceGenome = Query("GRCh38"),
) -> Dict[str, Any]:
    vid = validate_variant_id(variant_id)
    variant = await _queries(request).fetch_variant_by_id(reference_genome, vid)
    if variant is None:
        raise HTTPException(status_code=404, detail=f"Variant not found: {vid}")
    return variant


@router.get("/variation/{clinvar_variation_id}")
async def variant_by_variation_id(
    request: Request,
    clinvar_variation_id: str,
    reference_genome: ReferenceGenome = Query("GRCh38"),
) -> Dict[str, Any]:
    cid = validate_clinvar_variation_id(clinvar_variation_id)
    variant = await _queries(request).fetch_variant_by_clinvar_variation_id(reference_genome, cid)
    if variant is None:
        raise HTTPException(status_code=404, detail=f"ClinVar variation not found: {cid}")
    return variant


@router.get("/region", response_model=VariantSummaries)
async def variants_in_region(
    request: Request,
    chrom: str,
    start: int = Query(ge=1),
    stop: int = Query(ge=1),
    reference_genome: ReferenceGenome = Query("GRCh38"),
) -> VariantSummaries:
    region = _region(chrom, start, stop)
    variants = await _queries(request).fetch_variants_by_region(reference_genome, region)
    return VariantSummaries(reference_genome=reference_genome, fetched_n=len(variants), variants=variants)


@router.get("/region/count", response_model=RegionCount)
async def count_in_region(
    request: Request,
    chrom: str,
    start: int = Query(ge=1),
    stop: int = Query(ge=1),
    reference_genome: ReferenceGenome = Query("GRCh38"),
) -> RegionCount:
    region = _region(chrom, start, stop)
    n = await _queries(request).count_variants_in_region(reference_genome, region)
    return RegionCount(reference_genome=reference_genome, chrom=region.chrom, start=start, stop=stop, count=n)


@router.post("/gene", response_model=VariantSummaries)
async def variants_in_gene(
    request: Request,
    gene: Gene,
    reference_genome: ReferenceGenome = Query("GRCh38"),
) -> VariantSummaries:
    _check_exons(gene)
    variants = await _queries(request).fetch_variants_by_gene(reference_genome, gene)
    return VariantSummaries(reference_genome=reference_genome, fetched_n=len(variants), variants=variants)


@router.post("/transcript", response_model=VariantSummaries)
async def variants_in_transcript(
    request: Request,
    transcript: Transcript,
    reference_genome: ReferenceGenome = Query("GRCh38"),
) -> VariantSummaries:
    _check_exons(transcript)
    variants = await _queries(request).fetch_variants_by_transcript(reference_genome, transcript)
    return VariantSummaries(reference_genome=reference_genome, fetched_n=len(variants), variants=variants)
