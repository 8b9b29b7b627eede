from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ReferenceGenome = Literal["GRCh37", "GRCh38"]
REFERENCE_GENOMES = ("GRCh37", "GRCh38")


class Exon(BaseModel):
    feature_type: str               # CDS | UTR | exon
    chrom: Optional[str] = None
    start: int = Field(ge=1)
    stop: int = Field(ge=1)
    xstart: int
    xstop: int


class Gene(BaseModel):
    gene_id: str
    chrom: str
    exons: List[Exon] = []


class Transcript(BaseModel):
    transcript_id: str
    gene_id: Optional[str] = None
    chrom: str
    exons: List[Exon] = []


class LiftoverSide(BaseModel):
    variant_id: str
    reference_genome: str


class LiftoverCorrespondence(BaseModel):
    source: LiftoverSide
    liftover: LiftoverSide


class RegionCount(BaseModel):
    reference_genome: ReferenceGenome
    chrom: str
    start: int
    stop: int
    count: int


class VariantSummaries(BaseModel):
    reference_genome: ReferenceGenome
    fetched_n: int
    variants: List[Dict[str, Any]]
