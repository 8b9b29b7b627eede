"""
Representative transcript consequence selection.

A variant record carries one annotation per overlapping transcript. Summaries
keep a single one, chosen by the query that produced them:

    GeneContext(gene_id)             most severe consequence within that gene
    TranscriptContext(transcript_id) the consequence for that transcript, if any
    RegionContext()                  most severe consequence overall

Severity follows the Ensembl VEP consequence hierarchy (most severe first).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

CONSEQUENCE_TERMS: List[str] = [
    "transcript_ablation",
    "splice_acceptor_variant",
    "splice_donor_variant",
    "stop_gained",
    "frameshift_variant",
    "stop_lost",
    "start_lost",
    "transcript_amplification",
    "feature_elongation",
    "feature_truncation",
    "inframe_insertion",
    "inframe_deletion",
    "missense_variant",
    "protein_altering_variant",
    "splice_donor_5th_base_variant",
    "splice_region_variant",
    "splice_donor_region_variant",
    "splice_polypyrimidine_tract_variant",
    "incomplete_terminal_codon_variant",
    "start_retained_variant",
    "stop_retained_variant",
    "synonymous_variant",
    "coding_sequence_variant",
    "mature_miRNA_variant",
    "5_prime_UTR_variant",
    "3_prime_UTR_variant",
    "non_coding_transcript_exon_variant",
    "intron_variant",
    "NMD_transcript_variant",
    "non_coding_transcript_variant",
    "coding_transcript_variant",
    "upstream_gene_variant",
    "downstream_gene_variant",
    "TFBS_ablation",
    "TFBS_amplification",
    "TF_binding_site_variant",
    "regulatory_region_ablation",
    "regulatory_region_amplification",
    "regulatory_region_variant",
    "intergenic_variant",
    "sequence_variant",
]

_RANK: Dict[str, int] = {term: i for i, term in enumerate(CONSEQUENCE_TERMS)}
_UNRANKED = len(CONSEQUENCE_TERMS)


@dataclass(frozen=True)
class GeneContext:
    gene_id: str


@dataclass(frozen=True)
class TranscriptContext:
    transcript_id: str


@dataclass(frozen=True)
class RegionContext:
    pass


QueryContext = Union[GeneContext, TranscriptContext, RegionContext]
Consequence = Dict[str, Any]


def consequence_rank(csq: Mapping[str, Any]) -> int:
    major = csq.get("major_consequence")
    if major:
        return _RANK.get(major, _UNRANKED)
    terms = csq.get("consequence_terms") or []
    return min((_RANK.get(t, _UNRANKED) for t in terms), default=_UNRANKED)


def most_severe(consequences: Iterable[Consequence]) -> Optional[Consequence]:
    # min() keeps the first of equally ranked entries
    return min(consequences, key=consequence_rank, default=None)


def consequence_selector(context: QueryContext) -> Callable[[Mapping[str, Any]], Optional[Consequence]]:
    if isinstance(context, GeneContext):
        gene_id = context.gene_id

        def _by_gene(variant: Mapping[str, Any]) -> Optional[Consequence]:
            csqs = variant.get("transcript_consequences") or []
            return most_severe(c for c in csqs if c.get("gene_id") == gene_id)

        return _by_gene

    if isinstance(context, TranscriptContext):
        transcript_id = context.transcript_id

        def _by_transcript(variant: Mapping[str, Any]) -> Optional[Consequence]:
            csqs = variant.get("transcript_consequences") or []
            return next((c for c in csqs if c.get("transcript_id") == transcript_id), None)

        return _by_transcript

    if isinstance(context, RegionContext):

        def _overall(variant: Mapping[str, Any]) -> Optional[Consequence]:
            return most_severe(variant.get("transcript_consequences") or [])

        return _overall

    raise TypeError(f"Unsupported query context: {context!r}")
