# variant_gateway/regions.py
"""
Genomic interval helpers.

- xposition():               fold (chrom, pos) onto one genome-wide axis
- GenomicRegion:             immutable interval with local + genome-wide coordinates
- merge_overlapping_regions: collapse padded intervals into a minimal covering set
- coding_regions():          padded CDS intervals for a gene/transcript exon list
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Mapping, Optional

# Exon boundary padding used when planning gene/transcript queries
CODING_REGION_PADDING = 75

_CHROM_NUMBERS = {str(n): n for n in range(1, 23)}
_CHROM_NUMBERS.update({"X": 23, "Y": 24, "M": 25, "MT": 25})


def chrom_number(chrom: str) -> int:
    c = str(chrom).strip().upper()
    if c.startswith("CHR"):
        c = c[3:]
    try:
        return _CHROM_NUMBERS[c]
    except KeyError:
        raise ValueError(f"Unknown chromosome: {chrom!r}") from None


def xposition(chrom: str, pos: int) -> int:
    return chrom_number(chrom) * 1_000_000_000 + int(pos)


@dataclass(frozen=True)
class GenomicRegion:
    chrom: str
    start: int
    stop: int
    xstart: int
    xstop: int

    def __post_init__(self) -> None:
        if self.start > self.stop:
            raise ValueError(f"Region start {self.start} is after stop {self.stop}")
        if self.xstart > self.xstop:
            raise ValueError(f"Region xstart {self.xstart} is after xstop {self.xstop}")
        if self.xstop - self.xstart != self.stop - self.start:
            raise ValueError("Region local and genome-wide spans disagree")

    @classmethod
    def from_coordinates(cls, chrom: str, start: int, stop: int) -> "GenomicRegion":
        return cls(
            chrom=str(chrom),
            start=int(start),
            stop=int(stop),
            xstart=xposition(chrom, start),
            xstop=xposition(chrom, stop),
        )

    @classmethod
    def from_mapping(cls, m: Mapping[str, Any]) -> "GenomicRegion":
        return cls(
            chrom=str(m["chrom"]),
            start=int(m["start"]),
            stop=int(m["stop"]),
            xstart=int(m["xstart"]),
            xstop=int(m["xstop"]),
        )

    def padded(self, padding: int) -> "GenomicRegion":
        # keep start >= 1; shift xstart by the same amount so spans stay equal
        left = min(padding, self.start - 1)
        return replace(
            self,
            start=self.start - left,
            stop=self.stop + padding,
            xstart=self.xstart - left,
            xstop=self.xstop + padding,
        )


def merge_overlapping_regions(regions: Iterable[GenomicRegion]) -> List[GenomicRegion]:
    """
    Minimal set of non-overlapping regions covering the same positions as the
    input, sorted by xstart. Regions that share a boundary position overlap.
    """
    ordered = sorted(regions, key=lambda r: r.xstart)
    if not ordered:
        return []

    merged: List[GenomicRegion] = []
    current = ordered[0]
    for nxt in ordered[1:]:
        if nxt.xstart <= current.xstop:
            if nxt.xstop > current.xstop:
                current = replace(current, stop=nxt.stop, xstop=nxt.xstop)
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged


def pad_regions(regions: Iterable[GenomicRegion], padding: int) -> List[GenomicRegion]:
    return [r.padded(padding) for r in regions]


def coding_regions(
    exons: Iterable[Any],
    chrom: Optional[str] = None,
    padding: int = CODING_REGION_PADDING,
) -> List[GenomicRegion]:
    """
    Merged, padded CDS regions for an exon list (pydantic models or dicts).
    Exons without their own chrom inherit the parent gene/transcript chrom.
    """
    cds: List[GenomicRegion] = []
    for exon in exons:
        m = dict(exon) if isinstance(exon, Mapping) else exon.model_dump()
        if m.get("feature_type") != "CDS":
            continue
        if m.get("chrom") is None:
            m["chrom"] = chrom
        cds.append(GenomicRegion.from_mapping(m))
    return merge_overlapping_regions(pad_regions(cds, padding))
