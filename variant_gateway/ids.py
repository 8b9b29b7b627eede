from __future__ import annotations

import re
from typing import Optional

from fastapi import HTTPException

from .regions import chrom_number

# ----------------------------- Validation -------------------------------------

# chrom-pos-ref-alt, "-" or ":" separated, optional "chr" prefix
_VARIANT_ID_RE = re.compile(
    r"^(?:chr)?(\d{1,2}|X|Y|M|MT)[-:](\d+)[-:]([ACGT]+)[-:]([ACGT]+)$",
    re.IGNORECASE,
)
_VARIATION_ID_RE = re.compile(r"^\d+$")


def is_variant_id(value: Optional[str]) -> bool:
    if not isinstance(value, str):
        return False
    m = _VARIANT_ID_RE.match(value.strip())
    if not m:
        return False
    try:
        chrom_number(m.group(1))
    except ValueError:
        return False
    return int(m.group(2)) > 0


def normalize_variant_id(value: str) -> str:
    """'chr1:55516888:G:a' -> '1-55516888-G-A'"""
    m = _VARIANT_ID_RE.match((value or "").strip())
    if not m:
        raise ValueError(f"Invalid variant id: {value!r}")
    chrom, pos, ref, alt = m.groups()
    chrom = chrom.upper()
    if chrom == "MT":
        chrom = "M"
    return f"{chrom}-{int(pos)}-{ref.upper()}-{alt.upper()}"


def validate_variant_id(value: Optional[str], field_name: str = "variant_id") -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}: value must be a non-empty string")
    if not is_variant_id(value):
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}: expected chrom-pos-ref-alt (e.g., 1-55516888-G-A)")
    return normalize_variant_id(value)


def validate_clinvar_variation_id(value: Optional[str], field_name: str = "clinvar_variation_id") -> str:
    if value is None or not _VARIATION_ID_RE.match(value.strip()):
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}: expected a numeric ClinVar variation id")
    return value.strip()
