# variant_gateway/routers/liftover_router.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Query, Request

from ..ids import validate_variant_id
from ..models import LiftoverCorrespondence, ReferenceGenome
from ..queries.liftover import LiftoverResolver

router = APIRouter(prefix="/liftover", tags=["Liftover"])


def _resolver(request: Request) -> LiftoverResolver:
    return request.app.state.liftover


@router.get("/source/{variant_id}", response_model=List[LiftoverCorrespondence])
async def liftover_by_source(
    request: Request,
    variant_id: str,
    reference_genome: ReferenceGenome = Query(...),
) -> List[dict]:
    return await _resolver(request).resolve_by_source(validate_variant_id(variant_id), reference_genome)


@router.get("/target/{variant_id}", response_model=List[LiftoverCorrespondence])
async def liftover_by_target(
    request: Request,
    variant_id: str,
    reference_genome: ReferenceGenome = Query(...),
) -> List[dict]:
    return await _resolver(request).resolve_by_target(validate_variant_id(variant_id), reference_genome)
