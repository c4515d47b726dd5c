"""
Operator endpoints, guarded by the static MD_ADMIN_API_KEY bearer key.

POST /v1/admin/annotations   Bulk set highlight / broadcasters by fixture id.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from shared.models.domain import MatchAnnotation
from shared.utils.logging import get_logger

from api.dependencies import get_reader, require_admin
from sync.reads import ReadService

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class AnnotationBatch(BaseModel):
    items: list[MatchAnnotation] = Field(min_length=1, max_length=500)


@router.post("/annotations")
async def upsert_annotations(
    batch: AnnotationBatch,
    reader: ReadService = Depends(get_reader),
) -> dict[str, Any]:
    result = await reader.upsert_annotations(batch.items)
    return {"success": True, "data": result}
