from fastapi import APIRouter, Depends, Query

from app.config import settings
from app.dependencies import CallerPolicy, get_registry, require_caller
from app.schemas.document import SweepResponse
from app.services.document_registry import DocumentRegistry

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/sweep", response_model=SweepResponse)
async def sweep_orphans(
    grace_seconds: int | None = Query(None, ge=0),
    policy: CallerPolicy = Depends(require_caller),
    registry: DocumentRegistry = Depends(get_registry),
):
    """Remove stored files that no document row points at."""
    policy.require_admin()
    if grace_seconds is None:
        grace_seconds = settings.orphan_grace_seconds
    report = registry.sweep_orphans(grace_seconds)
    return SweepResponse(
        removed=report.removed,
        skipped_recent=report.skipped_recent,
        missing_blobs=report.missing_blobs,
    )
