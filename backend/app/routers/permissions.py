from contextlib import AsyncExitStack

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CallerPolicy, get_registry, require_caller
from app.models.permission import PermissionRequest
from app.routers.documents import document_response
from app.schemas.permission import PermissionResponse
from app.services.document_registry import DocumentRegistry
from app.services.permission_service import PermissionService
from app.services.upload_gateway import UploadGateway, UploadPolicy

router = APIRouter(tags=["permissions"])


def get_permission_service(
    db: Session = Depends(get_db),
    registry: DocumentRegistry = Depends(get_registry),
) -> PermissionService:
    return PermissionService(db, registry)


def _permission_to_response(permission: PermissionRequest) -> PermissionResponse:
    return PermissionResponse(
        id=permission.id,
        worker_id=permission.worker_id,
        permission_type=permission.permission_type,
        start_date=permission.start_date,
        end_date=permission.end_date,
        reason=permission.reason,
        status=permission.status,
        created_at=permission.created_at,
        updated_at=permission.updated_at,
        approval_document=(
            document_response(permission.approval_document) if permission.approval_document else None
        ),
    )


def _has_file(upload: UploadFile | None) -> bool:
    return upload is not None and bool(upload.filename)


async def _open_approval(stack: AsyncExitStack, upload: UploadFile | None):
    """Materialize an optional approval upload; returns (source, metadata) or (None, None)."""
    if not _has_file(upload):
        return None, None
    gateway = UploadGateway(UploadPolicy.permission_approvals())
    materialized = await stack.enter_async_context(gateway.receive(upload))
    return stack.enter_context(materialized.open()), materialized.metadata()


@router.post("/permissions", response_model=PermissionResponse, status_code=201)
async def create_permission(
    permission_type: str = Form(...),
    start_date: str = Form(...),
    end_date: str = Form(...),
    reason: str | None = Form(None),
    worker_id: int | None = Form(None),
    approval_document: UploadFile | None = File(None),
    policy: CallerPolicy = Depends(require_caller),
    service: PermissionService = Depends(get_permission_service),
):
    owner_id = worker_id if worker_id is not None else policy.caller.worker_id
    policy.require_manage(owner_id)

    async with AsyncExitStack() as stack:
        source, metadata = await _open_approval(stack, approval_document)
        permission = service.create(
            owner_id,
            permission_type,
            start_date,
            end_date,
            reason,
            approval=source,
            approval_metadata=metadata,
            requested_by=policy.caller.label,
        )
    return _permission_to_response(permission)


@router.get("/workers/{worker_id}/permissions", response_model=list[PermissionResponse])
async def list_permissions(
    worker_id: int,
    policy: CallerPolicy = Depends(require_caller),
    service: PermissionService = Depends(get_permission_service),
):
    policy.require_manage(worker_id)
    return [_permission_to_response(p) for p in service.list_for_worker(worker_id)]


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    policy: CallerPolicy = Depends(require_caller),
    service: PermissionService = Depends(get_permission_service),
):
    permission = service.get(permission_id)
    policy.require_manage(permission.worker_id)
    return _permission_to_response(permission)


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    permission_type: str | None = Form(None),
    start_date: str | None = Form(None),
    end_date: str | None = Form(None),
    reason: str | None = Form(None),
    status: str | None = Form(None),
    remove_document: bool = Form(False),
    approval_document: UploadFile | None = File(None),
    policy: CallerPolicy = Depends(require_caller),
    service: PermissionService = Depends(get_permission_service),
):
    policy.require_manage(service.get(permission_id).worker_id)
    if status is not None:
        policy.require_admin()

    changes = {
        "permission_type": permission_type,
        "start_date": start_date,
        "end_date": end_date,
        "reason": reason,
        "status": status,
    }
    async with AsyncExitStack() as stack:
        source, metadata = await _open_approval(stack, approval_document)
        permission = service.update(
            permission_id,
            changes,
            approval=source,
            approval_metadata=metadata,
            remove_document=remove_document,
            requested_by=policy.caller.label,
        )
    return _permission_to_response(permission)


@router.delete("/permissions/{permission_id}")
async def delete_permission(
    permission_id: str,
    policy: CallerPolicy = Depends(require_caller),
    service: PermissionService = Depends(get_permission_service),
):
    policy.require_manage(service.get(permission_id).worker_id)
    service.delete(permission_id, policy.caller.label)
    return {"message": "Permission request deleted"}
