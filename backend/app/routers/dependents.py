from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CallerPolicy, get_registry, require_caller
from app.models.dependent import Dependent
from app.routers.documents import document_response
from app.schemas.dependent import DependentResponse
from app.services.dependent_service import DependentService
from app.services.document_registry import DocumentRegistry
from app.services.upload_gateway import UploadGateway, UploadPolicy

router = APIRouter(tags=["dependents"])


def get_dependent_service(
    db: Session = Depends(get_db),
    registry: DocumentRegistry = Depends(get_registry),
) -> DependentService:
    return DependentService(db, registry)


def _dependent_to_response(dependent: Dependent) -> DependentResponse:
    return DependentResponse(
        id=dependent.id,
        worker_id=dependent.worker_id,
        first_name=dependent.first_name,
        paternal_surname=dependent.paternal_surname,
        maternal_surname=dependent.maternal_surname,
        birth_date=dependent.birth_date,
        active=dependent.active,
        created_at=dependent.created_at,
        updated_at=dependent.updated_at,
        birth_certificate=(
            document_response(dependent.birth_certificate) if dependent.birth_certificate else None
        ),
    )


@router.post("/dependents", response_model=DependentResponse, status_code=201)
async def register_dependent(
    first_name: str = Form(...),
    paternal_surname: str = Form(...),
    birth_date: str = Form(...),
    maternal_surname: str | None = Form(None),
    worker_id: int | None = Form(None),
    birth_certificate: UploadFile = File(...),
    policy: CallerPolicy = Depends(require_caller),
    service: DependentService = Depends(get_dependent_service),
):
    # Workers register their own dependents unless an admin names another worker.
    owner_id = worker_id if worker_id is not None else policy.caller.worker_id
    policy.require_manage(owner_id)

    gateway = UploadGateway(UploadPolicy.documents())
    async with gateway.receive(birth_certificate) as upload:
        with upload.open() as source:
            dependent = service.register(
                owner_id,
                first_name,
                paternal_surname,
                maternal_surname,
                birth_date,
                source,
                upload.metadata(),
                policy.caller.label,
            )
    return _dependent_to_response(dependent)


@router.get("/workers/{worker_id}/dependents", response_model=list[DependentResponse])
async def list_dependents(
    worker_id: int,
    policy: CallerPolicy = Depends(require_caller),
    service: DependentService = Depends(get_dependent_service),
):
    policy.require_manage(worker_id)
    return [_dependent_to_response(d) for d in service.list_for_worker(worker_id)]


@router.get("/dependents/{dependent_id}", response_model=DependentResponse)
async def get_dependent(
    dependent_id: str,
    policy: CallerPolicy = Depends(require_caller),
    service: DependentService = Depends(get_dependent_service),
):
    dependent = service.get(dependent_id)
    policy.require_manage(dependent.worker_id)
    return _dependent_to_response(dependent)


@router.put("/dependents/{dependent_id}/birth-certificate", response_model=DependentResponse)
async def replace_birth_certificate(
    dependent_id: str,
    birth_certificate: UploadFile = File(...),
    policy: CallerPolicy = Depends(require_caller),
    service: DependentService = Depends(get_dependent_service),
):
    policy.require_manage(service.get(dependent_id).worker_id)

    gateway = UploadGateway(UploadPolicy.documents())
    async with gateway.receive(birth_certificate) as upload:
        with upload.open() as source:
            dependent = service.replace_birth_certificate(
                dependent_id, source, upload.metadata(), policy.caller.label,
            )
    return _dependent_to_response(dependent)


@router.delete("/dependents/{dependent_id}")
async def delete_dependent(
    dependent_id: str,
    policy: CallerPolicy = Depends(require_caller),
    service: DependentService = Depends(get_dependent_service),
):
    policy.require_manage(service.get(dependent_id).worker_id)
    service.delete(dependent_id, policy.caller.label)
    return {"message": "Dependent deleted"}
