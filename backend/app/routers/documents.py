from typing import BinaryIO, Iterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse

from app.dependencies import CallerPolicy, get_registry, require_caller
from app.models.document import Document, Visibility
from app.schemas.document import DocumentResponse, VerificationResponse
from app.services.document_registry import DocumentRegistry, parse_document_type
from app.services.upload_gateway import UploadGateway, UploadPolicy

router = APIRouter(tags=["documents"])

STREAM_CHUNK_SIZE = 64 * 1024


def document_response(doc: Document) -> DocumentResponse:
    return DocumentResponse(
        id=doc.id,
        owner_id=doc.owner_id,
        document_type=doc.document_type,
        original_filename=doc.original_filename,
        stored_path=doc.stored_path,
        content_hash=doc.content_hash,
        size_bytes=doc.size_bytes,
        mime_type=doc.mime_type,
        description=doc.description,
        is_public=doc.is_public,
        uploaded_at=doc.uploaded_at,
    )


def content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "").replace("\\", "")
    return f"attachment; filename=\"{fallback or 'document'}\"; filename*=UTF-8''{quote(filename)}"


def _iter_stream(stream: BinaryIO) -> Iterator[bytes]:
    try:
        for chunk in iter(lambda: stream.read(STREAM_CHUNK_SIZE), b""):
            yield chunk
    finally:
        stream.close()


@router.post("/documents", response_model=DocumentResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    owner_id: int = Form(...),
    document_type: str = Form(...),
    description: str | None = Form(None),
    is_public: bool = Form(False),
    policy: CallerPolicy = Depends(require_caller),
    registry: DocumentRegistry = Depends(get_registry),
):
    policy.require_manage(owner_id)
    doc_type = parse_document_type(document_type)

    gateway = UploadGateway(UploadPolicy.documents())
    async with gateway.receive(file) as upload:
        with upload.open() as source:
            doc = registry.register(owner_id, doc_type, source, upload.metadata(description, is_public))
    return document_response(doc)


@router.get("/workers/{owner_id}/documents", response_model=list[DocumentResponse])
async def list_documents(
    owner_id: int,
    visibility: Visibility = Query(Visibility.ALL),
    policy: CallerPolicy = Depends(require_caller),
    registry: DocumentRegistry = Depends(get_registry),
):
    # Other workers only ever see public documents.
    if not policy.can_manage(owner_id):
        visibility = Visibility.PUBLIC
    docs = registry.list_by_owner(owner_id, visibility)
    return [document_response(d) for d in docs]


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    policy: CallerPolicy = Depends(require_caller),
    registry: DocumentRegistry = Depends(get_registry),
):
    doc = registry.get(document_id)
    policy.require_view(doc)
    return document_response(doc)


@router.get("/documents/{document_id}/download")
async def download_document(
    document_id: str,
    policy: CallerPolicy = Depends(require_caller),
    registry: DocumentRegistry = Depends(get_registry),
):
    policy.require_view(registry.get(document_id))
    download = registry.download(document_id)
    return StreamingResponse(
        _iter_stream(download.stream),
        media_type=download.mime_type,
        headers={
            "Content-Disposition": content_disposition(download.filename),
            "Content-Length": str(download.size_bytes),
        },
    )


@router.get("/documents/{document_id}/verify", response_model=VerificationResponse)
async def verify_document(
    document_id: str,
    policy: CallerPolicy = Depends(require_caller),
    registry: DocumentRegistry = Depends(get_registry),
):
    """Re-hash the stored file and compare against the recorded SHA-256."""
    doc = registry.get(document_id)
    policy.require_view(doc)
    result = registry.verify(document_id)
    return VerificationResponse(
        document_id=result.document_id,
        verified=result.verified,
        filename=doc.original_filename,
        stored_hash=result.stored_hash,
        actual_hash=result.actual_hash,
    )


@router.put("/documents/{document_id}/file", response_model=DocumentResponse)
async def replace_document(
    document_id: str,
    file: UploadFile = File(...),
    description: str | None = Form(None),
    is_public: bool | None = Form(None),
    policy: CallerPolicy = Depends(require_caller),
    registry: DocumentRegistry = Depends(get_registry),
):
    old = registry.get(document_id)
    policy.require_manage(old.owner_id)
    if description is None:
        description = old.description
    if is_public is None:
        is_public = old.is_public

    gateway = UploadGateway(UploadPolicy.documents())
    async with gateway.receive(file) as upload:
        with upload.open() as source:
            doc = registry.replace(
                document_id, source, upload.metadata(description, is_public), policy.caller.label,
            )
    return document_response(doc)


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    policy: CallerPolicy = Depends(require_caller),
    registry: DocumentRegistry = Depends(get_registry),
):
    doc = registry.get(document_id)
    policy.require_manage(doc.owner_id)
    registry.delete(document_id, policy.caller.label)
    return {"message": "Document deleted"}
