import asyncio
import io

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.errors import PayloadTooLargeError, UnsupportedMediaTypeError, ValidationError
from app.services.upload_gateway import UploadGateway, UploadPolicy

PDF_ONLY = UploadPolicy(allowed_mime_types=["application/pdf"], max_bytes=1024)


def _upload(content: bytes, filename="doc.pdf", content_type="application/pdf") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def spool(tmp_path):
    path = tmp_path / "spool"
    path.mkdir()
    return path


def test_materialize_and_cleanup(spool):
    gateway = UploadGateway(PDF_ONLY, spool_dir=spool)

    async def run():
        async with gateway.receive(_upload(b"%PDF-1.4 body", filename="Scan.PDF")) as upload:
            assert upload.path.parent == spool
            assert upload.size_bytes == len(b"%PDF-1.4 body")
            assert upload.mime_type == "application/pdf"
            with upload.open() as f:
                assert f.read() == b"%PDF-1.4 body"
            meta = upload.metadata(description="scan", is_public=True)
            assert meta.original_filename == "Scan.PDF"
            assert meta.is_public is True

    asyncio.run(run())
    assert list(spool.iterdir()) == []


def test_temp_file_removed_when_body_raises(spool):
    gateway = UploadGateway(PDF_ONLY, spool_dir=spool)

    async def run():
        async with gateway.receive(_upload(b"data")):
            raise RuntimeError("registry failed")

    with pytest.raises(RuntimeError):
        asyncio.run(run())
    assert list(spool.iterdir()) == []


def test_oversized_upload_rejected(spool):
    gateway = UploadGateway(PDF_ONLY, spool_dir=spool)
    with pytest.raises(PayloadTooLargeError):
        asyncio.run(gateway.materialize(_upload(b"x" * 1025)))
    assert list(spool.iterdir()) == []


def test_upload_at_limit_accepted(spool):
    gateway = UploadGateway(PDF_ONLY, spool_dir=spool)
    upload = asyncio.run(gateway.materialize(_upload(b"x" * 1024)))
    assert upload.size_bytes == 1024
    upload.cleanup()


def test_disallowed_mime_type(spool):
    gateway = UploadGateway(PDF_ONLY, spool_dir=spool)
    with pytest.raises(UnsupportedMediaTypeError):
        asyncio.run(gateway.materialize(_upload(b"MZ", filename="x.exe", content_type="application/x-msdownload")))
    assert list(spool.iterdir()) == []


def test_empty_file(spool):
    gateway = UploadGateway(PDF_ONLY, spool_dir=spool)
    with pytest.raises(ValidationError):
        asyncio.run(gateway.materialize(_upload(b"")))
    assert list(spool.iterdir()) == []


def test_permission_policy_is_stricter():
    documents = UploadPolicy.documents()
    approvals = UploadPolicy.permission_approvals()
    assert approvals.max_bytes < documents.max_bytes
    assert "application/msword" in documents.allowed_mime_types
    assert "application/msword" not in approvals.allowed_mime_types
