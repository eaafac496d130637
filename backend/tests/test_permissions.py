from app.config import settings

APPROVAL = b"%PDF-1.4 oficio de autorizacion"


class TestPermissions:
    def _auth(self, worker_id=42, role="USER"):
        return {"X-Caller-Id": str(worker_id), "X-Caller-Role": role}

    def _create(self, client, approval=None, headers=None, **overrides):
        data = {
            "permission_type": "MEDICAL",
            "start_date": "2024-03-01",
            "end_date": "2024-03-05",
            "reason": "Surgery",
        }
        data.update(overrides)
        files = None
        if approval is not None:
            files = {"approval_document": approval}
        return client.post(
            "/api/v1/permissions",
            data=data,
            files=files,
            headers=headers or self._auth(),
        )

    def test_create_without_document(self, client, stored_files):
        r = self._create(client)
        assert r.status_code == 201
        data = r.json()
        assert data["worker_id"] == 42
        assert data["status"] == "PENDING"
        assert data["approval_document"] is None
        assert stored_files() == []

    def test_create_with_document(self, client, tmp_storage):
        r = self._create(client, approval=("oficio.pdf", APPROVAL, "application/pdf"))
        assert r.status_code == 201
        doc = r.json()["approval_document"]
        assert doc["document_type"] == "PERMISSION_APPROVAL"
        assert doc["stored_path"].startswith("permission_approvals/")
        assert (tmp_storage / doc["stored_path"]).read_bytes() == APPROVAL

    def test_invalid_period(self, client):
        r = self._create(client, start_date="2024-03-05", end_date="2024-03-01")
        assert r.status_code == 400

    def test_approval_rejects_word_documents(self, client, stored_files):
        word = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        r = self._create(client, approval=("oficio.docx", b"PK\x03\x04", word))
        assert r.status_code == 415
        assert stored_files() == []

    def test_approval_size_limit(self, client, stored_files, monkeypatch):
        monkeypatch.setattr(settings, "max_permission_upload_bytes", 8)
        r = self._create(client, approval=("oficio.pdf", APPROVAL, "application/pdf"))
        assert r.status_code == 413
        assert stored_files() == []

    def test_list_permissions(self, client):
        self._create(client, start_date="2024-01-10", end_date="2024-01-11")
        self._create(client, start_date="2024-05-02", end_date="2024-05-03")

        r = client.get("/api/v1/workers/42/permissions", headers=self._auth())
        assert r.status_code == 200
        assert [p["start_date"] for p in r.json()] == ["2024-05-02", "2024-01-10"]

    def test_update_replaces_document(self, client, tmp_storage):
        created = self._create(client, approval=("oficio.pdf", APPROVAL, "application/pdf")).json()
        old_doc = created["approval_document"]

        r = client.put(
            f"/api/v1/permissions/{created['id']}",
            data={"reason": "Surgery and recovery"},
            files={"approval_document": ("oficio-v2.png", b"\x89PNG v2", "image/png")},
            headers=self._auth(),
        )
        assert r.status_code == 200
        data = r.json()
        assert data["reason"] == "Surgery and recovery"
        assert data["approval_document"]["id"] != old_doc["id"]
        assert data["approval_document"]["mime_type"] == "image/png"
        assert not (tmp_storage / old_doc["stored_path"]).exists()

    def test_update_removes_document(self, client, stored_files):
        created = self._create(client, approval=("oficio.pdf", APPROVAL, "application/pdf")).json()

        r = client.put(
            f"/api/v1/permissions/{created['id']}",
            data={"remove_document": "true"},
            headers=self._auth(),
        )
        assert r.status_code == 200
        assert r.json()["approval_document"] is None
        assert stored_files() == []

    def test_status_change_requires_admin(self, client):
        created = self._create(client).json()

        r = client.put(
            f"/api/v1/permissions/{created['id']}",
            data={"status": "APPROVED"},
            headers=self._auth(),
        )
        assert r.status_code == 403

        r = client.put(
            f"/api/v1/permissions/{created['id']}",
            data={"status": "APPROVED"},
            headers=self._auth(1, "ADMIN"),
        )
        assert r.status_code == 200
        assert r.json()["status"] == "APPROVED"

    def test_invalid_status(self, client):
        created = self._create(client).json()
        r = client.put(
            f"/api/v1/permissions/{created['id']}",
            data={"status": "MAYBE"},
            headers=self._auth(1, "ADMIN"),
        )
        assert r.status_code == 400

    def test_delete_removes_document(self, client, stored_files):
        created = self._create(client, approval=("oficio.pdf", APPROVAL, "application/pdf")).json()

        r = client.delete(f"/api/v1/permissions/{created['id']}", headers=self._auth())
        assert r.status_code == 200
        assert stored_files() == []

        r = client.get(f"/api/v1/permissions/{created['id']}", headers=self._auth())
        assert r.status_code == 404
