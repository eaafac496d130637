PDF = b"%PDF-1.4 acta de nacimiento"


class TestDependents:
    def _auth(self, worker_id=42, role="USER"):
        return {"X-Caller-Id": str(worker_id), "X-Caller-Role": role}

    def _register(self, client, first_name="Lucia", birth_date="2015-06-01", content=PDF,
                  headers=None, **extra):
        data = {
            "first_name": first_name,
            "paternal_surname": "Lopez",
            "maternal_surname": "Ruiz",
            "birth_date": birth_date,
        }
        data.update(extra)
        return client.post(
            "/api/v1/dependents",
            files={"birth_certificate": ("acta.pdf", content, "application/pdf")},
            data=data,
            headers=headers or self._auth(),
        )

    def test_register_dependent(self, client):
        r = self._register(client)
        assert r.status_code == 201
        data = r.json()
        assert data["worker_id"] == 42
        assert data["first_name"] == "Lucia"
        assert data["birth_date"] == "2015-06-01"
        cert = data["birth_certificate"]
        assert cert["document_type"] == "BIRTH_CERTIFICATE"
        assert cert["is_public"] is False
        assert cert["description"] == "Birth certificate of Lucia Lopez Ruiz"
        assert cert["stored_path"].startswith("birth_certificates/")

    def test_invalid_birth_date(self, client, stored_files):
        r = self._register(client, birth_date="01/06/2015")
        assert r.status_code == 400
        assert stored_files() == []

    def test_missing_name(self, client, stored_files):
        r = self._register(client, first_name="   ")
        assert r.status_code == 400
        assert stored_files() == []

    def test_cannot_register_for_another_worker(self, client, stored_files):
        r = self._register(client, headers=self._auth(7), worker_id="42")
        assert r.status_code == 403
        assert stored_files() == []

    def test_list_dependents(self, client):
        self._register(client, first_name="Lucia", birth_date="2015-06-01")
        self._register(client, first_name="Mateo", birth_date="2012-03-15")

        r = client.get("/api/v1/workers/42/dependents", headers=self._auth())
        assert r.status_code == 200
        assert [d["first_name"] for d in r.json()] == ["Mateo", "Lucia"]

        r = client.get("/api/v1/workers/42/dependents", headers=self._auth(7))
        assert r.status_code == 403

    def test_replace_birth_certificate(self, client, tmp_storage):
        created = self._register(client).json()
        old_cert = created["birth_certificate"]

        r = client.put(
            f"/api/v1/dependents/{created['id']}/birth-certificate",
            files={"birth_certificate": ("acta-v2.pdf", b"%PDF-1.4 v2", "application/pdf")},
            headers=self._auth(),
        )
        assert r.status_code == 200
        new_cert = r.json()["birth_certificate"]
        assert new_cert["id"] != old_cert["id"]
        assert new_cert["original_filename"] == "acta-v2.pdf"
        assert not (tmp_storage / old_cert["stored_path"]).exists()
        assert (tmp_storage / new_cert["stored_path"]).exists()

        r = client.get(f"/api/v1/documents/{old_cert['id']}", headers=self._auth())
        assert r.status_code == 404

    def test_referenced_certificate_cannot_be_deleted_directly(self, client, tmp_storage):
        cert = self._register(client).json()["birth_certificate"]

        r = client.delete(f"/api/v1/documents/{cert['id']}", headers=self._auth())
        assert r.status_code == 409
        assert (tmp_storage / cert["stored_path"]).exists()

    def test_delete_dependent_removes_certificate(self, client, stored_files):
        created = self._register(client).json()

        r = client.delete(f"/api/v1/dependents/{created['id']}", headers=self._auth())
        assert r.status_code == 200
        assert stored_files() == []

        r = client.get(f"/api/v1/dependents/{created['id']}", headers=self._auth())
        assert r.status_code == 404
