"""Integration tests -- client records endpoints (list, profile, documents, files, history)."""

from __future__ import annotations

import re
from datetime import date
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from conftest import FakeBackend
    from fastapi.testclient import TestClient

    from clientvault.infra.backend import BackendSettings


@pytest.mark.integration
class TestListClients:
    def test_pages_are_ordered_by_name(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        for i in range(12):
            fake_backend.insert("clients", full_name=f"Client {i:02d}", phone=f"7000{i:04d}")

        first = client.get("/clients", headers=auth_headers).json()
        second = client.get("/clients", params={"page": 2}, headers=auth_headers).json()

        assert first["total"] == 12
        assert first["pageCount"] == 2
        assert [item["fullName"] for item in first["items"]][:2] == ["Client 00", "Client 01"]
        assert len(first["items"]) == 10
        assert second["page"] == 2
        assert [item["fullName"] for item in second["items"]] == ["Client 10", "Client 11"]

    def test_search_matches_name_or_phone(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert("clients", full_name="Ana López", phone="70000001")
        fake_backend.insert("clients", full_name="Bruno Díaz", phone="71234567")

        by_name = client.get("/clients", params={"q": "ana"}, headers=auth_headers).json()
        by_phone = client.get("/clients", params={"q": "1234"}, headers=auth_headers).json()

        assert [item["fullName"] for item in by_name["items"]] == ["Ana López"]
        assert [item["fullName"] for item in by_phone["items"]] == ["Bruno Díaz"]

    def test_empty_result_has_one_page(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        body = client.get("/clients", params={"q": "nobody"}, headers=auth_headers).json()
        assert body == {"items": [], "total": 0, "page": 1, "pageCount": 1}

    def test_page_past_the_end_is_empty(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        for i in range(12):
            fake_backend.insert("clients", full_name=f"Client {i:02d}", phone=f"7000{i:04d}")

        resp = client.get("/clients", params={"page": 3}, headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json() == {"items": [], "total": 12, "page": 3, "pageCount": 2}

    def test_soft_deleted_clients_are_hidden(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert("clients", full_name="Live", phone="70000000")
        fake_backend.insert(
            "clients",
            full_name="Gone",
            phone="70000001",
            deleted_at="2024-01-01T00:00:00+00:00",
        )

        body = client.get("/clients", headers=auth_headers).json()
        assert [item["fullName"] for item in body["items"]] == ["Live"]

    def test_uses_caller_token_even_with_service_key(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
        backend_settings: BackendSettings,
    ) -> None:
        backend_settings.service_role_key = "service-role-key"

        client.get("/clients", headers=auth_headers)

        assert fake_backend.auth_headers[-1] == ("anon-key", "Bearer staff-token")


@pytest.mark.integration
class TestCreateClient:
    def test_name_is_normalised(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        resp = client.post(
            "/clients",
            json={"fullName": "  ana   maría LÓPEZ ", "phone": " 70000000 "},
            headers=auth_headers,
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["fullName"] == "Ana María López"
        assert body["phone"] == "70000000"
        assert fake_backend.find("clients", body["id"]) is not None

    def test_phone_must_have_eight_digits(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        resp = client.post(
            "/clients", json={"fullName": "Ana", "phone": "+59170000000"}, headers=auth_headers
        )
        assert resp.status_code == 422
        assert resp.json()["context"]["field"] == "phone"


@pytest.mark.integration
class TestClientDetail:
    def test_profile(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert(
            "clients",
            id="C1",
            full_name="Ana López",
            phone="70000000",
            ci="1234567",
            birth_date="1990-05-01",
            total_amount="1500.50",
            created_at="2024-01-01T00:00:00+00:00",
        )

        body = client.get("/clients/C1", headers=auth_headers).json()

        assert body["schemaOutdated"] is False
        assert body["missingFields"] == []
        assert body["client"]["ci"] == "1234567"
        assert body["client"]["birthDate"] == "1990-05-01"
        assert body["client"]["totalAmount"] == 1500.5

    def test_falls_back_when_columns_are_missing(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert("clients", id="C1", full_name="Ana López", phone="70000000")
        fake_backend.missing_columns["clients"] = {"ci"}

        resp = client.get("/clients/C1", headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["schemaOutdated"] is True
        assert "ci" in body["missingFields"]
        assert body["client"]["fullName"] == "Ana López"
        assert body["client"]["ci"] is None

    def test_soft_deleted_client_is_not_found(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert(
            "clients", id="C1", full_name="Ana", deleted_at="2024-01-01T00:00:00+00:00"
        )
        resp = client.get("/clients/C1", headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Client not found"


@pytest.mark.integration
class TestUpdateClient:
    def test_partial_update(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert("clients", id="C1", full_name="Ana López", phone="70000000")

        resp = client.patch(
            "/clients/C1",
            json={"phone": "71234567", "birthDate": "1990-05-01"},
            headers=auth_headers,
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["phone"] == "71234567"
        assert body["fullName"] == "Ana López"
        assert fake_backend.find("clients", "C1")["birth_date"] == "1990-05-01"

    def test_negative_total_amount(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert("clients", id="C1", full_name="Ana López", phone="70000000")

        resp = client.patch("/clients/C1", json={"totalAmount": -1}, headers=auth_headers)

        assert resp.status_code == 422
        assert ("update", "clients") not in fake_backend.calls

    def test_unknown_client(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        resp = client.patch("/clients/C9", json={"notes": "x"}, headers=auth_headers)
        assert resp.status_code == 404


@pytest.mark.integration
class TestClientDocuments:
    @pytest.fixture()
    def seeded(self, fake_backend: FakeBackend) -> FakeBackend:
        fake = fake_backend
        fake.insert("document_types", id="T-ci", name="Cédula", sort_order=1, is_active=True)
        fake.insert("document_types", id="T-contract", name="Contrato", sort_order=2, is_active=True)
        fake.insert("document_types", id="T-other", name="Otros", sort_order=50, is_active=True)
        fake.insert("document_types", id="T-old", name="Antiguo", sort_order=0, is_active=False)

        fake.insert("client_documents", id="D-poder", client_id="C1", custom_name="Poder")
        fake.insert("client_documents", id="D-contract", client_id="C1", document_type_id="T-contract")
        fake.insert("client_documents", id="D-ci", client_id="C1", document_type_id="T-ci")
        fake.insert("client_documents", id="D-anexo", client_id="C1", custom_name="Anexo")
        fake.insert(
            "client_documents",
            id="D-gone",
            client_id="C1",
            custom_name="Borrado",
            deleted_at="2024-01-01T00:00:00+00:00",
        )
        fake.insert("client_documents", id="D-other-client", client_id="C2", custom_name="Ajeno")

        fake.insert(
            "files",
            id="F-old",
            client_id="C1",
            client_document_id="D-ci",
            bucket="client-files",
            path="C1/ci-old.pdf",
            created_at="2024-01-01T00:00:00+00:00",
        )
        fake.insert(
            "files",
            id="F-new",
            client_id="C1",
            client_document_id="D-ci",
            bucket="client-files",
            path="C1/ci-new.pdf",
            created_at="2024-02-01T00:00:00+00:00",
        )
        fake.insert(
            "files",
            id="F-deleted",
            client_id="C1",
            client_document_id="D-ci",
            bucket="client-files",
            path="C1/ci-deleted.pdf",
            created_at="2024-03-01T00:00:00+00:00",
            deleted_at="2024-03-02T00:00:00+00:00",
        )
        return fake

    def test_display_order(
        self, client: TestClient, auth_headers: dict[str, str], seeded: FakeBackend
    ) -> None:
        body = client.get("/clients/C1/documents", headers=auth_headers).json()

        assert [doc["id"] for doc in body] == ["D-ci", "D-contract", "D-anexo", "D-poder"]
        assert [doc["displayName"] for doc in body] == ["Cédula", "Contrato", "Anexo", "Poder"]
        assert body[0]["documentType"]["name"] == "Cédula"
        assert body[2]["documentType"] is None

    def test_files_are_live_and_newest_first(
        self, client: TestClient, auth_headers: dict[str, str], seeded: FakeBackend
    ) -> None:
        body = client.get("/clients/C1/documents", headers=auth_headers).json()

        ci = next(doc for doc in body if doc["id"] == "D-ci")
        assert [f["id"] for f in ci["files"]] == ["F-new", "F-old"]
        assert all(doc["files"] == [] for doc in body if doc["id"] != "D-ci")

    def test_join_returned_as_list(
        self, client: TestClient, auth_headers: dict[str, str], seeded: FakeBackend
    ) -> None:
        seeded.join_as_list = True

        body = client.get("/clients/C1/documents", headers=auth_headers).json()

        assert body[0]["documentType"]["name"] == "Cédula"
        assert body[0]["displayName"] == "Cédula"

    def test_no_documents(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        resp = client.get("/clients/C1/documents", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == []


@pytest.mark.integration
class TestClientHistory:
    def test_payments_newest_first(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert("client_payments", id="P1", client_id="C1", amount="100.00", paid_at="2024-01-10")
        fake_backend.insert("client_payments", id="P2", client_id="C1", amount=250, paid_at="2024-03-05")
        fake_backend.insert(
            "client_payments",
            id="P3",
            client_id="C1",
            amount=10,
            paid_at="2024-04-01",
            deleted_at="2024-04-02T00:00:00+00:00",
        )

        body = client.get("/clients/C1/payments", headers=auth_headers).json()

        assert [p["id"] for p in body] == ["P2", "P1"]
        assert body[1]["amount"] == 100.0
        assert body[0]["paidAt"] == "2024-03-05"

    def test_record_payment(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        resp = client.post(
            "/clients/C1/payments",
            json={"amount": 120.5, "paidAt": "2024-05-01", "notes": "  efectivo  "},
            headers=auth_headers,
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["amount"] == 120.5
        assert body["notes"] == "efectivo"
        assert fake_backend.rows("client_payments")[0]["client_id"] == "C1"

    def test_record_payment_defaults_to_today(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        resp = client.post("/clients/C1/payments", json={"amount": 5}, headers=auth_headers)

        assert resp.status_code == 201
        assert fake_backend.rows("client_payments")[0]["paid_at"] == date.today().isoformat()
        assert resp.json()["notes"] is None

    @pytest.mark.parametrize("amount", [0, -20])
    def test_amount_must_be_positive(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
        amount: int,
    ) -> None:
        resp = client.post("/clients/C1/payments", json={"amount": amount}, headers=auth_headers)

        assert resp.status_code == 422
        assert resp.json()["error_code"] == "VALIDATION_ERROR"
        assert fake_backend.rows("client_payments") == []

    def test_ownerships_current_first(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert("client_ownerships", id="O1", client_id="C1", is_current=False, start_year=2010)
        fake_backend.insert("client_ownerships", id="O2", client_id="C1", is_current=True, start_year=2015)
        fake_backend.insert("client_ownerships", id="O3", client_id="C1", is_current=False, start_year=None)
        fake_backend.insert("client_ownerships", id="O4", client_id="C1", is_current=False, start_year=2018)

        body = client.get("/clients/C1/ownerships", headers=auth_headers).json()

        assert [o["id"] for o in body] == ["O2", "O4", "O1", "O3"]
        assert body[0]["isCurrent"] is True


@pytest.mark.integration
class TestDocumentWrites:
    @pytest.fixture()
    def ana(self, fake_backend: FakeBackend) -> FakeBackend:
        fake_backend.insert("clients", id="C1", full_name="Ana", phone="70000001")
        return fake_backend

    def test_custom_document_is_listed_under_its_alias(
        self, client: TestClient, auth_headers: dict[str, str], ana: FakeBackend
    ) -> None:
        resp = client.post(
            "/clients/C1/documents", json={"customName": "  Poder   notarial "}, headers=auth_headers
        )

        assert resp.status_code == 201
        created = resp.json()
        assert created["customName"] == "Poder notarial"
        assert created["documentTypeId"] is None
        assert created["displayName"] == "Poder notarial"
        listed = client.get("/clients/C1/documents", headers=auth_headers).json()
        assert [doc["id"] for doc in listed] == [created["id"]]

    def test_blank_alias(
        self, client: TestClient, auth_headers: dict[str, str], ana: FakeBackend
    ) -> None:
        resp = client.post("/clients/C1/documents", json={"customName": "  "}, headers=auth_headers)

        assert resp.status_code == 422
        assert resp.json()["error_code"] == "VALIDATION_ERROR"
        assert ana.rows("client_documents") == []

    def test_unknown_client(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        resp = client.post("/clients/C9/documents", json={"customName": "Poder"}, headers=auth_headers)
        assert resp.status_code == 404

    def test_update_notes(
        self, client: TestClient, auth_headers: dict[str, str], ana: FakeBackend
    ) -> None:
        ana.insert("client_documents", id="D1", client_id="C1", custom_name="Poder")

        resp = client.patch(
            "/clients/C1/documents/D1", json={"notes": " vence en marzo "}, headers=auth_headers
        )

        assert resp.status_code == 200
        assert resp.json()["notes"] == "vence en marzo"

    def test_upload_view_then_delete(
        self, client: TestClient, auth_headers: dict[str, str], ana: FakeBackend
    ) -> None:
        document = client.post(
            "/clients/C1/documents", json={"customName": "Poder"}, headers=auth_headers
        ).json()
        base = f"/clients/C1/documents/{document['id']}"

        uploaded = client.post(
            f"{base}/files",
            files=[
                ("files", ("poder firmado.pdf", b"%PDF-1.7", "application/pdf")),
                ("files", ("anexo#2.png", b"\x89PNG", "image/png")),
            ],
            headers=auth_headers,
        )

        assert uploaded.status_code == 201
        rows = uploaded.json()
        assert [row["originalName"] for row in rows] == ["poder firmado.pdf", "anexo#2.png"]
        assert [row["sizeBytes"] for row in rows] == [8, 4]
        assert rows[1]["mimeType"] == "image/png"
        assert re.fullmatch(rf"C1/{document['id']}/[0-9a-f-]{{36}}-anexo_2\.png", rows[1]["path"])
        assert len(ana.uploads) == 2

        viewed = client.get(f"/clients/C1/files/{rows[0]['id']}", headers=auth_headers)

        assert viewed.status_code == 200
        assert viewed.json()["expiresIn"] == 300
        assert viewed.json()["signedUrl"].endswith("?token=signed-300")

        deleted = client.post(
            f"/client-documents/{document['id']}/delete", json={"clientId": "C1"}, headers=auth_headers
        )

        assert deleted.json() == {"ok": True, "removedFiles": 2}
        assert ana.objects["client-files"] == set()

    def test_upload_needs_files(
        self, client: TestClient, auth_headers: dict[str, str], ana: FakeBackend
    ) -> None:
        ana.insert("client_documents", id="D1", client_id="C1", custom_name="Poder")

        resp = client.post("/clients/C1/documents/D1/files", headers=auth_headers)

        assert resp.status_code == 422
        assert resp.json()["error_code"] == "REQUEST_VALIDATION_ERROR"

    def test_upload_to_unknown_document(
        self, client: TestClient, auth_headers: dict[str, str], ana: FakeBackend
    ) -> None:
        resp = client.post(
            "/clients/C1/documents/D9/files",
            files=[("files", ("a.pdf", b"x", "application/pdf"))],
            headers=auth_headers,
        )

        assert resp.status_code == 404
        assert ana.uploads == {}

    def test_missing_bucket(
        self, client: TestClient, auth_headers: dict[str, str], ana: FakeBackend
    ) -> None:
        ana.insert("client_documents", id="D1", client_id="C1", custom_name="Poder")
        ana.fail_upload["client-files"] = "Bucket not found"

        resp = client.post(
            "/clients/C1/documents/D1/files",
            files=[("files", ("a.pdf", b"x", "application/pdf"))],
            headers=auth_headers,
        )

        assert resp.status_code == 500
        assert resp.json()["error_code"] == "STORAGE_BUCKET_MISSING"
        assert ana.rows("files") == []

    def test_view_unknown_file(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        resp = client.get("/clients/C1/files/F9", headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "File not found"


@pytest.mark.integration
class TestHistoryWrites:
    def test_edit_payment(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
        fake_backend: FakeBackend,
    ) -> None:
        fake_backend.insert("client_payments", id="P1", client_id="C1", amount=100, paid_at="2024-01-10")

        resp = client.put(
            "/clients/C1/payments/P1",
            json={"amount": 75, "paidAt": "2024-02-02", "notes": ""},
            headers=auth_headers,
        )

        assert resp.status_code == 200
        assert resp.json()["amount"] == 75
        assert resp.json()["paidAt"] == "2024-02-02"
        assert resp.json()["notes"] is None

    def test_edit_payment_requires_date(
        self, client: TestClient, auth_headers: dict[str, str], fake_backend: FakeBackend
    ) -> None:
        fake_backend.insert("client_payments", id="P1", client_id="C1", amount=100, paid_at="2024-01-10")

        resp = client.put("/clients/C1/payments/P1", json={"amount": 75}, headers=auth_headers)

        assert resp.status_code == 422
        assert fake_backend.find("client_payments", "P1")["amount"] == 100  # type: ignore[index]

    def test_deleted_payment_leaves_the_list(
        self, client: TestClient, auth_headers: dict[str, str], fake_backend: FakeBackend
    ) -> None:
        fake_backend.insert("client_payments", id="P1", client_id="C1", amount=100, paid_at="2024-01-10")

        first = client.delete("/clients/C1/payments/P1", headers=auth_headers)
        again = client.delete("/clients/C1/payments/P1", headers=auth_headers)

        assert first.status_code == 204
        assert again.status_code == 404
        assert client.get("/clients/C1/payments", headers=auth_headers).json() == []
        assert fake_backend.find("client_payments", "P1")["deleted_at"] is not None  # type: ignore[index]

    def test_new_current_owner(
        self, client: TestClient, auth_headers: dict[str, str], fake_backend: FakeBackend
    ) -> None:
        fake_backend.insert("client_ownerships", id="O1", client_id="C1", owner_name="Ana", is_current=True)

        resp = client.post(
            "/clients/C1/ownerships",
            json={"ownerName": "Luis  Paz", "startYear": 2020, "isCurrent": True},
            headers=auth_headers,
        )

        assert resp.status_code == 201
        assert resp.json()["ownerName"] == "Luis Paz"
        listed = client.get("/clients/C1/ownerships", headers=auth_headers).json()
        assert [(o["ownerName"], o["isCurrent"]) for o in listed] == [("Luis Paz", True), ("Ana", False)]

    def test_end_before_start(
        self, client: TestClient, auth_headers: dict[str, str], fake_backend: FakeBackend
    ) -> None:
        resp = client.post(
            "/clients/C1/ownerships",
            json={"ownerName": "Luis", "startYear": 2020, "endYear": 2019},
            headers=auth_headers,
        )

        assert resp.status_code == 422
        assert resp.json()["context"]["field"] == "end_year"
        assert fake_backend.rows("client_ownerships") == []

    def test_year_out_of_range(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        resp = client.post(
            "/clients/C1/ownerships",
            json={"ownerName": "Luis", "startYear": 1899},
            headers=auth_headers,
        )

        assert resp.status_code == 422
        assert resp.json()["error_code"] == "REQUEST_VALIDATION_ERROR"

    def test_edit_then_delete_owner(
        self, client: TestClient, auth_headers: dict[str, str], fake_backend: FakeBackend
    ) -> None:
        fake_backend.insert("client_ownerships", id="O1", client_id="C1", owner_name="Ana", is_current=False)

        edited = client.put(
            "/clients/C1/ownerships/O1",
            json={"ownerName": "Ana María", "startYear": 2001, "endYear": 2010, "isCurrent": True},
            headers=auth_headers,
        )
        deleted = client.delete("/clients/C1/ownerships/O1", headers=auth_headers)

        assert edited.status_code == 200
        assert edited.json()["endYear"] == 2010
        assert deleted.status_code == 204
        assert fake_backend.find("client_ownerships", "O1")["is_current"] is False  # type: ignore[index]
        assert client.get("/clients/C1/ownerships", headers=auth_headers).json() == []

    def test_edit_unknown_owner(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        resp = client.put("/clients/C1/ownerships/O9", json={"ownerName": "Ana"}, headers=auth_headers)
        assert resp.status_code == 404
