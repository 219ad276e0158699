"""
HTTP-level tests: wire format, status codes and refusal bodies.
"""
import base64
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from cortapau.database import get_db
from cortapau.services.event_log import EventLog


class FailingEventLog(EventLog):
    def _write(self, db, solicitation_id, draft):
        raise RuntimeError("events table unavailable")


def create_payload(**overrides):
    payload = {
        "titulo": "Árvore caída",
        "descricao": "Tronco bloqueando a calçada",
        "categoria": "RISCO_QUEDAS",
        "latitude": -23.5614,
        "longitude": -46.6559,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def created(api_client, api_user):
    response = api_client.post("/solicitacoes", json=create_payload(autorId=api_user["id"]))
    assert response.status_code == 201
    return response.json()["item"]


class TestCreateAndRead:

    def test_create_returns_wire_shape(self, api_client, api_user, created):
        assert created["status"] == "NOVA"
        assert created["categoria"] == "RISCO_QUEDAS"
        assert created["revisao"] == 1
        assert created["autor"]["id"] == api_user["id"]
        assert created["autor"]["login"] == "ana@example.com"
        assert created["anexos"] == []
        assert "createdAt" in created and "updatedAt" in created

    def test_create_without_author_uses_demo_author(self, api_client):
        response = api_client.post("/solicitacoes", json=create_payload())

        assert response.status_code == 201
        assert response.json()["item"]["autor"]["login"] == "cidadao_demo@cortapau.local"

    @pytest.mark.parametrize("overrides", [
        {"titulo": "ab"},
        {"descricao": "curt"},
        {"categoria": "QUALQUER"},
        {"latitude": 91},
        {"longitude": 200},
    ])
    def test_invalid_create_is_400(self, api_client, overrides):
        response = api_client.post("/solicitacoes", json=create_payload(**overrides))

        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_list_and_get(self, api_client, created):
        listing = api_client.get("/solicitacoes").json()
        assert listing["status"] == "ok"
        assert listing["total"] == 1
        assert listing["items"][0]["id"] == created["id"]

        single = api_client.get(f"/solicitacoes/{created['id']}")
        assert single.status_code == 200
        assert single.json()["item"]["titulo"] == "Árvore caída"

    def test_unknown_solicitation_is_404(self, api_client):
        assert api_client.get("/solicitacoes/nope").status_code == 404
        assert api_client.patch("/solicitacoes/nope", json={"descricao": "x"}).status_code == 404

    def test_unknown_history_is_404_with_empty_items(self, api_client):
        response = api_client.get("/solicitacoes/nope/eventos")

        assert response.status_code == 404
        assert response.json() == {"status": "error", "items": []}


class TestLifecycleOverHttp:

    def test_end_to_end_lifecycle(self, api_client, api_operator, created):
        """
        INVARIANT: Final statuses accept no further status change; every accepted change is recorded.
        """
        url = f"/solicitacoes/{created['id']}"

        first = api_client.patch(url, json={"status": "EM_ATENDIMENTO", "operadorId": api_operator["id"]})
        assert first.status_code == 200
        assert first.json()["item"]["status"] == "EM_ATENDIMENTO"

        second = api_client.patch(url, json={
            "status": "CONCLUIDA",
            "atendimentoDescricao": "Poda realizada",
            "operadorId": api_operator["id"]
        })
        assert second.status_code == 200
        assert second.json()["item"]["atendimentoDescricao"] == "Poda realizada"

        third = api_client.patch(url, json={"status": "EM_ATENDIMENTO"})
        assert third.status_code == 409
        assert third.json()["reason"] == "illegalTransition"
        assert "final" in third.json()["message"]

        events = api_client.get(f"{url}/eventos").json()["items"]
        assert [e["tipo"] for e in events] == ["CRIACAO", "STATUS_CHANGE", "STATUS_CHANGE"]
        assert events[0]["novoStatus"] == "NOVA"
        assert events[0]["antigoStatus"] is None
        assert (events[2]["antigoStatus"], events[2]["novoStatus"]) == ("EM_ATENDIMENTO", "CONCLUIDA")
        assert events[2]["descricao"] == "Poda realizada"
        assert events[2]["autor"]["login"] == "op@example.com"

    def test_empty_patch_is_400(self, api_client, created):
        response = api_client.patch(f"/solicitacoes/{created['id']}", json={})

        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_unknown_status_value_is_400(self, api_client, created):
        response = api_client.patch(f"/solicitacoes/{created['id']}", json={"status": "ARQUIVADA"})
        assert response.status_code == 400

    def test_resolve_without_description_is_400_with_reason(self, api_client, created):
        response = api_client.patch(f"/solicitacoes/{created['id']}", json={"status": "CONCLUIDA"})

        assert response.status_code == 400
        assert response.json()["reason"] == "missingRequiredField"

    def test_blank_attendance_description_is_400(self, api_client, created):
        url = f"/solicitacoes/{created['id']}"

        assert api_client.patch(url, json={"atendimentoDescricao": "   "}).status_code == 400
        response = api_client.patch(url, json={"status": "CONCLUIDA", "atendimentoDescricao": "  "})
        assert response.status_code == 400
        assert api_client.get(url).json()["item"]["status"] == "NOVA"

    def test_regression_to_open_is_409(self, api_client, created):
        url = f"/solicitacoes/{created['id']}"
        api_client.patch(url, json={"status": "EM_ATENDIMENTO"})

        response = api_client.patch(url, json={"status": "NOVA"})

        assert response.status_code == 409
        assert api_client.get(url).json()["item"]["status"] == "EM_ATENDIMENTO"

    def test_stale_revision_is_409(self, api_client, created):
        url = f"/solicitacoes/{created['id']}"
        api_client.patch(url, json={"descricao": "Atualizada pelo operário"})

        response = api_client.patch(url, json={"descricao": "Versão antiga", "revisaoEsperada": 1})

        assert response.status_code == 409
        assert response.json()["reason"] == "revisionConflict"

    def test_routing_patch_records_routing_event(self, api_client, created):
        url = f"/solicitacoes/{created['id']}"

        response = api_client.patch(url, json={
            "atendimentoEncaminhamento": "DEFESA_CIVIL",
            "atendimentoStatus": "ENCAMINHADO"
        })

        assert response.status_code == 200
        item = response.json()["item"]
        assert item["atendimentoEncaminhamento"] == "DEFESA_CIVIL"
        assert item["atendimentoStatus"] == "ENCAMINHADO"

        last = api_client.get(f"{url}/eventos").json()["items"][-1]
        assert last["tipo"] == "ENCAMINHAMENTO"
        assert last["descricao"] == "Routed to: DEFESA_CIVIL | Attendance outcome: ENCAMINHADO"
        assert last["antigoStatus"] is None and last["novoStatus"] is None

    def test_audit_failure_still_returns_200(self, api_client, created):
        """
        INVARIANT: A failed history write never fails the mutation.
        """
        from cortapau.main import app
        from cortapau.api.routes import get_event_log

        app.dependency_overrides[get_event_log] = lambda: FailingEventLog(attempts=1, backoff_seconds=0)
        url = f"/solicitacoes/{created['id']}"

        response = api_client.patch(url, json={"status": "EM_ATENDIMENTO"})

        assert response.status_code == 200
        assert api_client.get(url).json()["item"]["status"] == "EM_ATENDIMENTO"
        events = api_client.get(f"{url}/eventos").json()["items"]
        assert [e["tipo"] for e in events] == ["CRIACAO"]


class TestUploads:

    def test_upload_then_attach_and_download(self, api_client, api_user):
        raw = b"\x89PNG\r\n\x1a\nfakepng"
        upload = api_client.post("/uploads/base64", json={
            "imagemBase64": base64.b64encode(raw).decode(),
            "mime": "image/png"
        })
        assert upload.status_code == 200
        url = upload.json()["url"]
        assert url.startswith("/uploads/") and url.endswith(".png")

        created = api_client.post("/solicitacoes", json=create_payload(
            autorId=api_user["id"],
            anexos=[{"url": url, "mime": "image/png"}]
        )).json()["item"]
        assert created["anexos"][0]["tamanhoBytes"] == len(raw)

        download = api_client.get(url)
        assert download.status_code == 200
        assert download.content == raw

    def test_invalid_base64_is_400(self, api_client):
        response = api_client.post("/uploads/base64", json={"imagemBase64": "***", "mime": "image/jpeg"})
        assert response.status_code == 400

    def test_unknown_upload_is_404(self, api_client):
        assert api_client.get("/uploads/missing.jpg").status_code == 404


class TestAuth:

    def test_login(self, api_client, api_user):
        response = api_client.post("/auth/login", json={"login": "ana@example.com", "senha": "secret"})

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["id"] == api_user["id"]
        assert user["role"] == "USER"

    def test_bad_credentials_are_401(self, api_client, api_user):
        response = api_client.post("/auth/login", json={"login": "ana@example.com", "senha": "wrong"})
        assert response.status_code == 401

    def test_register_then_duplicate(self, api_client):
        body = {"nome": "Bia", "email": "bia@example.com", "senha": "abc123"}

        first = api_client.post("/auth/register", json=body)
        assert first.status_code == 200
        assert first.json()["user"]["login"] == "bia@example.com"

        second = api_client.post("/auth/register", json=body)
        assert second.status_code == 400
        assert second.json()["message"] == "E-mail already registered."

    def test_register_requires_all_fields(self, api_client):
        response = api_client.post("/auth/register", json={"nome": "Bia"})

        assert response.status_code == 400
        assert response.json()["message"] == "Name, e-mail and password are required."


class TestHealthAndDebug:

    def test_health(self, api_client):
        assert api_client.get("/health").json() == {"status": "ok", "service": "CortaPau API"}

    def test_debug_seed_and_test_users(self, api_sessions, upload_store):
        from cortapau.api.debug import router as debug_router
        from cortapau.api.routes import get_upload_store

        app = FastAPI()
        app.include_router(debug_router)

        def override_get_db():
            db = api_sessions()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_upload_store] = lambda: upload_store
        client = TestClient(app)

        users = client.post("/debug/create-test-users").json()["users"]
        assert [u["login"] for u in users] == ["teste", "lucas@teste.com"]

        assert client.post("/debug/seed").json()["message"] == "Seed created."
        assert client.post("/debug/seed").json()["message"] == "Solicitations already exist, seed skipped."
