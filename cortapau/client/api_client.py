"""
Thin HTTP client for the CortaPau REST API.

Every call has a timeout. Non-2xx answers become ApiError (or
AuthenticationError for a rejected login); transport failures become ApiError
too, so callers only need to handle the domain taxonomy.
"""
import base64
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from cortapau import config
from cortapau.client.models import HistoryEntry, RemoteSolicitation
from cortapau.client.ownership import Actor
from cortapau.errors import AuthenticationError, CortaPauError
from cortapau.models.enums import (
    AttendanceOutcome,
    Category,
    RoutingTarget,
    SolicitationStatus
)

logger = logging.getLogger(__name__)


class ApiError(CortaPauError):
    """The API could not be reached or answered with an unexpected status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ApiClient:
    """Talks to the API; `session` may be any requests-compatible session."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session=None
    ):
        self.base_url = (base_url if base_url is not None else config.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.API_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return self.base_url + path

    def resolve_url(self, path_or_url: str) -> Optional[str]:
        """
        Absolute URL for a path coming from the API.

        - "https://host/uploads/a.jpg" -> unchanged
        - "/uploads/a.jpg" or "uploads/a.jpg" -> base URL + path
        """
        trimmed = (path_or_url or "").strip()
        if not trimmed:
            return None
        if trimmed.lower().startswith(("http://", "https://")):
            return trimmed
        return self.url(trimmed)

    # Solicitations
    def list_solicitations(self) -> List[RemoteSolicitation]:
        """Authoritative list, newest first."""
        payload = self._request("GET", "/solicitacoes")
        return [RemoteSolicitation.from_wire(item) for item in payload.get("items", [])]

    def get_solicitation(self, solicitation_id: str) -> RemoteSolicitation:
        payload = self._request("GET", f"/solicitacoes/{solicitation_id}")
        return RemoteSolicitation.from_wire(payload["item"])

    def create_solicitation(
        self,
        title: str,
        description: str,
        category: Category,
        latitude: float,
        longitude: float,
        author_id: Optional[str] = None,
        attachments: Sequence[Tuple[str, str]] = ()
    ) -> RemoteSolicitation:
        body: Dict[str, Any] = {
            "titulo": title,
            "descricao": description,
            "categoria": category.value,
            "latitude": latitude,
            "longitude": longitude,
        }
        if author_id:
            body["autorId"] = author_id
        if attachments:
            body["anexos"] = [{"url": url, "mime": mime} for url, mime in attachments]
        payload = self._request("POST", "/solicitacoes", json=body)
        return RemoteSolicitation.from_wire(payload["item"])

    def update_solicitation(
        self,
        solicitation_id: str,
        status: Optional[SolicitationStatus] = None,
        description: Optional[str] = None,
        attendance_description: Optional[str] = None,
        routing_target: Optional[RoutingTarget] = None,
        attendance_outcome: Optional[AttendanceOutcome] = None,
        operator_id: Optional[str] = None,
        expected_revision: Optional[int] = None
    ) -> RemoteSolicitation:
        body: Dict[str, Any] = {}
        if status is not None:
            body["status"] = status.value
        if description:
            body["descricao"] = description
        if attendance_description:
            body["atendimentoDescricao"] = attendance_description
        if routing_target is not None:
            body["atendimentoEncaminhamento"] = routing_target.value
        if attendance_outcome is not None:
            body["atendimentoStatus"] = attendance_outcome.value
        if operator_id:
            body["operadorId"] = operator_id
        if expected_revision is not None:
            body["revisaoEsperada"] = expected_revision
        if not body:
            raise ApiError("Nothing to update.")
        payload = self._request("PATCH", f"/solicitacoes/{solicitation_id}", json=body)
        return RemoteSolicitation.from_wire(payload["item"])

    def list_events(self, solicitation_id: str) -> List[HistoryEntry]:
        """History of one solicitation, oldest first."""
        payload = self._request("GET", f"/solicitacoes/{solicitation_id}/eventos")
        return [HistoryEntry.from_wire(item) for item in payload.get("items", [])]

    # Uploads
    def upload_image_base64(self, data: bytes, mime: str) -> Tuple[str, str]:
        """Upload raw image bytes; returns (url, mime) to reference as an attachment."""
        body = {"imagemBase64": base64.b64encode(data).decode("ascii"), "mime": mime}
        payload = self._request("POST", "/uploads/base64", json=body)
        return payload["url"], payload["mime"]

    # Auth
    def login(self, login: str, password: str) -> Actor:
        payload = self._request("POST", "/auth/login", json={"login": login, "senha": password})
        return self._actor(payload["user"])

    def register(self, name: str, email: str, password: str) -> Actor:
        payload = self._request("POST", "/auth/register", json={"nome": name, "email": email, "senha": password})
        return self._actor(payload["user"])

    @staticmethod
    def _actor(user: Dict[str, Any]) -> Actor:
        return Actor(id=user.get("id"), login=user.get("login"), name=user.get("nome"))

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self.url(path)
        try:
            response = self.session.request(method, url, json=json, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(f"Could not reach the API: {exc}")

        if response.status_code == 401 and path == "/auth/login":
            raise AuthenticationError("Invalid credentials")

        try:
            payload = response.json()
        except ValueError:
            raise ApiError(
                f"Invalid JSON from {method} {path}",
                status_code=response.status_code
            )

        if not 200 <= response.status_code < 300:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise ApiError(
                message or f"Unexpected status code {response.status_code}",
                status_code=response.status_code
            )
        if not isinstance(payload, dict):
            raise ApiError(f"Unexpected payload from {method} {path}", status_code=response.status_code)
        return payload
