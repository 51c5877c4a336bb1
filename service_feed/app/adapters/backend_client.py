"""
Backend-as-a-service client for the feed service.

Speaks the PostgREST-style REST surface (``/rest/v1/<table>``) that the
hosted backend exposes; row-level authorization happens on the backend.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import httpx

from shared.logging import get_logger
from shared.errors import ExternalServiceError


POST_SELECT = "*,author:profiles(*),reactions(*,user:profiles(*)),saved_posts(user_id),post_shares(user_id)"
PROFILE_SELECT = "id,username,display_name,avatar_url,is_verified"


@dataclass
class MutationParams:
    """Remote effect of an optimistic mutation: insert or delete rows."""
    table: str
    operation: str
    values: Dict[str, Any] = field(default_factory=dict)
    match: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.operation not in ("insert", "delete"):
            raise ValueError(f"Unsupported mutation operation: {self.operation}")
        if self.operation == "delete" and not self.match:
            raise ValueError("Delete mutations require match filters")


class BackendClient:
    """Client for profile, post and reaction rows on the hosted backend."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.logger = get_logger("feed.backend_client")
        self._transport = transport

    async def fetch_entity(self, table: str, entity_id: str, select: str = "*") -> Optional[Dict[str, Any]]:
        """Fetch a single row by id; ``None`` when it does not exist."""
        rows = await self._request(
            "GET",
            table,
            params={"select": select, "id": f"eq.{entity_id}", "limit": "1"},
        )
        if not rows:
            self.logger.info("Backend row not found", table=table, entity_id=entity_id)
            return None
        return rows[0]

    async def fetch_entities_batch(self, table: str, ids: Sequence[str], select: str = "*") -> List[Dict[str, Any]]:
        """Fetch many rows by id in one round trip."""
        if not ids:
            return []
        id_list = ",".join(str(entity_id) for entity_id in ids)
        return await self._request(
            "GET",
            table,
            params={"select": select, "id": f"in.({id_list})"},
        ) or []

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.fetch_entity("profiles", user_id, select=PROFILE_SELECT)

    async def fetch_profiles(self, user_ids: Sequence[str]) -> List[Dict[str, Any]]:
        return await self.fetch_entities_batch("profiles", user_ids, select=PROFILE_SELECT)

    async def fetch_posts(self, limit: int = 20, offset: int = 0) -> List[Dict[str, Any]]:
        """Fetch one page of the newest posts with embedded authors, reactions, saves and shares."""
        params = {"select": POST_SELECT, "order": "created_at.desc", "limit": str(limit)}
        if offset:
            params["offset"] = str(offset)
        return await self._request("GET", "posts", params=params) or []

    async def apply_mutation(self, params: MutationParams) -> None:
        """Apply a remote mutation; raises :class:`ExternalServiceError` on rejection."""
        if params.operation == "insert":
            await self._request("POST", params.table, json=params.values, prefer="return=minimal")
        else:
            filters = {column: f"eq.{value}" for column, value in params.match.items()}
            await self._request("DELETE", params.table, params=filters, prefer="return=minimal")

        self.logger.debug(
            "Backend mutation applied",
            table=params.table,
            operation=params.operation,
        )

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """Execute a REST call and map failures to :class:`ExternalServiceError`."""
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(prefer),
                )
        except httpx.HTTPError as exc:
            self.logger.error("Backend request error", method=method, table=table, error=str(exc))
            raise ExternalServiceError(
                service="backend",
                message=str(exc) or type(exc).__name__,
                details={"table": table, "method": method},
            ) from exc

        if response.status_code == 404 and method == "GET":
            return None

        if response.status_code >= 400:
            self.logger.error(
                "Backend request failed",
                method=method,
                table=table,
                status_code=response.status_code,
                response=response.text,
            )
            raise ExternalServiceError(
                service="backend",
                message=self._error_message(response),
                details={"status_code": response.status_code, "table": table, "method": method},
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"Unexpected status {response.status_code}"
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"Unexpected status {response.status_code}"
