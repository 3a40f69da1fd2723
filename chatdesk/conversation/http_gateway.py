import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from .gateway import GatewayError, PersistenceGateway
from .models import Conversation

logger = logging.getLogger(__name__)


class HttpGateway(PersistenceGateway):
    """Persistence through a remote command backend over REST.

    Endpoints (relative to ``base_url``):
        GET    /conversations
        PUT    /conversations/{id}
        PATCH  /conversations/{id}/title   {"title": ...}
        PATCH  /conversations/{id}/pin     {"pinned": ...}
        DELETE /conversations/{id}
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GatewayError(
                f"{method} {path} failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e
        return resp

    async def load_conversations(self) -> list[Conversation]:
        resp = await self._request("GET", "/conversations")
        try:
            data = resp.json()
            items = data["conversations"] if isinstance(data, dict) else data
            return [Conversation(**item) for item in items]
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise GatewayError(f"Malformed conversation list: {e}") from e

    async def save_conversation(self, conversation: Conversation) -> None:
        await self._request(
            "PUT", f"/conversations/{conversation.id}", json=conversation.to_record()
        )

    async def rename_conversation(self, conversation_id: str, title: str) -> None:
        await self._request(
            "PATCH", f"/conversations/{conversation_id}/title", json={"title": title}
        )

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}")

    async def pin_conversation(self, conversation_id: str, pinned: bool) -> None:
        await self._request(
            "PATCH", f"/conversations/{conversation_id}/pin", json={"pinned": pinned}
        )

    async def aclose(self) -> None:
        await self._client.aclose()
