from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import anyio
import httpx

from .logging import get_logger
from .models import MessageMetadata

logger = get_logger(__name__)


class SlackApiError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        error: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class SlackAuth:
    user_id: str
    user_name: str | None = None
    team_id: str | None = None
    bot_id: str | None = None


@dataclass(frozen=True, slots=True)
class SlackMessage:
    ts: str
    text: str | None
    user: str | None
    bot_id: str | None
    thread_ts: str | None
    metadata: MessageMetadata | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "SlackMessage":
        return cls(
            ts=str(payload.get("ts") or ""),
            text=payload.get("text"),
            user=payload.get("user"),
            bot_id=payload.get("bot_id"),
            thread_ts=payload.get("thread_ts"),
            metadata=MessageMetadata.from_api(payload.get("metadata")),
        )


class SlackClient:
    def __init__(
        self,
        token: str,
        *,
        base_url: str = "https://slack.com/api",
        timeout_s: float = 30.0,
    ) -> None:
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout_s,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await _request_with_client(
            self._client,
            method,
            endpoint,
            params=params,
            json=json,
        )

    async def auth_test(self) -> SlackAuth:
        payload = await self._request("POST", "/auth.test")
        user_id = payload.get("user_id")
        if not isinstance(user_id, str) or not user_id:
            raise SlackApiError("Missing user_id in auth.test response")
        user_name = payload.get("user")
        if not isinstance(user_name, str) or not user_name.strip():
            user_name = None
        return SlackAuth(
            user_id=user_id,
            user_name=user_name,
            team_id=payload.get("team_id"),
            bot_id=payload.get("bot_id"),
        )

    async def get_message(self, channel_id: str, ts: str) -> SlackMessage:
        """Fetch a single message, including its metadata.

        Channel messages come from ``conversations.history``. Thread replies
        never appear there, so a miss falls back to ``conversations.replies``.
        """
        params = {
            "channel": channel_id,
            "latest": ts,
            "inclusive": "true",
            "limit": 1,
            "include_all_metadata": "true",
        }
        payload = await self._request(
            "GET", "/conversations.history", params=params
        )
        message = _find_message(payload, ts)
        if message is not None:
            return message

        logger.debug("slack.message_not_in_history", channel_id=channel_id, ts=ts)
        params = {
            "channel": channel_id,
            "ts": ts,
            "latest": ts,
            "inclusive": "true",
            "include_all_metadata": "true",
        }
        payload = await self._request(
            "GET", "/conversations.replies", params=params
        )
        message = _find_message(payload, ts)
        if message is None:
            raise SlackApiError("Slack message not found", error="message_not_found")
        return message


def _find_message(payload: dict[str, Any], ts: str) -> SlackMessage | None:
    messages = payload.get("messages")
    if not isinstance(messages, list):
        return None
    for item in messages:
        if isinstance(item, dict) and item.get("ts") == ts:
            return SlackMessage.from_api(item)
    return None


async def _request_with_client(
    client: httpx.AsyncClient,
    method: str,
    endpoint: str,
    *,
    params: dict[str, Any] | None = None,
    json: dict[str, Any] | None = None,
) -> dict[str, Any]:
    while True:
        try:
            response = await client.request(
                method, endpoint, params=params, json=json
            )
        except httpx.HTTPError as exc:
            logger.warning("slack.network_error", error=str(exc))
            raise SlackApiError("Slack request failed") from exc

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                delay = int(retry_after) if retry_after is not None else 1
            except ValueError:
                delay = 1
            logger.info("slack.rate_limited", retry_after=delay)
            await anyio.sleep(delay)
            continue

        if response.status_code >= 400:
            raise SlackApiError(
                f"Slack HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise SlackApiError("Slack response was not JSON") from exc

        if payload.get("ok") is not True:
            error = payload.get("error")
            raise SlackApiError(
                f"Slack API error: {error}",
                error=error,
                status_code=response.status_code,
            )

        return payload
