from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

EVENT_TYPE = "slack-compose"
DIALOG_EVENT_TYPE = "slack-compose-dialog"
MAIN_BRANCH = "refs/heads/main"

PROJECT_SELECT_BLOCK_ID = "project_select_block"
PROJECT_SELECT_ACTION_ID = "project_select"


class PayloadError(ValueError):
    pass


def decode_object(raw: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", "replace")
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise PayloadError("payload is not valid JSON") from exc
    if not isinstance(value, dict):
        raise PayloadError("payload is not a JSON object")
    return value


def _get_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise PayloadError(f"expected a string for `{key}`")
    return value


def _get_obj(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PayloadError(f"expected an object for `{key}`")
    return value


def _get_list(payload: dict[str, Any], key: str) -> list[Any]:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise PayloadError(f"expected a list for `{key}`")
    return value


@dataclass(frozen=True, slots=True)
class SlashCommand:
    command: str
    text: str
    channel_id: str
    user_id: str = ""
    user_name: str = ""
    channel_name: str = ""

    @classmethod
    def from_payload(cls, raw: str | bytes | dict[str, Any]) -> "SlashCommand":
        payload = decode_object(raw)
        return cls(
            command=_get_str(payload, "command"),
            text=_get_str(payload, "text"),
            channel_id=_get_str(payload, "channel_id"),
            user_id=_get_str(payload, "user_id"),
            user_name=_get_str(payload, "user_name"),
            channel_name=_get_str(payload, "channel_name"),
        )


@dataclass(frozen=True, slots=True)
class ReactionEvent:
    reaction: str
    channel: str
    ts: str
    user: str = ""

    @classmethod
    def from_payload(cls, raw: str | bytes | dict[str, Any]) -> "ReactionEvent":
        payload = decode_object(raw)
        event = _get_obj(payload, "event")
        item = _get_obj(event, "item")
        return cls(
            reaction=_get_str(event, "reaction"),
            channel=_get_str(item, "channel"),
            ts=_get_str(item, "ts"),
            user=_get_str(event, "user"),
        )


@dataclass(frozen=True, slots=True)
class BlockAction:
    action_id: str
    type: str
    value: str = ""


@dataclass(frozen=True, slots=True)
class BlockActionsEvent:
    actions: tuple[BlockAction, ...]
    selected_project: str | None
    message_ts: str
    channel_id: str
    channel_name: str = ""

    @classmethod
    def from_payload(
        cls, raw: str | bytes | dict[str, Any]
    ) -> "BlockActionsEvent":
        payload = decode_object(raw)
        actions: list[BlockAction] = []
        for item in _get_list(payload, "actions"):
            if not isinstance(item, dict):
                raise PayloadError("expected an object for each action")
            actions.append(
                BlockAction(
                    action_id=_get_str(item, "action_id"),
                    type=_get_str(item, "type"),
                    value=_get_str(item, "value"),
                )
            )
        message = _get_obj(payload, "message")
        channel = _get_obj(payload, "channel")
        return cls(
            actions=tuple(actions),
            selected_project=_selected_project(payload),
            message_ts=_get_str(message, "ts"),
            channel_id=_get_str(channel, "id"),
            channel_name=_get_str(channel, "name"),
        )


def _selected_project(payload: dict[str, Any]) -> str | None:
    values = _get_obj(_get_obj(payload, "state"), "values")
    block = _get_obj(values, PROJECT_SELECT_BLOCK_ID)
    selection = _get_obj(block, PROJECT_SELECT_ACTION_ID)
    option = _get_obj(selection, "selected_option")
    value = _get_str(option, "value")
    return value or None


@dataclass(frozen=True, slots=True)
class CommandOutput:
    type: str
    command: str
    output: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, raw: str | bytes | dict[str, Any]) -> "CommandOutput":
        payload = decode_object(raw)
        return cls(
            type=_get_str(payload, "type"),
            command=_get_str(payload, "command"),
            output=_get_str(payload, "output"),
            metadata=dict(_get_obj(payload, "metadata")),
        )


@dataclass(frozen=True, slots=True)
class MessageMetadata:
    event_type: str
    event_payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: object) -> "MessageMetadata | None":
        if not isinstance(payload, dict):
            return None
        event_type = payload.get("event_type")
        if not isinstance(event_type, str) or not event_type:
            return None
        event_payload = payload.get("event_payload")
        if not isinstance(event_payload, dict):
            event_payload = {}
        return cls(event_type=event_type, event_payload=dict(event_payload))

    def to_payload(self) -> dict[str, Any]:
        return {"event_type": self.event_type, "event_payload": self.event_payload}


@dataclass(frozen=True, slots=True)
class PoppitRequest:
    repo: str
    dir: str
    commands: tuple[str, ...]
    metadata: dict[str, Any]
    task_id: str
    branch: str = MAIN_BRANCH
    type: str = EVENT_TYPE

    def to_payload(self) -> dict[str, Any]:
        return {
            "repo": self.repo,
            "branch": self.branch,
            "type": self.type,
            "dir": self.dir,
            "commands": list(self.commands),
            "metadata": self.metadata,
            "taskId": self.task_id,
        }


@dataclass(frozen=True, slots=True)
class SlackLinerMessage:
    channel: str
    metadata: MessageMetadata
    text: str | None = None
    blocks: list[dict[str, Any]] | None = None
    ttl: int | None = None
    thread_ts: str | None = None

    def to_payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "channel": self.channel,
            "metadata": self.metadata.to_payload(),
        }
        if self.text is not None:
            data["text"] = self.text
        if self.blocks is not None:
            data["blocks"] = self.blocks
        if self.ttl is not None:
            data["ttl"] = self.ttl
        if self.thread_ts is not None:
            data["thread_ts"] = self.thread_ts
        return data
