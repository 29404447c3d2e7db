from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from .commands import BUTTON_ACTIONS
from .models import PROJECT_SELECT_ACTION_ID, PROJECT_SELECT_BLOCK_ID

MAX_SELECT_OPTIONS = 100
MAX_OPTION_TEXT = 75
MAX_BLOCK_TEXT = 2800

_BUTTON_LABELS = {
    "compose_up": "up",
    "compose_down": "down",
    "compose_restart": "restart",
    "compose_logs": "logs",
}
_BUTTON_STYLES = {
    "compose_up": "primary",
    "compose_down": "danger",
}


def _trim_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    if max_chars <= 3:
        return text[:max_chars]
    return f"{text[: max_chars - 3]}..."


def format_output(output: str) -> str:
    return f"```\n{output}\n```"


def prompt_text(requested: str | None) -> str:
    if requested:
        return f"Unknown project `{requested}`. Select a project and an action:"
    return "Select a project and an action:"


def build_project_prompt(
    projects: Sequence[str],
    *,
    requested: str | None = None,
) -> list[dict[str, Any]]:
    text = _trim_text(prompt_text(requested), MAX_BLOCK_TEXT)
    options = [
        {
            "text": {"type": "plain_text", "text": _trim_text(name, MAX_OPTION_TEXT)},
            "value": name,
        }
        for name in projects[:MAX_SELECT_OPTIONS]
    ]
    select: dict[str, Any] = {
        "type": "static_select",
        "action_id": PROJECT_SELECT_ACTION_ID,
        "placeholder": {"type": "plain_text", "text": "Search projects"},
    }
    blocks: list[dict[str, Any]] = [
        {"type": "section", "text": {"type": "mrkdwn", "text": text}},
    ]
    if options:
        select["options"] = options
        blocks.append(
            {
                "type": "section",
                "block_id": PROJECT_SELECT_BLOCK_ID,
                "text": {"type": "mrkdwn", "text": "*Project*"},
                "accessory": select,
            }
        )
    else:
        blocks.append(
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": "No projects are configured."}
                ],
            }
        )
    blocks.append({"type": "actions", "elements": _build_buttons()})
    return blocks


def _build_buttons() -> list[dict[str, Any]]:
    buttons: list[dict[str, Any]] = []
    for action_id in BUTTON_ACTIONS:
        button: dict[str, Any] = {
            "type": "button",
            "text": {"type": "plain_text", "text": _BUTTON_LABELS[action_id]},
            "action_id": action_id,
            "value": BUTTON_ACTIONS[action_id],
        }
        style = _BUTTON_STYLES.get(action_id)
        if style is not None:
            button["style"] = style
        buttons.append(button)
    return buttons
