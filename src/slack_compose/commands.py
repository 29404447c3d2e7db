from __future__ import annotations

from types import MappingProxyType

COMPOSE = "docker compose"

DEFAULT_ACTION = "ps"

_COMMANDS = MappingProxyType(
    {
        "ps": f"{COMPOSE} ps",
        "up": f"{COMPOSE} up -d",
        "down": f"{COMPOSE} down",
        "restart": f"{COMPOSE} restart",
    }
)

# emoji name -> logical action
EMOJI_ACTIONS = MappingProxyType(
    {
        "up_arrow": "up",
        "down_arrow": "down",
        "arrows_counterclockwise": "restart",
        "scroll": "logs",
    }
)

# block action_id -> logical action
BUTTON_ACTIONS = MappingProxyType(
    {
        "compose_up": "up",
        "compose_down": "down",
        "compose_restart": "restart",
        "compose_logs": "logs",
    }
)


def expand_command(action: str, *, log_line_limit: int) -> str:
    if action == "logs":
        return f"{COMPOSE} logs -n {log_line_limit}"
    return _COMMANDS[action]


def command_for_emoji(reaction: str, *, log_line_limit: int) -> str | None:
    action = EMOJI_ACTIONS.get(reaction)
    if action is None:
        return None
    return expand_command(action, log_line_limit=log_line_limit)


def command_for_action(action_id: str, *, log_line_limit: int) -> str | None:
    action = BUTTON_ACTIONS.get(action_id)
    if action is None:
        return None
    return expand_command(action, log_line_limit=log_line_limit)
