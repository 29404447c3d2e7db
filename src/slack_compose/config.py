from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .logging import _truthy

DEFAULT_REDIS_ADDR = "localhost:6379"
DEFAULT_SLASH_COMMAND = "/docker-compose"
DEFAULT_LOG_LINE_LIMIT = 100
DEFAULT_MESSAGE_TTL_S = 24 * 60 * 60
DEFAULT_SHUTDOWN_GRACE_S = 30.0


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    slack_token: str
    redis_addr: str = DEFAULT_REDIS_ADDR
    redis_password: str = ""
    redis_db: int = 0
    command_channel: str = "slack-commands"
    reaction_channel: str = "slack-reactions"
    block_actions_channel: str = "slack-relay-block-actions"
    poppit_list: str = "poppit:notifications"
    poppit_output_channel: str = "poppit:command-output"
    slackliner_list: str = "slack_messages"
    slack_channel: str = "#slack-compose"
    project_config_path: Path = Path("projects.json")
    log_line_limit: int = DEFAULT_LOG_LINE_LIMIT
    slash_command: str = DEFAULT_SLASH_COMMAND
    message_ttl_s: int = DEFAULT_MESSAGE_TTL_S
    shutdown_grace_s: float = DEFAULT_SHUTDOWN_GRACE_S
    log_level: str = "info"
    log_json: bool = False

    @property
    def redis_host(self) -> str:
        return _split_addr(self.redis_addr)[0]

    @property
    def redis_port(self) -> int:
        return _split_addr(self.redis_addr)[1]

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        if env is None:
            env = os.environ

        slack_token = _require_str(env, "SLACK_BOT_TOKEN")
        redis_addr = _optional_str(env, "REDIS_ADDR", DEFAULT_REDIS_ADDR)
        _split_addr(redis_addr)

        slash_command = _optional_str(env, "SLACK_COMMAND_NAME", DEFAULT_SLASH_COMMAND)
        if not slash_command.startswith("/"):
            slash_command = f"/{slash_command}"

        return cls(
            slack_token=slack_token,
            redis_addr=redis_addr,
            redis_password=_optional_str(env, "REDIS_PASSWORD", ""),
            redis_db=_optional_int(env, "REDIS_DB", 0, min_value=0),
            command_channel=_optional_str(env, "SLACK_COMMAND_CHANNEL", "slack-commands"),
            reaction_channel=_optional_str(
                env, "SLACK_REACTION_CHANNEL", "slack-reactions"
            ),
            block_actions_channel=_optional_str(
                env, "SLACK_BLOCK_ACTIONS_CHANNEL", "slack-relay-block-actions"
            ),
            poppit_list=_optional_str(env, "POPPIT_LIST_NAME", "poppit:notifications"),
            poppit_output_channel=_optional_str(
                env, "POPPIT_OUTPUT_CHANNEL", "poppit:command-output"
            ),
            slackliner_list=_optional_str(env, "SLACKLINER_LIST_NAME", "slack_messages"),
            slack_channel=_optional_str(env, "SLACK_CHANNEL", "#slack-compose"),
            project_config_path=Path(
                _optional_str(env, "PROJECT_CONFIG_PATH", "projects.json")
            ).expanduser(),
            log_line_limit=_optional_int(
                env, "DOCKER_LOGS_LINE_LIMIT", DEFAULT_LOG_LINE_LIMIT, min_value=1
            ),
            slash_command=slash_command,
            message_ttl_s=_optional_int(
                env, "SLACK_MESSAGE_TTL", DEFAULT_MESSAGE_TTL_S, min_value=0
            ),
            shutdown_grace_s=_optional_float(
                env, "SHUTDOWN_GRACE_SECONDS", DEFAULT_SHUTDOWN_GRACE_S, min_value=0.0
            ),
            log_level=_optional_str(env, "LOG_LEVEL", "info").lower(),
            log_json=_truthy(env.get("LOG_JSON")),
        )


def _require_str(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if value is None or not value.strip():
        raise ConfigError(f"{key} is required.")
    return value.strip()


def _optional_str(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key)
    if value is None:
        return default
    cleaned = value.strip()
    return cleaned or default


def _optional_int(
    env: Mapping[str, str],
    key: str,
    default: int,
    *,
    min_value: int | None = None,
) -> int:
    raw = _optional_str(env, key, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid {key}={raw!r}; expected an integer.") from exc
    if min_value is not None and value < min_value:
        raise ConfigError(f"Invalid {key}={raw!r}; expected >= {min_value}.")
    return value


def _optional_float(
    env: Mapping[str, str],
    key: str,
    default: float,
    *,
    min_value: float | None = None,
) -> float:
    raw = _optional_str(env, key, "")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid {key}={raw!r}; expected a number.") from exc
    if min_value is not None and value < min_value:
        raise ConfigError(f"Invalid {key}={raw!r}; expected >= {min_value}.")
    return value


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not host:
        raise ConfigError(f"Invalid REDIS_ADDR={addr!r}; expected host:port.")
    try:
        port_value = int(port)
    except ValueError as exc:
        raise ConfigError(f"Invalid REDIS_ADDR={addr!r}; expected host:port.") from exc
    if not 0 < port_value < 65536:
        raise ConfigError(f"Invalid REDIS_ADDR={addr!r}; port out of range.")
    return host, port_value
