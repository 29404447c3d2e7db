import pytest

from slack_compose.commands import (
    BUTTON_ACTIONS,
    EMOJI_ACTIONS,
    command_for_action,
    command_for_emoji,
    expand_command,
)


@pytest.mark.parametrize(
    ("action", "expected"),
    [
        ("ps", "docker compose ps"),
        ("up", "docker compose up -d"),
        ("down", "docker compose down"),
        ("restart", "docker compose restart"),
        ("logs", "docker compose logs -n 100"),
    ],
)
def test_expand_command(action: str, expected: str) -> None:
    assert expand_command(action, log_line_limit=100) == expected


def test_logs_uses_line_limit() -> None:
    assert expand_command("logs", log_line_limit=5) == "docker compose logs -n 5"


def test_expand_unknown_action() -> None:
    with pytest.raises(KeyError):
        expand_command("rm", log_line_limit=100)


def test_emoji_table() -> None:
    assert command_for_emoji("up_arrow", log_line_limit=10) == "docker compose up -d"
    assert command_for_emoji("down_arrow", log_line_limit=10) == "docker compose down"
    assert (
        command_for_emoji("arrows_counterclockwise", log_line_limit=10)
        == "docker compose restart"
    )
    assert command_for_emoji("scroll", log_line_limit=10) == "docker compose logs -n 10"
    assert command_for_emoji("thumbsup", log_line_limit=10) is None


def test_button_table() -> None:
    assert command_for_action("compose_up", log_line_limit=10) == "docker compose up -d"
    assert command_for_action("compose_logs", log_line_limit=7) == "docker compose logs -n 7"
    assert command_for_action("compose_nuke", log_line_limit=10) is None


def test_every_trigger_maps_to_known_action() -> None:
    for action in [*EMOJI_ACTIONS.values(), *BUTTON_ACTIONS.values()]:
        assert expand_command(action, log_line_limit=1).startswith("docker compose ")


def test_tables_are_read_only() -> None:
    with pytest.raises(TypeError):
        EMOJI_ACTIONS["fire"] = "down"  # type: ignore[index]
