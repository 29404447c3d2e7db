from __future__ import annotations

import signal

import anyio
from anyio import CancelScope

from .bus import RedisEventBus
from .client import SlackApiError, SlackClient
from .config import Settings
from .logging import get_logger
from .projects import load_projects
from .router import EventRouter, RouterConfig

logger = get_logger(__name__)


async def _cancel_on_signal(scope: CancelScope) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("service.shutdown_requested", signal=signal.Signals(signum).name)
            scope.cancel()
            return


async def _check_auth(client: SlackClient) -> None:
    try:
        auth = await client.auth_test()
    except SlackApiError as exc:
        logger.warning("slack.auth_test_failed", error=exc.error or str(exc))
        return
    logger.info("slack.authenticated", user_id=auth.user_id, team_id=auth.team_id)


async def run_service(settings: Settings) -> None:
    """Run the four listeners until SIGINT/SIGTERM.

    Raises ConfigError or BusError before any event is served when the
    project file or Redis is unusable.
    """
    projects = load_projects(settings.project_config_path)
    bus = await RedisEventBus.connect(settings)
    client = SlackClient(settings.slack_token)
    try:
        await _check_auth(client)
        router = EventRouter(
            RouterConfig.from_settings(settings),
            bus=bus,
            resolver=client,
            projects=projects,
        )
        logger.info("service.started", projects=len(projects))
        async with anyio.create_task_group() as tg:
            tg.start_soon(_cancel_on_signal, tg.cancel_scope)
            tg.start_soon(router.serve)
    finally:
        with anyio.move_on_after(settings.shutdown_grace_s, shield=True):
            await client.close()
            await bus.close()
        logger.info("service.stopped")
