from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import anyio

from .blocks import build_project_prompt, format_output, prompt_text
from .bus import BusError, EventBus
from .client import SlackApiError, SlackMessage
from .commands import (
    DEFAULT_ACTION,
    command_for_action,
    command_for_emoji,
    expand_command,
)
from .config import Settings
from .logging import get_logger
from .models import (
    DIALOG_EVENT_TYPE,
    EVENT_TYPE,
    BlockActionsEvent,
    CommandOutput,
    MessageMetadata,
    PayloadError,
    PoppitRequest,
    ReactionEvent,
    SlackLinerMessage,
    SlashCommand,
)
from .projects import Project, ProjectRegistry

logger = get_logger(__name__)

Handler = Callable[[str], Awaitable[None]]

RESUBSCRIBE_BACKOFF_S = 1.0


class MessageResolver(Protocol):
    async def get_message(self, channel_id: str, ts: str) -> SlackMessage: ...


@dataclass(frozen=True, slots=True)
class RouterConfig:
    slash_command: str
    default_channel: str
    poppit_list: str
    slackliner_list: str
    log_line_limit: int
    message_ttl_s: int
    command_channel: str
    reaction_channel: str
    block_actions_channel: str
    poppit_output_channel: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "RouterConfig":
        return cls(
            slash_command=settings.slash_command,
            default_channel=settings.slack_channel,
            poppit_list=settings.poppit_list,
            slackliner_list=settings.slackliner_list,
            log_line_limit=settings.log_line_limit,
            message_ttl_s=settings.message_ttl_s,
            command_channel=settings.command_channel,
            reaction_channel=settings.reaction_channel,
            block_actions_channel=settings.block_actions_channel,
            poppit_output_channel=settings.poppit_output_channel,
        )


def new_task_id() -> str:
    return f"task-{uuid.uuid4()}"


def _metadata_str(metadata: dict[str, Any], key: str) -> str | None:
    value = metadata.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def _correlation(
    project: str,
    *,
    thread_ts: str | None = None,
    channel: str | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"project": project}
    if thread_ts:
        metadata["threadTimestamp"] = thread_ts
    if channel:
        metadata["channel"] = channel
    return metadata


class EventRouter:
    """Routes Slack and Poppit events between the bus's channels and lists.

    The router keeps no per-request state. Everything needed to route a
    Poppit result back to its Slack thread travels in the request's
    ``metadata``, which Poppit echoes on the output event; everything needed
    to act on a reaction travels in the Slack message's own metadata.
    """

    def __init__(
        self,
        cfg: RouterConfig,
        *,
        bus: EventBus,
        resolver: MessageResolver,
        projects: ProjectRegistry,
        task_ids: Callable[[], str] = new_task_id,
    ) -> None:
        self._cfg = cfg
        self._bus = bus
        self._resolver = resolver
        self._projects = projects
        self._task_ids = task_ids

    def routes(self) -> list[tuple[str, Handler]]:
        return [
            (self._cfg.command_channel, self.handle_command),
            (self._cfg.reaction_channel, self.handle_reaction),
            (self._cfg.poppit_output_channel, self.handle_command_output),
            (self._cfg.block_actions_channel, self.handle_block_actions),
        ]

    async def serve(self) -> None:
        async with anyio.create_task_group() as tg:
            for channel, handler in self.routes():
                tg.start_soon(self._listen, channel, handler, name=f"listen:{channel}")

    async def _listen(self, channel: str, handler: Handler) -> None:
        while True:
            try:
                async with self._bus.subscribe(channel) as messages:
                    logger.info("router.listening", channel=channel)
                    async for raw in messages:
                        await self._safe_handle(channel, handler, raw)
            except BusError as exc:
                logger.warning("router.subscription_lost", channel=channel, error=str(exc))
            except Exception as exc:
                logger.exception(
                    "router.listener_failed",
                    channel=channel,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
            await anyio.sleep(RESUBSCRIBE_BACKOFF_S)

    async def _safe_handle(self, channel: str, handler: Handler, raw: str) -> None:
        try:
            await handler(raw)
        except Exception as exc:
            logger.exception(
                "router.handler_failed",
                channel=channel,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def handle_command(self, raw: str) -> None:
        try:
            cmd = SlashCommand.from_payload(raw)
        except PayloadError as exc:
            logger.error("router.command_decode_failed", error=str(exc))
            return
        if cmd.command != self._cfg.slash_command:
            logger.debug("router.command_ignored", command=cmd.command)
            return

        name = cmd.text.strip()
        logger.info(
            "router.command_received",
            text=cmd.text,
            channel_id=cmd.channel_id,
            user_id=cmd.user_id,
        )
        project = self._projects.get(name) if name else None
        if project is None:
            if name:
                logger.info("router.command_unknown_project", project=name)
            await self._send_project_prompt(
                channel=cmd.channel_id or self._cfg.default_channel,
                requested=name or None,
            )
            return

        await self._dispatch(
            project,
            expand_command(DEFAULT_ACTION, log_line_limit=self._cfg.log_line_limit),
            metadata=_correlation(project.name),
            source="command",
        )

    async def handle_command_output(self, raw: str) -> None:
        try:
            result = CommandOutput.from_payload(raw)
        except PayloadError as exc:
            logger.error("router.output_decode_failed", error=str(exc))
            return
        if result.type != EVENT_TYPE:
            logger.debug("router.output_ignored", type=result.type)
            return

        project = _metadata_str(result.metadata, "project")
        thread_ts = _metadata_str(result.metadata, "threadTimestamp")
        channel = _metadata_str(result.metadata, "channel") or self._cfg.default_channel
        if project is None:
            logger.warning("router.output_missing_project", command=result.command)

        event_payload: dict[str, Any] = {"command": result.command}
        if project is not None:
            event_payload["project"] = project
        message = SlackLinerMessage(
            channel=channel,
            text=format_output(result.output),
            metadata=MessageMetadata(event_type=EVENT_TYPE, event_payload=event_payload),
            ttl=self._cfg.message_ttl_s,
            thread_ts=thread_ts,
        )
        await self._post(message, source="output", project=project)

    async def handle_reaction(self, raw: str) -> None:
        try:
            reaction = ReactionEvent.from_payload(raw)
        except PayloadError as exc:
            logger.error("router.reaction_decode_failed", error=str(exc))
            return
        command = command_for_emoji(
            reaction.reaction, log_line_limit=self._cfg.log_line_limit
        )
        if command is None:
            logger.debug("router.reaction_ignored", reaction=reaction.reaction)
            return
        if not reaction.channel or not reaction.ts:
            logger.warning("router.reaction_missing_item", reaction=reaction.reaction)
            return

        logger.info(
            "router.reaction_received",
            reaction=reaction.reaction,
            channel=reaction.channel,
            ts=reaction.ts,
        )
        try:
            message = await self._resolver.get_message(reaction.channel, reaction.ts)
        except SlackApiError as exc:
            logger.error(
                "router.message_fetch_failed",
                channel=reaction.channel,
                ts=reaction.ts,
                reaction=reaction.reaction,
                error=exc.error or str(exc),
                status_code=exc.status_code,
            )
            return

        project = self._project_from_message(message, channel=reaction.channel)
        if project is None:
            return
        await self._dispatch(
            project,
            command,
            metadata=_correlation(
                project.name, thread_ts=reaction.ts, channel=reaction.channel
            ),
            source="reaction",
        )

    async def handle_block_actions(self, raw: str) -> None:
        try:
            event = BlockActionsEvent.from_payload(raw)
        except PayloadError as exc:
            logger.error("router.block_actions_decode_failed", error=str(exc))
            return
        if event.selected_project is None:
            logger.debug("router.block_actions_no_project", channel=event.channel_id)
            return
        project = self._projects.get(event.selected_project)
        if project is None:
            logger.warning(
                "router.block_actions_unknown_project",
                project=event.selected_project,
                channel=event.channel_id,
            )
            return

        for action in event.actions:
            if action.type != "button":
                continue
            command = command_for_action(
                action.action_id, log_line_limit=self._cfg.log_line_limit
            )
            if command is None:
                logger.debug("router.block_action_ignored", action_id=action.action_id)
                continue
            await self._dispatch(
                project,
                command,
                metadata=_correlation(
                    project.name,
                    thread_ts=event.message_ts,
                    channel=event.channel_id,
                ),
                source="block_action",
            )

    def _project_from_message(
        self, message: SlackMessage, *, channel: str
    ) -> Project | None:
        metadata = message.metadata
        if metadata is None or metadata.event_type != EVENT_TYPE:
            logger.debug("router.reaction_foreign_message", channel=channel, ts=message.ts)
            return None
        name = metadata.event_payload.get("project")
        if not isinstance(name, str) or not name:
            logger.warning("router.reaction_missing_project", channel=channel, ts=message.ts)
            return None
        project = self._projects.get(name)
        if project is None:
            logger.warning(
                "router.reaction_unknown_project",
                project=name,
                channel=channel,
                ts=message.ts,
            )
        return project

    async def _send_project_prompt(self, *, channel: str, requested: str | None) -> None:
        event_payload: dict[str, Any] = {}
        if requested:
            event_payload["requested"] = requested
        message = SlackLinerMessage(
            channel=channel,
            text=prompt_text(requested),
            blocks=build_project_prompt(self._projects.names(), requested=requested),
            metadata=MessageMetadata(
                event_type=DIALOG_EVENT_TYPE, event_payload=event_payload
            ),
            ttl=self._cfg.message_ttl_s,
        )
        await self._post(message, source="prompt", project=requested)

    async def _dispatch(
        self,
        project: Project,
        command: str,
        *,
        metadata: dict[str, Any],
        source: str,
    ) -> bool:
        request = PoppitRequest(
            repo=project.name,
            dir=project.working_dir,
            commands=(command,),
            metadata=metadata,
            task_id=self._task_ids(),
        )
        try:
            await self._bus.push(self._cfg.poppit_list, request.to_payload())
        except BusError as exc:
            logger.error(
                "router.dispatch_failed",
                source=source,
                project=project.name,
                command=command,
                task_id=request.task_id,
                error=str(exc),
            )
            return False
        logger.info(
            "router.dispatched",
            source=source,
            project=project.name,
            command=command,
            task_id=request.task_id,
        )
        return True

    async def _post(
        self,
        message: SlackLinerMessage,
        *,
        source: str,
        project: str | None,
    ) -> bool:
        try:
            await self._bus.push(self._cfg.slackliner_list, message.to_payload())
        except BusError as exc:
            logger.error(
                "router.post_failed",
                source=source,
                project=project,
                channel=message.channel,
                error=str(exc),
            )
            return False
        logger.info(
            "router.posted",
            source=source,
            project=project,
            channel=message.channel,
            thread_ts=message.thread_ts,
        )
        return True
