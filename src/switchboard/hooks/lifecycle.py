"""Host-side helpers that fire hooks around tool calls and session events."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from switchboard.hooks.models import (
    HookEvent,
    HookResult,
    NotificationInput,
    PostToolUseInput,
    PreToolUseInput,
    StopInput,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from switchboard.hooks.executor import HookExecutor

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HookSession:
    """Identifies the session every hook payload belongs to."""

    session_id: str
    transcript_path: str


@dataclass(frozen=True)
class ToolRun:
    """Outcome of a tool call wrapped in PreToolUse/PostToolUse hooks."""

    tool_name: str
    call_id: str | None = None
    result: Any = None
    error: str | None = None
    blocked: bool = False
    pre_results: tuple[HookResult, ...] = ()
    post_results: tuple[HookResult, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.blocked and self.error is None


async def run_tool_with_hooks(
    executor: HookExecutor,
    session: HookSession,
    tool_name: str,
    args: Mapping[str, Any],
    tool: Callable[[Mapping[str, Any]], Awaitable[Any]],
    *,
    call_id: str | None = None,
) -> ToolRun:
    """Run *tool* between PreToolUse and PostToolUse hooks.

    A blocking PreToolUse verdict skips the tool and PostToolUse entirely.
    A tool exception is reported in ``ToolRun.error`` and forwarded to the
    PostToolUse hooks; it does not propagate.
    """
    pre = await executor.execute_hooks(
        HookEvent.PRE_TOOL_USE,
        PreToolUseInput(
            session_id=session.session_id,
            transcript_path=session.transcript_path,
            tool_name=tool_name,
            tool_input=args,
            call_id=call_id,
        ),
    )
    verdict = executor.should_block(pre)
    if verdict.block:
        log.debug("Tool %s blocked by PreToolUse hook: %s", tool_name, verdict.reason)
        return ToolRun(
            tool_name=tool_name,
            call_id=call_id,
            error=f"Operation blocked: {verdict.reason or ''}".rstrip(),
            blocked=True,
            pre_results=tuple(pre),
        )

    result: Any = None
    error: str | None = None
    try:
        result = await tool(args)
    except Exception as e:  # noqa: BLE001
        error = str(e) or type(e).__name__

    post = await executor.execute_hooks(
        HookEvent.POST_TOOL_USE,
        PostToolUseInput(
            session_id=session.session_id,
            transcript_path=session.transcript_path,
            tool_name=tool_name,
            tool_input=args,
            call_id=call_id,
            tool_response=result if error is None else None,
            error=error,
        ),
    )
    return ToolRun(
        tool_name=tool_name,
        call_id=call_id,
        result=result,
        error=error,
        pre_results=tuple(pre),
        post_results=tuple(post),
    )


async def notify(
    executor: HookExecutor,
    session: HookSession,
    notification_type: str,
    message: str,
    metadata: Mapping[str, Any] | None = None,
) -> list[HookResult]:
    """Fire Notification hooks."""
    return await executor.execute_hooks(
        HookEvent.NOTIFICATION,
        NotificationInput(
            session_id=session.session_id,
            transcript_path=session.transcript_path,
            notification_type=notification_type,
            message=message,
            metadata=dict(metadata or {}),
        ),
    )


async def on_response_complete(
    executor: HookExecutor,
    session: HookSession,
    stop_reason: str = "response_complete",
) -> list[HookResult]:
    """Fire Stop hooks once the agent goes idle after a response."""
    return await executor.execute_hooks(
        HookEvent.STOP,
        StopInput(
            session_id=session.session_id,
            transcript_path=session.transcript_path,
            stop_reason=stop_reason,
        ),
    )
