"""Lifecycle hooks: user shell commands run around tool calls and session events."""

from .executor import HookExecutor, matches_pattern
from .lifecycle import HookSession, ToolRun, notify, on_response_complete, run_tool_with_hooks
from .models import (
    BlockVerdict,
    HookCommand,
    HookDecision,
    HookEvent,
    HookExecutionOptions,
    HookInput,
    HookMatcher,
    HookResult,
    HookSettings,
    NotificationInput,
    PostToolUseInput,
    PreToolUseInput,
    StopInput,
    SubagentStopInput,
)

__all__ = [
    "BlockVerdict",
    "HookCommand",
    "HookDecision",
    "HookEvent",
    "HookExecutionOptions",
    "HookExecutor",
    "HookInput",
    "HookMatcher",
    "HookResult",
    "HookSession",
    "HookSettings",
    "NotificationInput",
    "PostToolUseInput",
    "PreToolUseInput",
    "StopInput",
    "SubagentStopInput",
    "ToolRun",
    "matches_pattern",
    "notify",
    "on_response_complete",
    "run_tool_with_hooks",
]
