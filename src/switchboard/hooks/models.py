"""Hook settings, payload records and execution results.

Settings come from the host's settings loader as plain mappings and pass
through a pydantic wall (``HookSettings.from_mapping``). Payload records are
validated at construction: every event needs a session id and a transcript
path, and a payload without them never reaches a hook.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from switchboard.errors import ConfigurationError, HookInputError


class HookEvent(str, Enum):
    """Lifecycle events hooks can subscribe to."""

    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    NOTIFICATION = "Notification"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"


# --- Settings (pydantic wall) ---


class HookCommand(BaseModel):
    """One shell command run for an event."""

    model_config = ConfigDict(frozen=True)

    type: Literal["command"] = "command"
    command: str = Field(min_length=1)
    #: Milliseconds; falls back to the execution options, then 60 s.
    timeout: int | None = Field(default=None, gt=0)


class HookMatcher(BaseModel):
    """An optional tool-name pattern paired with the commands it triggers."""

    model_config = ConfigDict(frozen=True)

    matcher: str | None = None
    hooks: tuple[HookCommand, ...] = ()


class HookSettings(BaseModel):
    """Registered hooks, keyed by event name. Unknown event names are rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    pre_tool_use: tuple[HookMatcher, ...] = Field(default=(), alias="PreToolUse")
    post_tool_use: tuple[HookMatcher, ...] = Field(default=(), alias="PostToolUse")
    notification: tuple[HookMatcher, ...] = Field(default=(), alias="Notification")
    stop: tuple[HookMatcher, ...] = Field(default=(), alias="Stop")
    subagent_stop: tuple[HookMatcher, ...] = Field(default=(), alias="SubagentStop")

    @field_validator(
        "pre_tool_use",
        "post_tool_use",
        "notification",
        "stop",
        "subagent_stop",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return () if v is None else v

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> HookSettings:
        """Validate a settings mapping, raising ConfigurationError on bad input."""
        try:
            return cls.model_validate(dict(raw or {}))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid hook settings: {e}",
                hint=(
                    "Hook settings map PreToolUse, PostToolUse, Notification, Stop "
                    "or SubagentStop to a list of {matcher, hooks} entries."
                ),
            ) from e

    def matchers_for(self, event: HookEvent | str) -> tuple[HookMatcher, ...]:
        """Return the matchers registered for *event*, in declaration order."""
        try:
            event = HookEvent(event)
        except ValueError:
            raise ConfigurationError(
                f"Unknown hook event: {event!r}",
                hint=f"Supported events: {', '.join(e.value for e in HookEvent)}",
            ) from None
        return {
            HookEvent.PRE_TOOL_USE: self.pre_tool_use,
            HookEvent.POST_TOOL_USE: self.post_tool_use,
            HookEvent.NOTIFICATION: self.notification,
            HookEvent.STOP: self.stop,
            HookEvent.SUBAGENT_STOP: self.subagent_stop,
        }[event]


# --- Execution ---


@dataclass(frozen=True)
class HookDecision:
    """A decision a hook reported on stdout."""

    decision: Literal["approve", "block"] | None = None
    reason: str | None = None

    @classmethod
    def from_output(cls, parsed: Any) -> HookDecision | None:
        """Build a decision from a hook's parsed stdout, or None if it made none."""
        if not isinstance(parsed, Mapping):
            return None
        if "decision" not in parsed and "reason" not in parsed:
            return None
        decision = parsed.get("decision")
        reason = parsed.get("reason")
        return cls(
            decision=decision if decision in ("approve", "block") else None,
            reason=str(reason) if reason is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.decision is not None:
            out["decision"] = self.decision
        if self.reason is not None:
            out["reason"] = self.reason
        return out


@dataclass(frozen=True)
class HookResult:
    """Outcome of one hook command. Failures are data, never exceptions."""

    success: bool
    output: str | None = None
    error: str | None = None
    decision: HookDecision | None = None

    @property
    def blocks(self) -> bool:
        """Whether this result vetoes the triggering action."""
        if self.decision is not None and self.decision.decision == "block":
            return True
        return not self.success and bool(self.error)

    def to_dict(self) -> dict[str, Any]:
        """Return the ``{success, output?, error?, decision?}`` boundary shape."""
        out: dict[str, Any] = {"success": self.success}
        if self.output is not None:
            out["output"] = self.output
        if self.error is not None:
            out["error"] = self.error
        if self.decision is not None:
            out["decision"] = self.decision.to_dict()
        return out


@dataclass(frozen=True)
class HookExecutionOptions:
    """Per-call overrides for hook execution."""

    timeout_ms: int | None = None
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BlockVerdict:
    """Aggregate block decision over a batch of hook results."""

    block: bool
    reason: str | None = None


# --- Payload records ---


def utc_timestamp() -> str:
    """Return the current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class HookInput:
    """Fields every hook payload carries."""

    event: ClassVar[HookEvent]

    session_id: str
    transcript_path: str

    def __post_init__(self) -> None:
        for name in ("session_id", "transcript_path"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise HookInputError(
                    f"{type(self).__name__} requires a non-empty {name}",
                    hint="Build payloads from a HookSession so both fields are set.",
                )

    def to_payload(self) -> dict[str, Any]:
        """Render the JSON object written to the hook's stdin."""
        return {"session_id": self.session_id, "transcript_path": self.transcript_path}


@dataclass(frozen=True)
class PreToolUseInput(HookInput):
    """Payload sent before a tool runs."""

    event: ClassVar[HookEvent] = HookEvent.PRE_TOOL_USE

    tool_name: str = ""
    tool_input: Mapping[str, Any] = field(default_factory=dict)
    call_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["tool_name"] = self.tool_name
        payload["tool_input"] = dict(self.tool_input)
        payload["args"] = dict(self.tool_input)
        if self.call_id is not None:
            payload["call_id"] = self.call_id
        return payload


@dataclass(frozen=True)
class PostToolUseInput(PreToolUseInput):
    """Payload sent after a tool ran (or failed)."""

    event: ClassVar[HookEvent] = HookEvent.POST_TOOL_USE

    tool_response: Any = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.tool_response is not None:
            payload["tool_response"] = self.tool_response
            payload["result"] = self.tool_response
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class NotificationInput(HookInput):
    """Payload for host notifications."""

    event: ClassVar[HookEvent] = HookEvent.NOTIFICATION

    notification_type: str = ""
    message: str = ""
    timestamp: str = field(default_factory=utc_timestamp)
    #: Extra keys merged into the top level of the payload.
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload = dict(self.metadata)
        payload.update(super().to_payload())
        payload["notification_type"] = self.notification_type
        payload["message"] = self.message
        payload["timestamp"] = self.timestamp
        return payload


@dataclass(frozen=True)
class StopInput(HookInput):
    """Payload sent when the agent stops responding."""

    event: ClassVar[HookEvent] = HookEvent.STOP

    stop_reason: str = "response_complete"
    timestamp: str = field(default_factory=utc_timestamp)
    session_duration: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["stop_reason"] = self.stop_reason
        payload["timestamp"] = self.timestamp
        if self.session_duration is not None:
            payload["session_duration"] = self.session_duration
        return payload


@dataclass(frozen=True)
class SubagentStopInput(StopInput):
    """Payload sent when a subagent stops."""

    event: ClassVar[HookEvent] = HookEvent.SUBAGENT_STOP
