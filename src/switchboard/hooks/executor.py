"""Run user-configured shell hooks for lifecycle events.

Every matching hook runs as ``bash -c <command>`` with the event payload as
JSON on stdin. Hooks for one event run concurrently; their results come back
in discovery order (matcher order, then hook order within a matcher).

The executor never raises for a misbehaving hook: timeouts, non-zero exits
and spawn failures all become failed ``HookResult`` values.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import contextlib
from functools import lru_cache
import json
import logging
import os
import re
import signal
from typing import TYPE_CHECKING, Any

from switchboard.hooks.models import (
    BlockVerdict,
    HookDecision,
    HookExecutionOptions,
    HookInput,
    HookResult,
    HookSettings,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from switchboard.config import Config
    from switchboard.hooks.models import HookCommand, HookEvent, HookMatcher

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 60_000
KILL_GRACE_S = 5.0
_REAP_TIMEOUT_S = 1.0
BLOCK_EXIT_CODE = 2
_BLOCK_FALLBACK = "Hook blocked execution"


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern[str] | None:
    """Compile *pattern* case-insensitively; None when it is not a valid regex."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


def matches_pattern(pattern: str | None, tool_name: str | None) -> bool:
    """Return whether a matcher pattern selects *tool_name*.

    An empty pattern, or an event without a tool name, always matches. A
    pattern that compiles is searched case-insensitively; one that does not
    is compared for exact equality.
    """
    if not pattern or not tool_name:
        return True
    compiled = _compile_pattern(pattern)
    if compiled is None:
        return tool_name == pattern
    return compiled.search(tool_name) is not None


def _payload_of(hook_input: HookInput | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(hook_input, HookInput):
        return hook_input.to_payload()
    return dict(hook_input)


class HookExecutor:
    """Executes the hooks registered in a ``HookSettings``."""

    def __init__(
        self,
        settings: HookSettings | Mapping[str, Any],
        *,
        debug: bool = False,
    ) -> None:
        """Bind to validated settings; a raw mapping is validated here."""
        self.settings = (
            settings
            if isinstance(settings, HookSettings)
            else HookSettings.from_mapping(settings)
        )
        self.debug = debug

    @classmethod
    def from_config(
        cls, settings: HookSettings | Mapping[str, Any], config: Config
    ) -> HookExecutor:
        """Build an executor whose debug mode follows ``config.debug``."""
        return cls(settings, debug=config.debug)

    def _debug(self, msg: str, *args: Any) -> None:
        if self.debug:
            log.info(msg, *args)

    def matching_hooks(
        self,
        matchers: Iterable[HookMatcher],
        hook_input: HookInput | Mapping[str, Any],
    ) -> list[HookCommand]:
        """Flatten the commands of every matcher that selects the input's tool."""
        tool_name = _payload_of(hook_input).get("tool_name")
        if not isinstance(tool_name, str):
            tool_name = None
        commands: list[HookCommand] = []
        for matcher in matchers:
            if matches_pattern(matcher.matcher, tool_name):
                commands.extend(matcher.hooks)
        return commands

    async def execute_hooks(
        self,
        event: HookEvent | str,
        hook_input: HookInput | Mapping[str, Any],
        options: HookExecutionOptions | None = None,
    ) -> list[HookResult]:
        """Run every hook matching *event* and *hook_input*.

        Returns an empty list, without spawning anything, when no hook is
        registered or none matches.
        """
        matchers = self.settings.matchers_for(event)
        if not matchers:
            return []
        commands = self.matching_hooks(matchers, hook_input)
        if not commands:
            return []

        event_name = getattr(event, "value", event)
        self._debug("Executing hooks for %s", event_name)
        self._debug("Found %d matching hooks", len(commands))

        # Values JSON cannot encode (datetimes, bytes) are sent as their str().
        payload = json.dumps(_payload_of(hook_input), default=str).encode("utf-8")
        opts = options or HookExecutionOptions()
        outcomes = await asyncio.gather(
            *(self._execute_one(cmd, payload, opts) for cmd in commands),
            return_exceptions=True,
        )

        results: list[HookResult] = []
        for outcome in outcomes:
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log.debug("Hook raised unexpectedly", exc_info=outcome)
                results.append(
                    HookResult(
                        success=False, error=str(outcome) or "Hook execution failed"
                    )
                )
            else:
                results.append(outcome)
        return results

    async def _execute_one(
        self, hook: HookCommand, payload: bytes, options: HookExecutionOptions
    ) -> HookResult:
        timeout_ms = hook.timeout or options.timeout_ms or DEFAULT_TIMEOUT_MS
        self._debug("Executing hook command: %s", hook.command)

        try:
            proc = await asyncio.create_subprocess_exec(
                "bash",
                "-c",
                hook.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=options.cwd or os.getcwd(),
                env={**os.environ, **options.env},
                start_new_session=True,
            )
        except OSError as e:
            return HookResult(success=False, error=str(e))

        try:
            # communicate() tolerates hooks that exit without reading stdin.
            stdout_b, stderr_b = await asyncio.wait_for(
                proc.communicate(payload), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            await _terminate(proc)
            return HookResult(
                success=False, error=f"Hook command timed out after {timeout_ms}ms"
            )
        except (BrokenPipeError, ConnectionResetError):
            stdout_b, stderr_b = b"", b""
            await proc.wait()

        stdout = stdout_b.decode("utf-8", errors="replace")
        stderr = stderr_b.decode("utf-8", errors="replace")
        self._debug("Hook command completed with status %s", proc.returncode)
        if stdout:
            self._debug("Hook stdout: %s", stdout)
        if stderr:
            self._debug("Hook stderr: %s", stderr)
        return classify_exit(proc.returncode, stdout, stderr)

    @staticmethod
    def should_block(results: Sequence[HookResult]) -> BlockVerdict:
        """Return a block verdict from the first result that blocks, if any."""
        for result in results:
            if result.decision is not None and result.decision.decision == "block":
                return BlockVerdict(block=True, reason=result.decision.reason)
            if not result.success and result.error:
                return BlockVerdict(block=True, reason=result.error)
        return BlockVerdict(block=False)


def classify_exit(code: int | None, stdout: str, stderr: str) -> HookResult:
    """Map an exit status and captured output to a ``HookResult``."""
    if code == 0:
        decision = None
        text = stdout.strip()
        if text:
            try:
                decision = HookDecision.from_output(json.loads(text))
            except ValueError:
                decision = None
        return HookResult(success=True, output=stdout, decision=decision)
    if code == BLOCK_EXIT_CODE:
        reason = stderr or _BLOCK_FALLBACK
        return HookResult(
            success=False,
            error=reason,
            decision=HookDecision(decision="block", reason=reason),
        )
    return HookResult(success=False, error=stderr or f"Hook failed with exit code {code}")


def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
    # Each hook leads its own session, so its pid is also its process group id.
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(proc.pid, sig)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """SIGTERM the hook's process group, then SIGKILL it after the grace period.

    ``proc.wait()`` also waits for the output pipes to close, so it returns
    only once every process holding them is gone. Nothing is read from the
    pipes here.
    """
    _signal_group(proc, signal.SIGTERM)
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(proc.wait(), timeout=KILL_GRACE_S)
    _signal_group(proc, signal.SIGKILL)
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(proc.wait(), timeout=_REAP_TIMEOUT_S)
