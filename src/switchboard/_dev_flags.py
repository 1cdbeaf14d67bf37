"""Internal helpers for development-time feature flags.

Flags are resolved once, when a ``Config`` is built, and then passed
explicitly to the components that need them. Nothing reads these at call
time.
"""

from __future__ import annotations

import os

__all__ = ["debug_enabled"]


def debug_enabled(*, override: bool | None = None) -> bool:
    """Return True when debug diagnostics are enabled.

    - If ``override`` is provided, it takes precedence.
    - Otherwise, returns True when the environment variable
      ``SWITCHBOARD_DEBUG`` is exactly ``"1"``.
    """
    if override is not None:
        return bool(override)
    return os.getenv("SWITCHBOARD_DEBUG") == "1"
