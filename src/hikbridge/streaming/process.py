"""Helpers for ffmpeg child processes owned by sessions and snapshots."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from hikbridge.constants import PROCESS_REAP_TIMEOUT_S

logger = logging.getLogger(__name__)


async def kill_and_reap(
    process: Any,
    *,
    timeout_s: float | None = None,
    camera_name: str | None = None,
) -> int | None:
    """Kill the process if it is still running and wait for its exit status.

    Returns the exit code, or None when the process did not exit within
    timeout_s (PROCESS_REAP_TIMEOUT_S by default).
    """
    if process is None:
        return None
    if timeout_s is None:
        timeout_s = PROCESS_REAP_TIMEOUT_S
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    try:
        return await asyncio.wait_for(process.wait(), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning(
            "Process %s did not exit %.1fs after kill",
            process.pid,
            timeout_s,
            extra={"camera_name": camera_name},
        )
        return None


__all__ = ["kill_and_reap"]
