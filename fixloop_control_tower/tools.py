"""Tool logging wrapper.

Outermost layer around an external tool: logs every invocation with its
arguments, duration and call-budget headroom, and logs failures before
re-raising them.
"""

import time
from dataclasses import replace
from typing import Any, Optional

from fixloop_protocols import LoggerProtocol, Tool
from fixloop_shared import format_duration, to_json, truncate

from fixloop_control_tower.resources.breaker import CallBudget

_ARGS_PREVIEW_CHARS = 200


def wrap_with_logging(
    tool: Tool,
    logger: LoggerProtocol,
    budget: Optional[CallBudget] = None,
) -> Tool:
    """Log each call of ``tool``.

    ``calls_used`` is read after the call returns, so cache hits (which
    never reach the breaker) do not move it.
    """
    inner = tool.func
    log = logger.bind(tool=tool.name)

    async def logged(**kwargs: Any) -> str:
        started = time.monotonic()
        log.debug("tool_call_started", args=truncate(to_json(kwargs), _ARGS_PREVIEW_CHARS))
        try:
            result = await inner(**kwargs)
        except Exception as exc:
            log.warning(
                "tool_call_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                duration=format_duration((time.monotonic() - started) * 1000),
            )
            raise

        fields = {
            "duration": format_duration((time.monotonic() - started) * 1000),
            "result_chars": len(result),
        }
        if budget is not None:
            fields["calls_used"] = budget.count
            fields["call_limit"] = budget.limit
        log.info("tool_call", **fields)
        return result

    return replace(tool, func=logged)


__all__ = ["wrap_with_logging"]
