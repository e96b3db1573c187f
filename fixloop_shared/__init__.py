"""Shared utilities for fixloop.

Common utilities usable by all layers without circular dependencies.
Sits at L0 alongside fixloop_protocols.

Exports:
- Logging: configure_logging, create_logger, run_scope, Logger
- Serialization: to_json, utc_now, utc_now_iso
- Formatting: format_duration, truncate
"""

from fixloop_shared.formatting import format_duration, truncate
from fixloop_shared.logging import (
    Logger,
    configure_logging,
    create_logger,
    get_current_logger,
    get_current_run_id,
    run_scope,
    set_current_logger,
)
from fixloop_shared.serialization import to_json, utc_now, utc_now_iso

__all__ = [
    "Logger",
    "configure_logging",
    "create_logger",
    "format_duration",
    "get_current_logger",
    "get_current_run_id",
    "run_scope",
    "set_current_logger",
    "to_json",
    "truncate",
    "utc_now",
    "utc_now_iso",
]
