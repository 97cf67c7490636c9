"""Console rendering for the command line."""

from .output import (
    render_checkpoint,
    render_error,
    render_event,
    render_merged_result,
    render_run_summary,
    render_table,
)
from .theme import DEFAULT_THEME, console, err_console

__all__ = [
    "render_checkpoint",
    "render_error",
    "render_event",
    "render_merged_result",
    "render_run_summary",
    "render_table",
    "DEFAULT_THEME",
    "console",
    "err_console",
]
