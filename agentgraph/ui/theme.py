"""Console palette and status colors."""

from dataclasses import dataclass, field

from rich.console import Console


@dataclass(frozen=True)
class ColorPalette:
    """Core UI color palette."""

    text_bright: str = "#e8e8f0"
    text: str = "#b8b8cc"
    text_dim: str = "#4a4a60"
    text_muted: str = "#363648"
    accent: str = "#00d4e5"
    border: str = "#222233"
    ok: str = "#34d399"
    warn: str = "#e5c747"
    error: str = "#e55a6e"
    pending: str = "#b44dff"


def _status_colors(palette: ColorPalette) -> dict[str, str]:
    return {
        "pending": palette.text_dim,
        "ready": palette.text,
        "running": palette.accent,
        "awaiting_approval": palette.pending,
        "completed": palette.ok,
        "partially_failed": palette.warn,
        "failed": palette.error,
        "skipped": palette.warn,
        "cancelled": palette.text_dim,
    }


@dataclass(frozen=True)
class AgentGraphTheme:
    """Palette plus the color for every node and run status."""

    palette: ColorPalette = ColorPalette()
    status_colors: dict[str, str] = field(default_factory=lambda: _status_colors(ColorPalette()))

    def status_style(self, status: str) -> str:
        return self.status_colors.get(status, self.palette.text)


DEFAULT_THEME = AgentGraphTheme()

console = Console()
err_console = Console(stderr=True)
