"""UI components for the devark dashboard."""

from .widgets import (
    InfoPanel,
    SessionItem,
    render_analysis,
    render_coaching,
)
from .styles import APP_CSS

__all__ = [
    "InfoPanel",
    "SessionItem",
    "render_analysis",
    "render_coaching",
    "APP_CSS",
]
