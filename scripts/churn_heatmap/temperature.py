"""Temperature mapper -- churn fraction to color.

Piecewise gradient with a breakpoint at 0.2:

  - [0, 0.2):   blue -> green   (red 0, green rises, blue falls)
  - 0.2:        pure green      (0, 1, 0)
  - (0.2, 1]:   green -> red    (blue 0, red rises, green falls)

Both bands are linear, so the mapping is continuous and monotonic through
(0, 1, 0). Fractions outside [0, 1] raise TemperatureError: a zero or
mismatched denominator upstream must not turn into a plausible color.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .models import TemperatureError

BREAKPOINT = 0.2
ALPHA = 0.5


@dataclass(frozen=True)
class Color:
    """RGBA with channels in [0, 1]."""

    red: float
    green: float
    blue: float
    alpha: float = ALPHA

    def rgb255(self) -> tuple[int, int, int]:
        return (
            math.floor(255 * self.red),
            math.floor(255 * self.green),
            math.floor(255 * self.blue),
        )

    def to_rgba_css(self) -> str:
        """CSS rgba() string, e.g. for line decorations or HTML reports."""
        r, g, b = self.rgb255()
        return f"rgba({r},{g},{b},{self.alpha})"

    def to_ansi_bg(self) -> str:
        """24-bit ANSI background escape for terminal output."""
        r, g, b = self.rgb255()
        return f"\x1b[48;2;{r};{g};{b}m"


def color_for(fraction: float) -> Color:
    """Map churn / max_churn to a color on the blue-green-red gradient."""
    if isinstance(fraction, bool) or not isinstance(fraction, (int, float)):
        raise TemperatureError(f"Invalid temperature fraction: {fraction!r}")
    if 0.0 <= fraction < BREAKPOINT:
        t = fraction / BREAKPOINT
        return Color(0.0, t, 1.0 - t)
    if fraction == BREAKPOINT:
        return Color(0.0, 1.0, 0.0)
    if BREAKPOINT < fraction <= 1.0:
        t = (fraction - BREAKPOINT) / (1.0 - BREAKPOINT)
        return Color(t, 1.0 - t, 0.0)
    # Negative, > 1, NaN
    raise TemperatureError(f"Invalid temperature fraction: {fraction!r}")


def temperature(value: int, maximum: int) -> Color:
    """color_for(value / maximum). A zero maximum is an error."""
    if maximum <= 0:
        raise TemperatureError(f"Invalid temperature denominator: {maximum!r}")
    return color_for(value / maximum)
