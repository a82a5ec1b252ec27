"""Representación del medidor de gravedad: el icono cae cuando el suelo se seca."""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

DRY_THRESHOLD = 40
WET_THRESHOLD = 80
SPARKLE_THRESHOLD = 70

GAUGE_ROWS = 10
BAR_WIDTH = 30


@dataclass(frozen=True)
class GaugeView:
    moisture: int
    icon: str
    icon_position: int  # % desde arriba: 0 = flotando (húmedo), 100 = en el suelo
    badge: Optional[str]
    bouncing: bool
    pump_label: str
    button_label: str
    button_enabled: bool
    last_update: str
    error: Optional[str]
    simulated: bool = False


def button_label(loading: bool, is_pumping: bool) -> str:
    if loading:
        return "⏳ Watering..."
    if is_pumping:
        return "💨 Pump Active"
    return "💧 Water Now"


def moisture_badge(moisture: int) -> Optional[str]:
    if moisture < DRY_THRESHOLD:
        return "DRY!"
    if moisture > WET_THRESHOLD:
        return "WET"
    return None


def build_gauge(
    moisture: int,
    is_pumping: bool,
    loading: bool = False,
    last_update: Optional[datetime] = None,
    error: Optional[str] = None,
    simulated: bool = False,
) -> GaugeView:
    moisture = max(0, min(100, moisture))
    return GaugeView(
        moisture=moisture,
        icon="✨" if moisture > SPARKLE_THRESHOLD else "💧",
        icon_position=100 - moisture,
        badge=moisture_badge(moisture),
        bouncing=is_pumping,
        pump_label="🔵 ON" if is_pumping else "⚫ OFF",
        button_label=button_label(loading, is_pumping),
        button_enabled=not (loading or is_pumping),
        last_update=last_update.strftime("%H:%M:%S") if last_update else "--:--:--",
        error=error,
        simulated=simulated,
    )


def moisture_bar(moisture: int, width: int = BAR_WIDTH) -> str:
    filled = round(width * moisture / 100)
    return "[" + "#" * filled + "-" * (width - filled) + "]"


def render_text(view: GaugeView, device: str = "", frame: int = 0) -> str:
    """Dibuja el medidor como texto para la terminal."""
    row = min(GAUGE_ROWS - 1, view.icon_position * GAUGE_ROWS // 100)
    if view.bouncing and frame % 2 and row > 0:
        row -= 1

    lines: List[str] = ["Gravity Meter - Soil Moisture Monitor"]
    if device:
        lines.append(f"Device: {device}")
    lines.append("+" + "-" * 22 + "+")
    for i in range(GAUGE_ROWS):
        cell = view.icon if i == row else " "
        tag = view.badge if (i == 0 and view.badge) else ""
        lines.append(f"|{cell:^10}{tag:>11} |")
    lines.append("|" + "~" * 10 + "🌱" + "~" * 10 + "|")
    lines.append("+" + "-" * 22 + "+")
    marker = " (simulated)" if view.simulated else ""
    lines.append(
        f"Moisture Level {view.moisture:>3}% {moisture_bar(view.moisture)}{marker}"
    )
    lines.append(f"Pump Status: {view.pump_label}   Last Update: {view.last_update}")
    if view.error:
        lines.append(f"Error: {view.error}")
    state = "" if view.button_enabled else " (disabled)"
    lines.append(f"[w] {view.button_label}{state}   [q] quit")
    return "\n".join(lines)
