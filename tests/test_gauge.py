from datetime import datetime

from gauge import build_gauge, moisture_bar, render_text


def test_dry_soil_drops_the_icon():
    view = build_gauge(moisture=10, is_pumping=False)

    assert view.icon_position == 90
    assert view.icon == "💧"
    assert view.badge == "DRY!"
    assert view.pump_label == "⚫ OFF"
    assert view.button_enabled


def test_wet_soil_floats_the_icon():
    view = build_gauge(moisture=90, is_pumping=True)

    assert view.icon_position == 10
    assert view.icon == "✨"
    assert view.badge == "WET"
    assert view.bouncing
    assert view.button_label == "💨 Pump Active"
    assert not view.button_enabled


def test_no_badge_in_the_middle_band():
    assert build_gauge(moisture=40, is_pumping=False).badge is None
    assert build_gauge(moisture=80, is_pumping=False).badge is None


def test_loading_label_wins():
    view = build_gauge(moisture=50, is_pumping=True, loading=True)

    assert view.button_label == "⏳ Watering..."


def test_moisture_bar_width():
    assert moisture_bar(0, width=10) == "[----------]"
    assert moisture_bar(50, width=10) == "[#####-----]"
    assert moisture_bar(100, width=10) == "[##########]"


def test_render_text_shows_state():
    view = build_gauge(
        moisture=35,
        is_pumping=False,
        last_update=datetime(2024, 5, 1, 8, 30, 15),
        error="Failed to fetch soil status",
    )

    text = render_text(view, device="localhost:8080")

    assert "Device: localhost:8080" in text
    assert "35%" in text
    assert "DRY!" in text
    assert "08:30:15" in text
    assert "Error: Failed to fetch soil status" in text
    assert "Water Now" in text
    assert "(simulated)" not in text


def test_render_text_marks_simulated_readings():
    view = build_gauge(moisture=55, is_pumping=False, simulated=True)

    text = render_text(view)

    assert "55% " in text
    assert "(simulated)" in text
