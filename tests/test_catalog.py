import pytest
from pydantic import ValidationError

from stripbooth.models.layout import Layout, Orientation, Size, Theme
from stripbooth.services.catalog import Catalog, layout_catalog, theme_catalog


def test_resolve_known_layout():
    layout = layout_catalog.resolve("vintage")
    assert layout.photo_count == 3
    assert layout.orientation == Orientation.vertical


def test_resolve_unknown_layout_returns_default():
    assert layout_catalog.resolve("does-not-exist") is layout_catalog.default
    assert layout_catalog.resolve(None).id == "classic"


def test_resolve_unknown_theme_returns_default():
    assert theme_catalog.resolve("disco").id == "classic"


def test_catalog_contents():
    assert layout_catalog.ids() == ["classic", "vintage", "horizontal", "grid"]
    assert theme_catalog.ids() == ["classic", "vintage", "birthday", "wedding", "neon"]
    assert "neon" in theme_catalog
    assert len(theme_catalog) == 5


def test_catalog_cannot_be_mutated():
    with pytest.raises(TypeError):
        layout_catalog._entries["extra"] = layout_catalog.default
    with pytest.raises(ValidationError):
        layout_catalog.default.photo_count = 10


def test_catalog_requires_default_entry():
    with pytest.raises(ValueError):
        Catalog("layout", [layout_catalog.resolve("grid")], "classic")


def test_classic_layout_slots_follow_header_offset():
    layout = layout_catalog.resolve("classic")
    assert layout.slots() == [(10, 85), (10, 335), (10, 585), (10, 835)]


def test_grid_layout_wraps_after_two_columns():
    layout = layout_catalog.resolve("grid")
    assert layout.slots() == [(20, 20), (320, 20), (20, 320), (320, 320)]


def test_horizontal_layout_centers_vertically():
    layout = layout_catalog.resolve("horizontal")
    assert layout.slots() == [(15, 70), (310, 70), (605, 70)]


def test_layout_rejects_slots_outside_canvas():
    with pytest.raises(ValidationError):
        Layout(
            id="too-tall",
            name="Too tall",
            photo_count=5,
            orientation=Orientation.vertical,
            canvas_size=Size(width=300, height=1200),
            photo_size=Size(width=280, height=280),
            spacing=10,
        )


def test_layout_requires_at_least_one_photo():
    with pytest.raises(ValidationError):
        Layout(
            id="empty",
            name="Empty",
            photo_count=0,
            orientation=Orientation.grid,
            canvas_size=Size(width=600, height=600),
            photo_size=Size(width=280, height=280),
            spacing=20,
        )


def test_theme_requires_hex_colors():
    with pytest.raises(ValidationError):
        Theme(
            id="broken",
            name="Broken",
            background_color="white",
            border_color="#000000",
            accent_color="#333333",
            text_color="#000000",
        )
