from types import MappingProxyType
from typing import Generic, Iterable, List, Optional, TypeVar

from loguru import logger

from stripbooth.models.layout import Layout, Orientation, Size, Theme

T = TypeVar("T", Layout, Theme)

DEFAULT_LAYOUT_ID = "classic"
DEFAULT_THEME_ID = "classic"

LAYOUTS = (
    Layout(
        id="classic",
        name="Classic Strip",
        description="Traditional 4-photo vertical strip",
        photo_count=4,
        orientation=Orientation.vertical,
        canvas_size=Size(width=300, height=1200),
        photo_size=Size(width=280, height=240),
        spacing=10,
        show_header=True,
        show_footer=True,
        corner_radius=8,
        border_width=2,
    ),
    Layout(
        id="vintage",
        name="Vintage Strip",
        description="Nostalgic 3-photo vertical strip",
        photo_count=3,
        orientation=Orientation.vertical,
        canvas_size=Size(width=300, height=900),
        photo_size=Size(width=280, height=240),
        spacing=15,
        show_header=True,
        show_footer=True,
        corner_radius=12,
        border_width=3,
    ),
    Layout(
        id="horizontal",
        name="Horizontal Strip",
        description="Modern 3-photo horizontal layout",
        photo_count=3,
        orientation=Orientation.horizontal,
        canvas_size=Size(width=900, height=400),
        photo_size=Size(width=280, height=260),
        spacing=15,
        show_header=True,
        show_footer=False,
        corner_radius=8,
        border_width=2,
    ),
    Layout(
        id="grid",
        name="2x2 Grid",
        description="Square grid layout",
        photo_count=4,
        orientation=Orientation.grid,
        canvas_size=Size(width=600, height=680),
        photo_size=Size(width=280, height=280),
        spacing=20,
        show_header=False,
        show_footer=True,
        corner_radius=8,
        border_width=2,
    ),
)

THEMES = (
    Theme(
        id="classic",
        name="Classic",
        description="Timeless black and white",
        background_color="#FFFFFF",
        border_color="#000000",
        accent_color="#333333",
        text_color="#000000",
        font_family="Arial, sans-serif",
        header_text="PHOTOBOOTH",
    ),
    Theme(
        id="vintage",
        name="Vintage",
        description="Warm sepia tones",
        background_color="#F5F5DC",
        border_color="#8B4513",
        accent_color="#D2691E",
        text_color="#654321",
        font_family="serif",
        header_text="MEMORIES",
    ),
    Theme(
        id="birthday",
        name="Birthday Party",
        description="Fun and colorful celebration",
        background_color="#FFE4E1",
        border_color="#FF69B4",
        accent_color="#FF6347",
        text_color="#FF1493",
        font_family="Comic Sans MS, cursive",
        header_text="PARTY TIME!",
    ),
    Theme(
        id="wedding",
        name="Wedding",
        description="Elegant gold and cream",
        background_color="#FFFAF0",
        border_color="#FFD700",
        accent_color="#DAA520",
        text_color="#8B4513",
        font_family="Georgia, serif",
        header_text="LOVE MEMORIES",
    ),
    Theme(
        id="neon",
        name="Neon",
        description="Bright cyberpunk vibes",
        background_color="#000000",
        border_color="#00FFFF",
        accent_color="#FF00FF",
        text_color="#00FFFF",
        font_family="Courier New, monospace",
        header_text="NEON BOOTH",
    ),
)


class Catalog(Generic[T]):
    """Read-only registry of presets keyed by id."""

    def __init__(self, kind: str, entries: Iterable[T], default_id: str):
        entries_by_id = {entry.id: entry for entry in entries}
        if default_id not in entries_by_id:
            raise ValueError(f"Default {kind} {default_id!r} is not in the catalog")
        self.kind = kind
        self.default_id = default_id
        self._entries = MappingProxyType(entries_by_id)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def default(self) -> T:
        return self._entries[self.default_id]

    def get(self, entry_id: Optional[str]) -> Optional[T]:
        if entry_id is None:
            return None
        return self._entries.get(entry_id)

    def resolve(self, entry_id: Optional[str]) -> T:
        entry = self.get(entry_id)
        if entry is None:
            if entry_id is not None:
                logger.warning(f"Unknown {self.kind} {entry_id!r}, falling back to {self.default_id!r}")
            return self.default
        return entry

    def ids(self) -> List[str]:
        return list(self._entries)

    def all(self) -> List[T]:
        return list(self._entries.values())


layout_catalog: Catalog[Layout] = Catalog("layout", LAYOUTS, DEFAULT_LAYOUT_ID)
theme_catalog: Catalog[Theme] = Catalog("theme", THEMES, DEFAULT_THEME_ID)
