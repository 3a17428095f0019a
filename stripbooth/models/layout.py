from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Optional, Tuple
from enum import Enum

HEADER_OFFSET = 85
DEFAULT_PADDING = 25
GRID_COLUMNS = 2

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class Orientation(str, Enum):
    vertical = "vertical"
    horizontal = "horizontal"
    grid = "grid"


class Size(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class Layout(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    photo_count: int = Field(ge=1)
    orientation: Orientation
    canvas_size: Size
    photo_size: Size
    spacing: int = Field(ge=0)
    show_header: bool = True
    show_footer: bool = True
    corner_radius: int = Field(default=8, ge=0)
    border_width: int = Field(default=2, ge=0)

    @property
    def padding(self) -> int:
        return self.spacing or DEFAULT_PADDING

    @property
    def header_offset(self) -> int:
        return HEADER_OFFSET if self.show_header else self.padding

    def slot(self, index: int) -> Tuple[int, int]:
        """Top-left corner of the photo slot at ``index``."""
        photo_w, photo_h = self.photo_size.width, self.photo_size.height
        if self.orientation == Orientation.vertical:
            x = (self.canvas_size.width - photo_w) // 2
            y = self.header_offset + index * (photo_h + self.spacing)
        elif self.orientation == Orientation.horizontal:
            x = self.padding + index * (photo_w + self.spacing)
            y = (self.canvas_size.height - photo_h) // 2
        else:
            column, row = index % GRID_COLUMNS, index // GRID_COLUMNS
            x = self.padding + column * (photo_w + self.spacing)
            y = self.padding + row * (photo_h + self.spacing)
        return x, y

    def slots(self) -> List[Tuple[int, int]]:
        return [self.slot(i) for i in range(self.photo_count)]

    @model_validator(mode="after")
    def check_geometry(self):
        photo_w, photo_h = self.photo_size.width, self.photo_size.height
        boxes = [(x, y, x + photo_w, y + photo_h) for x, y in self.slots()]
        for i, (left, top, right, bottom) in enumerate(boxes):
            if left < 0 or top < 0 or right > self.canvas_size.width or bottom > self.canvas_size.height:
                raise ValueError(f"Layout {self.id!r}: photo slot {i + 1} falls outside the canvas")
        for i, a in enumerate(boxes):
            for b in boxes[i + 1:]:
                if a[0] < b[2] and b[0] < a[2] and a[1] < b[3] and b[1] < a[3]:
                    raise ValueError(f"Layout {self.id!r}: photo slots overlap")
        return self


class Theme(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    background_color: str = Field(pattern=HEX_COLOR)
    border_color: str = Field(pattern=HEX_COLOR)
    accent_color: str = Field(pattern=HEX_COLOR)
    text_color: str = Field(pattern=HEX_COLOR)
    font_family: str = "sans-serif"
    header_text: Optional[str] = None
