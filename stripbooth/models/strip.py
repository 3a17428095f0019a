from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime, timezone

FORMAT_EXTENSIONS = {"jpeg": "jpg", "png": "png"}
FORMAT_MEDIA_TYPES = {"jpeg": "image/jpeg", "png": "image/png"}


class CompositeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    image: bytes
    width: int
    height: int
    format: str = "jpeg"
    layout_id: str
    theme_id: str
    generated_at: datetime

    @property
    def media_type(self) -> str:
        return FORMAT_MEDIA_TYPES[self.format]

    @property
    def extension(self) -> str:
        return FORMAT_EXTENSIONS[self.format]


class StripRecord(BaseModel):
    id: str = ""
    frames: List[str] = []
    layout_id: str
    theme_id: str
    composite_image: bytes = b""
    image_format: str = "jpeg"
    user_id: Optional[str] = None
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def photo_count(self) -> int:
        return len(self.frames)

    def summary(self) -> dict:
        data = self.model_dump(mode="json", exclude={"composite_image", "frames"})
        data["photo_count"] = self.photo_count
        data["download_url"] = f"/api/strips/{self.id}"
        return data


class StripUpdate(BaseModel):
    """Editable strip metadata; only fields that are set are applied."""

    title: Optional[str] = Field(default=None, max_length=200)
    user_id: Optional[str] = None

    def apply(self, record: StripRecord) -> StripRecord:
        changes = self.model_dump(exclude_unset=True)
        changes["updated_at"] = datetime.now(timezone.utc)
        return record.model_copy(update=changes)


class StripFilter(BaseModel):
    layout_id: Optional[str] = None
    theme_id: Optional[str] = None
    user_id: Optional[str] = None

    def matches(self, record: StripRecord) -> bool:
        if self.layout_id is not None and record.layout_id != self.layout_id:
            return False
        if self.theme_id is not None and record.theme_id != self.theme_id:
            return False
        if self.user_id is not None and record.user_id != self.user_id:
            return False
        return True


class StorageStats(BaseModel):
    total_strips: int
    total_photos: int
    storage_bytes: int
    storage_type: str


def download_filename(prefix: str, when: datetime, image_format: str = "jpeg") -> str:
    return f"{prefix}-{int(when.timestamp() * 1000)}.{FORMAT_EXTENSIONS[image_format]}"
