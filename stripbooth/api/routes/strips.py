from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from stripbooth.api.dependencies import get_storage
from stripbooth.config import settings
from stripbooth.errors import StorageFailure, StripNotFound
from stripbooth.models.strip import FORMAT_MEDIA_TYPES, StorageStats, StripFilter, StripUpdate, download_filename
from stripbooth.services.storage import StripStorage

router = APIRouter(prefix="/strips", tags=["strips"])


@router.get("/")
async def list_strips(
        layout_id: Optional[str] = None,
        theme_id: Optional[str] = None,
        user_id: Optional[str] = None,
        storage: StripStorage = Depends(get_storage)
):
    strip_filter = StripFilter(layout_id=layout_id, theme_id=theme_id, user_id=user_id)
    try:
        records = await storage.list(strip_filter)
    except StorageFailure as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"strips": [record.summary() for record in records]}


@router.delete("/")
async def clear_strips(storage: StripStorage = Depends(get_storage)):
    try:
        deleted = await storage.clear()
    except StorageFailure as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "deleted": deleted}


@router.get("/stats", response_model=StorageStats)
async def storage_stats(storage: StripStorage = Depends(get_storage)):
    return await storage.stats()


@router.get("/{strip_id}")
async def download_strip(strip_id: str, storage: StripStorage = Depends(get_storage)):
    try:
        record = await storage.get(strip_id)
    except StripNotFound:
        raise HTTPException(status_code=404, detail="Photo strip not found")
    except StorageFailure as e:
        raise HTTPException(status_code=500, detail=str(e))

    filename = download_filename(settings.download_prefix, record.created_at, record.image_format)
    return Response(
        content=record.composite_image,
        media_type=FORMAT_MEDIA_TYPES[record.image_format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.patch("/{strip_id}")
async def update_strip(strip_id: str, changes: StripUpdate, storage: StripStorage = Depends(get_storage)):
    try:
        record = await storage.update(strip_id, changes)
    except StripNotFound:
        raise HTTPException(status_code=404, detail="Photo strip not found")
    except StorageFailure as e:
        raise HTTPException(status_code=500, detail=str(e))
    return record.summary()


@router.delete("/{strip_id}")
async def delete_strip(strip_id: str, storage: StripStorage = Depends(get_storage)):
    try:
        deleted = await storage.delete(strip_id)
    except StorageFailure as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Photo strip not found")
    return {"success": True}
