from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from loguru import logger

from stripbooth.api.dependencies import get_booth_service
from stripbooth.errors import CameraUnavailable, CaptureError, CompositionError, SessionStateError, StorageFailure
from stripbooth.models.session import (
    CompositeResponse, FacingModeRequest, RecomposeRequest, SaveRequest, SessionSelectRequest,
    SessionStatusResponse, StripSaveResponse
)
from stripbooth.services.booth import BoothService

router = APIRouter(prefix="/session", tags=["session"])


@router.get("/status", response_model=SessionStatusResponse)
async def get_session_status(booth: BoothService = Depends(get_booth_service)):
    return booth.status()


@router.post("/select", response_model=SessionStatusResponse)
async def select_presets(
        request: SessionSelectRequest,
        booth: BoothService = Depends(get_booth_service)
):
    try:
        booth.select(request.layout_id, request.theme_id)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return booth.status()


@router.post("/facing-mode", response_model=SessionStatusResponse)
async def set_facing_mode(
        request: FacingModeRequest,
        booth: BoothService = Depends(get_booth_service)
):
    try:
        booth.set_facing_mode(request.facing_mode, request.device_id)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return booth.status()


@router.post("/start", response_model=SessionStatusResponse)
async def start_capture(booth: BoothService = Depends(get_booth_service)):
    try:
        await booth.start()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CameraUnavailable as e:
        raise HTTPException(status_code=503, detail={"reason": e.reason, "message": str(e)})
    except CaptureError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return booth.status()


@router.post("/cancel", response_model=SessionStatusResponse)
async def cancel_capture(booth: BoothService = Depends(get_booth_service)):
    try:
        await booth.cancel()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return booth.status()


@router.post("/retake", response_model=SessionStatusResponse)
async def retake_photos(booth: BoothService = Depends(get_booth_service)):
    try:
        await booth.retake()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return booth.status()


@router.post("/recompose", response_model=CompositeResponse)
async def recompose_strip(
        request: RecomposeRequest,
        booth: BoothService = Depends(get_booth_service)
):
    try:
        result = await booth.recompose(request.layout_id, request.theme_id)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CompositionError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return CompositeResponse(
        success=True,
        layout_id=result.layout_id,
        theme_id=result.theme_id,
        width=result.width,
        height=result.height,
        filename=booth.download_name()
    )


@router.get("/result")
async def get_result(booth: BoothService = Depends(get_booth_service)):
    result = await booth.wait_for_result()
    if result is None:
        raise HTTPException(status_code=404, detail="No photo strip has been composed")

    filename = booth.download_name()
    return Response(
        content=result.image,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.post("/save", response_model=StripSaveResponse)
async def save_strip(
        request: SaveRequest,
        booth: BoothService = Depends(get_booth_service)
):
    try:
        strip_id = await booth.save(request.user_id)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageFailure as e:
        logger.error(f"Saving strip failed, result kept for retry: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return StripSaveResponse(
        success=True,
        id=strip_id,
        filename=booth.download_name(),
        download_url=f"/api/strips/{strip_id}"
    )
