import asyncio
import base64
import json

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from loguru import logger

from stripbooth.api.dependencies import get_booth_service, get_camera_service, get_websocket_manager
from stripbooth.config import settings
from stripbooth.services.booth import BoothService
from stripbooth.services.camera import OpenCVCamera
from stripbooth.services.websocket import WebSocketManager

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    camera_service: OpenCVCamera = Depends(get_camera_service),
    booth: BoothService = Depends(get_booth_service),
    websocket_manager: WebSocketManager = Depends(get_websocket_manager)
):
    await websocket_manager.connect(websocket)
    try:
        await websocket.send_text(json.dumps({
            "type": "status",
            "data": booth.status().model_dump(mode="json")
        }))
        while True:
            frame = await asyncio.to_thread(camera_service.preview_frame)
            if frame:
                await websocket.send_text(json.dumps({
                    "type": "preview",
                    "data": base64.b64encode(frame).decode('utf-8')
                }))
            await asyncio.sleep(1 / settings.preview_fps)
    except WebSocketDisconnect:
        websocket_manager.disconnect(websocket)
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
        websocket_manager.disconnect(websocket)
