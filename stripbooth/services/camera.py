import asyncio
import threading
from datetime import datetime, timezone
from typing import Optional, Protocol

import cv2
from loguru import logger

from stripbooth.config import settings
from stripbooth.errors import CameraUnavailable, CaptureError
from stripbooth.models.session import FacingMode, Frame


class Camera(Protocol):
    """Source of still frames for a capture session."""

    @property
    def is_streaming(self) -> bool:
        ...

    async def start_stream(self, facing_mode: FacingMode, device_id: Optional[int] = None) -> None:
        ...

    async def stop_stream(self) -> None:
        ...

    async def grab_frame(self, facing_mode: FacingMode) -> Frame:
        ...


class OpenCVCamera:
    def __init__(self, device_index: int = settings.camera_index):
        self.device_index = device_index
        self.camera = None
        self.facing_mode = FacingMode.user
        self._lock = threading.Lock()

    @property
    def is_streaming(self) -> bool:
        return self.camera is not None and self.camera.isOpened()

    def _open(self, device_index: int):
        camera = cv2.VideoCapture(device_index)
        if not camera.isOpened():
            camera.release()
            raise CameraUnavailable(CameraUnavailable.NOT_FOUND, f"Could not open camera {device_index}")

        camera.set(cv2.CAP_PROP_FRAME_WIDTH, settings.camera_width)
        camera.set(cv2.CAP_PROP_FRAME_HEIGHT, settings.camera_height)
        camera.set(cv2.CAP_PROP_FPS, settings.camera_fps)
        return camera

    async def start_stream(self, facing_mode: FacingMode, device_id: Optional[int] = None) -> None:
        if self.camera is not None:
            await self.stop_stream()
        device_index = self.device_index if device_id is None else device_id
        camera = await asyncio.to_thread(self._open, device_index)
        with self._lock:
            self.camera = camera
            self.facing_mode = facing_mode
        logger.info(f"Camera {device_index} streaming ({facing_mode.value})")

    async def stop_stream(self) -> None:
        with self._lock:
            camera, self.camera = self.camera, None
        if camera is not None:
            await asyncio.to_thread(camera.release)
            logger.info("Camera stream stopped")

    def _read(self):
        with self._lock:
            if self.camera is None:
                raise CaptureError("Camera is not streaming")
            ret, frame = self.camera.read()
        if not ret:
            raise CameraUnavailable(CameraUnavailable.DEVICE_BUSY, "Failed to read a frame from the camera")
        return frame

    async def grab_frame(self, facing_mode: FacingMode) -> Frame:
        if not self.is_streaming:
            raise CaptureError("Camera is not streaming")

        frame = await asyncio.to_thread(self._read)
        if facing_mode == FacingMode.user:
            frame = cv2.flip(frame, 1)

        height, width = frame.shape[:2]
        ok, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, settings.photo_quality])
        if not ok:
            raise CaptureError("Failed to encode captured frame")

        return Frame(
            data=buffer.tobytes(),
            captured_at=datetime.now(timezone.utc),
            width=width,
            height=height,
            facing_mode=facing_mode,
        )

    def preview_frame(self) -> Optional[bytes]:
        if not self.is_streaming:
            return None
        try:
            frame = self._read()
        except CaptureError:
            return None

        if self.facing_mode == FacingMode.user:
            frame = cv2.flip(frame, 1)
        height, width = frame.shape[:2]
        preview_height = int(height * settings.preview_width / width)
        frame = cv2.resize(frame, (settings.preview_width, preview_height))

        _, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, settings.preview_quality])
        return buffer.tobytes()


camera_service = OpenCVCamera()
