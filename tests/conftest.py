import asyncio
import io
import os
import random
from datetime import datetime, timezone

os.environ.setdefault("STRIPBOOTH_STORAGE_BACKEND", "memory")

import pytest
from PIL import Image

from stripbooth.errors import CameraUnavailable, CaptureError
from stripbooth.models.session import FacingMode, Frame
from stripbooth.services.capture import CaptureSession

FRAME_COLORS = [(220, 30, 30), (30, 200, 40), (40, 60, 220), (230, 210, 20)]
FIXED_NOW = datetime(2026, 10, 17, 12, 0, 0)


def make_jpeg(color, size=(64, 48)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()


def make_frame(index: int = 0, size=(64, 48), facing_mode=FacingMode.user) -> Frame:
    return Frame(
        data=make_jpeg(FRAME_COLORS[index % len(FRAME_COLORS)], size),
        captured_at=datetime(2026, 10, 17, 12, 0, index, tzinfo=timezone.utc),
        width=size[0],
        height=size[1],
        facing_mode=facing_mode
    )


class FakeCamera:
    def __init__(self, fail_on_start=None, fail_on_grab=None, grab_gate=None):
        self.fail_on_start = fail_on_start
        self.fail_on_grab = fail_on_grab
        self.grab_gate = grab_gate
        self.started = []
        self.devices = []
        self.stopped = 0
        self.grabs = 0
        self._streaming = False

    @property
    def is_streaming(self):
        return self._streaming

    async def start_stream(self, facing_mode, device_id=None):
        self.started.append(facing_mode)
        self.devices.append(device_id)
        if self.fail_on_start:
            raise CameraUnavailable(self.fail_on_start)
        self._streaming = True

    async def stop_stream(self):
        self.stopped += 1
        self._streaming = False

    async def grab_frame(self, facing_mode):
        if not self._streaming:
            raise CaptureError("Camera is not streaming")
        self.grabs += 1
        if self.fail_on_grab == self.grabs:
            raise CameraUnavailable(CameraUnavailable.DEVICE_BUSY, "stream dropped")
        if self.grab_gate is not None:
            await self.grab_gate.wait()
        return make_frame(self.grabs - 1, facing_mode=facing_mode)

    def preview_frame(self):
        return make_jpeg((10, 10, 10), (32, 24)) if self._streaming else None


async def wait_until(predicate, attempts: int = 500):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition was not reached")


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def make_session():
    def factory(camera, layout_id="classic", theme_id="classic", tick_interval=0.0, **kwargs):
        return CaptureSession(
            camera,
            layout_id=layout_id,
            theme_id=theme_id,
            countdown_ticks=kwargs.pop("countdown_ticks", 3),
            tick_interval=tick_interval,
            inter_shot_pause=kwargs.pop("inter_shot_pause", 0.0),
            flash_duration=0.3,
            rng=random.Random(7),
            **kwargs
        )

    return factory


@pytest.fixture
def events():
    return []
