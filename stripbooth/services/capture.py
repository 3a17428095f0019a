import asyncio
import inspect
import random
from typing import Any, Callable, List, Optional, Tuple

from loguru import logger

from stripbooth.config import settings
from stripbooth.errors import CaptureError, SessionStateError
from stripbooth.models.layout import Layout, Theme
from stripbooth.models.session import (
    ACTIVE_STATES, FacingMode, Frame, SessionEvent, SessionState, SessionStatus
)
from stripbooth.services.camera import Camera
from stripbooth.services.catalog import Catalog, layout_catalog, theme_catalog
from stripbooth.services.messages import countdown_message, pick_message

Listener = Callable[[SessionEvent], Any]


class CaptureSession:
    """Countdown-then-snapshot loop that collects ``layout.photo_count`` frames.

    Every run is tagged with a generation number. ``cancel()`` bumps the
    generation before tearing the run task down, so a camera read that
    resolves after cancellation is dropped instead of appended.
    """

    def __init__(
            self,
            camera: Camera,
            layout_id: Optional[str] = None,
            theme_id: Optional[str] = None,
            layouts: Catalog = layout_catalog,
            themes: Catalog = theme_catalog,
            countdown_ticks: int = settings.countdown_ticks,
            tick_interval: float = settings.tick_interval,
            inter_shot_pause: float = settings.inter_shot_pause,
            flash_duration: float = settings.flash_duration,
            rng: Optional[random.Random] = None
    ):
        if countdown_ticks < 0:
            raise ValueError("countdown_ticks must not be negative")
        self.camera = camera
        self.layouts = layouts
        self.themes = themes
        self.layout: Layout = layouts.resolve(layout_id or settings.default_layout)
        self.theme: Theme = themes.resolve(theme_id or settings.default_theme)
        self.countdown_ticks = countdown_ticks
        self.tick_interval = tick_interval
        self.inter_shot_pause = inter_shot_pause
        self.flash_duration = flash_duration
        self.rng = rng or random.Random()

        self.state = SessionState.idle
        self.frames: List[Frame] = []
        self.facing_mode = FacingMode.user
        self.device_id: Optional[int] = None
        self.instruction: Optional[str] = None
        self.countdown: Optional[int] = None
        self.photo_index = 0
        self.error: Optional[str] = None

        self._listeners: List[Listener] = []
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._stream_source: Optional[Tuple[FacingMode, Optional[int]]] = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def is_complete(self) -> bool:
        return self.state == SessionState.complete

    def status(self) -> SessionStatus:
        return SessionStatus(
            state=self.state,
            layout_id=self.layout.id,
            theme_id=self.theme.id,
            facing_mode=self.facing_mode,
            device_id=self.device_id,
            countdown=self.countdown,
            photo_index=self.photo_index,
            frame_count=len(self.frames),
            photo_count=self.layout.photo_count,
            instruction=self.instruction,
            error=self.error
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, event_type: str, **fields):
        event = SessionEvent(
            type=event_type,
            state=self.state,
            countdown=self.countdown,
            photo_index=self.photo_index,
            frame_count=len(self.frames),
            photo_count=self.layout.photo_count,
            **fields
        )
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Session listener failed on {event_type!r} event")

    def select(self, layout_id: Optional[str] = None, theme_id: Optional[str] = None):
        if self.is_active:
            raise SessionStateError("Cannot change layout or theme while capturing")
        if layout_id is not None:
            self.layout = self.layouts.resolve(layout_id)
        if theme_id is not None:
            self.theme = self.themes.resolve(theme_id)
        if self.is_complete and len(self.frames) != self.layout.photo_count:
            logger.info(f"Layout {self.layout.id!r} needs {self.layout.photo_count} photos, discarding captured frames")
            self.frames = []
            self.photo_index = 0
            self.state = SessionState.idle

    def set_facing_mode(self, facing_mode: FacingMode, device_id: Optional[int] = None):
        """Choose the camera for the next run; ``device_id`` pins a specific device."""
        if self.is_active:
            raise SessionStateError("Cannot switch camera while capturing")
        self.facing_mode = FacingMode(facing_mode)
        self.device_id = device_id
        logger.info(f"Facing mode set to {self.facing_mode.value} (device {device_id}), applied on next start")

    async def open(self):
        await self._ensure_stream()

    async def close(self):
        self._generation += 1
        await self._stop_task()
        if self.is_active:
            self.frames = []
            self.countdown = None
            self.instruction = None
            self.photo_index = 0
            self.state = SessionState.idle
        await self._release_stream()

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _ensure_stream(self):
        source = (self.facing_mode, self.device_id)
        if self.camera.is_streaming and self._stream_source == source:
            return
        await self.camera.start_stream(self.facing_mode, self.device_id)
        self._stream_source = source

    async def _release_stream(self):
        self._stream_source = None
        try:
            await self.camera.stop_stream()
        except CaptureError as e:
            logger.warning(f"Camera did not stop cleanly: {e}")

    async def _stop_task(self):
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def start(self):
        if self.is_active:
            raise SessionStateError(f"Session is already running ({self.state.value})")

        await self._stop_task()
        self._generation += 1
        generation = self._generation
        self.frames = []
        self.photo_index = 0
        self.error = None
        self.instruction = None
        self.countdown = self.countdown_ticks
        self.state = SessionState.countdown

        try:
            await self._ensure_stream()
        except CaptureError as e:
            if generation == self._generation:
                await self._fail(e)
            raise

        if generation != self._generation:
            return
        logger.info(f"Capture started: {self.layout.photo_count} photos for layout {self.layout.id!r}")
        await self._emit("state")
        if generation == self._generation:
            self._task = asyncio.create_task(self._run(generation))

    async def cancel(self):
        if self.state == SessionState.idle:
            raise SessionStateError("No capture to cancel")

        self._generation += 1
        await self._stop_task()
        self.frames = []
        self.countdown = None
        self.instruction = None
        self.photo_index = 0
        self.error = None
        self.state = SessionState.idle
        logger.info("Capture session reset")
        await self._emit("state")

    async def retake(self):
        await self.cancel()

    async def wait(self):
        """Wait until the current capture run, if any, has finished."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    async def _fail(self, error: CaptureError):
        self.frames = []
        self.countdown = None
        self.instruction = None
        self.state = SessionState.cancelled
        self.error = str(error)
        logger.error(f"Capture aborted: {error}")
        await self._release_stream()
        await self._emit("error", error=self.error)

    async def _run(self, generation: int):
        try:
            while True:
                await self._count_down()

                self.state = SessionState.capturing
                await self._emit("state")
                frame = await self.camera.grab_frame(self.facing_mode)
                if generation != self._generation:
                    logger.debug("Dropping frame captured after cancellation")
                    return

                self.frames.append(frame)
                self.countdown = None
                self.instruction = None
                logger.info(f"Captured photo {len(self.frames)}/{self.layout.photo_count}")
                await self._emit("flash", duration=self.flash_duration)
                await self._emit("frame")

                if len(self.frames) >= self.layout.photo_count:
                    self.state = SessionState.complete
                    await self._emit("complete", message=pick_message("completion", self.rng))
                    return

                await asyncio.sleep(self.inter_shot_pause)
                self.photo_index += 1
                self.state = SessionState.countdown
        except CaptureError as e:
            if generation == self._generation:
                await self._fail(e)
        except Exception as e:
            logger.exception("Unexpected error during capture")
            if generation == self._generation:
                await self._fail(CaptureError(f"Unexpected capture failure: {e}"))

    async def _count_down(self):
        value = self.countdown_ticks
        self.countdown = value
        self.instruction = pick_message("instructions", self.rng)
        await self._emit("countdown", message=countdown_message(value), instruction=self.instruction)
        while value > 0:
            await asyncio.sleep(self.tick_interval)
            value -= 1
            self.countdown = value
            await self._emit("countdown", message=countdown_message(value))
