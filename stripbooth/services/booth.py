import asyncio
import base64
import inspect
from typing import Any, Callable, List, Optional

from loguru import logger

from stripbooth.config import settings
from stripbooth.errors import CompositionError, SessionStateError
from stripbooth.models.session import FacingMode, SessionEvent, SessionState, SessionStatusResponse
from stripbooth.models.strip import CompositeResult, StripRecord, download_filename
from stripbooth.services.capture import CaptureSession
from stripbooth.services.compositor import StripCompositor
from stripbooth.services.storage import StripStorage

BoothListener = Callable[[dict], Any]


class BoothService:
    """Connects a capture session to the compositor and the strip storage.

    The strip is composed once, when the session reports ``complete``. The
    latest result is kept until the next start or retake, so a failed save
    can be retried without capturing again.
    """

    def __init__(self, session: CaptureSession, compositor: StripCompositor, storage: StripStorage,
                 download_prefix: str = settings.download_prefix):
        self.session = session
        self.compositor = compositor
        self.storage = storage
        self.download_prefix = download_prefix
        self.result: Optional[CompositeResult] = None
        self.compose_error: Optional[str] = None
        self._listeners: List[BoothListener] = []
        self._compose_task: Optional[asyncio.Task] = None
        session.subscribe(self._on_session_event)

    def subscribe(self, listener: BoothListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _broadcast(self, message: dict):
        for listener in list(self._listeners):
            try:
                result = listener(message)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Booth listener failed on {message.get('type')!r} message")

    async def _on_session_event(self, event: SessionEvent):
        if event.type == "complete":
            self._compose_task = asyncio.create_task(self._compose_captured())
        await self._broadcast(event.model_dump(mode="json"))

    def _clear_result(self):
        if self._compose_task is not None and not self._compose_task.done():
            self._compose_task.cancel()
        self._compose_task = None
        self.result = None
        self.compose_error = None

    async def _compose_captured(self):
        frames = self.session.frames
        try:
            result = await self.compositor.compose(frames, self.session.layout, self.session.theme)
        except CompositionError as e:
            logger.error(f"Strip composition failed: {e}")
            self.compose_error = str(e)
            await self._broadcast({"type": "compose_error", "error": str(e)})
            return

        if self.session.frames is not frames or not self.session.is_complete:
            logger.debug("Discarding strip composed for frames that were reset")
            return
        if (result.layout_id, result.theme_id) != (self.session.layout.id, self.session.theme.id):
            logger.debug("Discarding strip composed for presets that were changed")
            return
        self.result = result
        self.compose_error = None
        await self._broadcast(self._composed_message(result))

    def _composed_message(self, result: CompositeResult) -> dict:
        return {
            "type": "composed",
            "layout_id": result.layout_id,
            "theme_id": result.theme_id,
            "width": result.width,
            "height": result.height,
            "filename": self.download_name(),
            "strip": base64.b64encode(result.image).decode('utf-8'),
        }

    async def wait_for_result(self) -> Optional[CompositeResult]:
        task = self._compose_task
        if task is not None:
            await asyncio.wait({task})
        return self.result

    def status(self) -> SessionStatusResponse:
        status = self.session.status()
        return SessionStatusResponse(
            **status.model_dump(),
            has_result=self.result is not None,
            message=self.compose_error
        )

    def select(self, layout_id: Optional[str] = None, theme_id: Optional[str] = None):
        """Change presets; a composed strip for other presets is dropped until ``recompose``."""
        self.session.select(layout_id, theme_id)
        if self.session.state != SessionState.complete:
            self._clear_result()
        elif self.result is not None and (self.result.layout_id, self.result.theme_id) != (
                self.session.layout.id, self.session.theme.id):
            logger.info("Presets changed after composition, strip must be recomposed")
            self._clear_result()

    def set_facing_mode(self, facing_mode: FacingMode, device_id: Optional[int] = None):
        self.session.set_facing_mode(facing_mode, device_id)

    async def start(self):
        self._clear_result()
        await self.session.start()

    async def cancel(self):
        self._clear_result()
        await self.session.cancel()

    async def retake(self):
        self._clear_result()
        await self.session.retake()

    async def recompose(self, layout_id: Optional[str] = None, theme_id: Optional[str] = None) -> CompositeResult:
        """Render the captured frames again, optionally with another layout or theme."""
        if not self.session.is_complete:
            raise SessionStateError("No completed capture to compose")

        layout = self.session.layouts.resolve(layout_id) if layout_id is not None else self.session.layout
        if layout.photo_count != len(self.session.frames):
            raise CompositionError(
                f"Layout {layout.id!r} needs {layout.photo_count} photos, {len(self.session.frames)} were captured"
            )

        if self._compose_task is not None and not self._compose_task.done():
            self._compose_task.cancel()
        self.session.select(layout_id, theme_id)
        result = await self.compositor.compose(self.session.frames, self.session.layout, self.session.theme)
        self.result = result
        self.compose_error = None
        await self._broadcast(self._composed_message(result))
        return result

    async def save(self, user_id: Optional[str] = None) -> str:
        if self.result is None:
            raise SessionStateError("There is no composed photo strip to save")

        record = StripRecord(
            frames=[base64.b64encode(frame.data).decode('utf-8') for frame in self.session.frames],
            layout_id=self.result.layout_id,
            theme_id=self.result.theme_id,
            composite_image=self.result.image,
            image_format=self.result.format,
            user_id=user_id
        )
        strip_id = await self.storage.save(record)
        await self._broadcast({"type": "saved", "id": strip_id})
        return strip_id

    def download_name(self) -> str:
        if self.result is None:
            raise SessionStateError("There is no composed photo strip")
        return download_filename(self.download_prefix, self.result.generated_at, self.result.format)

    async def close(self):
        self._clear_result()
        await self.session.close()
