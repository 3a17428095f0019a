import asyncio
import re

import pytest

from conftest import FakeCamera
from stripbooth.errors import CompositionError, SessionStateError, StorageFailure
from stripbooth.models.session import SessionState
from stripbooth.services.booth import BoothService
from stripbooth.services.compositor import StripCompositor
from stripbooth.services.storage import InMemoryStripStorage


class CountingCompositor(StripCompositor):
    def __init__(self):
        super().__init__(output_format="jpeg")
        self.calls = []

    async def compose(self, frames, layout, theme, now=None):
        self.calls.append((len(frames), layout.id, theme.id))
        return await super().compose(frames, layout, theme, now)


class FlakyStorage(InMemoryStripStorage):
    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    async def save(self, record):
        if self.failures:
            self.failures -= 1
            raise StorageFailure("disk full")
        return await super().save(record)


@pytest.fixture
def compositor():
    return CountingCompositor()


@pytest.fixture
def make_booth(make_session, compositor):
    def factory(layout_id="horizontal", storage=None, camera=None):
        session = make_session(camera or FakeCamera(), layout_id=layout_id)
        return BoothService(session, compositor, storage or InMemoryStripStorage(), download_prefix="photobooth-strip")

    return factory


async def run_capture(booth):
    await booth.start()
    await booth.session.wait()
    return await booth.wait_for_result()


async def test_completion_composes_exactly_once(make_booth, compositor):
    booth = make_booth()
    messages = []
    booth.subscribe(messages.append)

    result = await run_capture(booth)

    assert result is not None
    assert compositor.calls == [(3, "horizontal", "classic")]
    assert [m["type"] for m in messages].count("composed") == 1
    assert [m["type"] for m in messages].count("complete") == 1
    assert booth.status().has_result


async def test_cancelled_capture_never_composes(make_booth, compositor):
    booth = make_booth(camera=FakeCamera(fail_on_grab=2))

    await run_capture(booth)

    assert booth.session.state == SessionState.cancelled
    assert booth.result is None
    assert compositor.calls == []


async def test_failed_save_keeps_result_for_retry(make_booth):
    storage = FlakyStorage(failures=1)
    booth = make_booth(storage=storage)
    result = await run_capture(booth)

    with pytest.raises(StorageFailure):
        await booth.save(user_id="ana")
    assert booth.result is result

    strip_id = await booth.save(user_id="ana")
    record = await storage.get(strip_id)
    assert record.composite_image == result.image
    assert record.layout_id == "horizontal"
    assert record.user_id == "ana"
    assert len(record.frames) == 3


async def test_save_without_result_is_rejected(make_booth):
    booth = make_booth()
    with pytest.raises(SessionStateError):
        await booth.save()


async def test_recompose_with_new_theme_reuses_frames(make_booth, compositor):
    booth = make_booth()
    first = await run_capture(booth)
    frames = list(booth.session.frames)

    second = await booth.recompose(theme_id="neon")

    assert second.theme_id == "neon"
    assert second.image != first.image
    assert booth.session.frames == frames
    assert booth.session.theme.id == "neon"
    assert len(compositor.calls) == 2


async def test_recompose_rejects_layout_with_other_photo_count(make_booth):
    booth = make_booth(layout_id="horizontal")
    await run_capture(booth)

    with pytest.raises(CompositionError):
        await booth.recompose(layout_id="classic")
    assert booth.session.layout.id == "horizontal"
    assert booth.session.state == SessionState.complete


async def test_recompose_to_layout_with_same_photo_count(make_booth):
    booth = make_booth(layout_id="vintage")
    await run_capture(booth)

    result = await booth.recompose(layout_id="horizontal")

    assert (result.width, result.height) == (900, 400)


async def test_recompose_requires_completed_capture(make_booth):
    booth = make_booth()
    with pytest.raises(SessionStateError):
        await booth.recompose(theme_id="neon")


async def test_retake_clears_result(make_booth):
    booth = make_booth()
    await run_capture(booth)

    await booth.retake()

    assert booth.result is None
    assert booth.session.frames == []
    assert not booth.status().has_result


async def test_download_name_pattern(make_booth):
    booth = make_booth()
    await run_capture(booth)

    assert re.fullmatch(r"photobooth-strip-\d+\.jpg", booth.download_name())


async def test_close_releases_camera(make_booth):
    camera = FakeCamera()
    booth = make_booth(camera=camera)
    await run_capture(booth)

    await booth.close()

    assert not camera.is_streaming
    assert booth.result is None


async def test_select_after_completion_drops_composite_for_old_presets(make_booth, compositor):
    booth = make_booth(layout_id="horizontal")
    await run_capture(booth)

    booth.select(layout_id="vintage", theme_id="neon")

    status = booth.status()
    assert (status.layout_id, status.theme_id) == ("vintage", "neon")
    assert status.state == SessionState.complete
    assert not status.has_result
    assert booth.result is None
    with pytest.raises(SessionStateError):
        await booth.save()

    result = await booth.recompose()
    assert (result.layout_id, result.theme_id) == ("vintage", "neon")
    strip_id = await booth.save()
    record = await booth.storage.get(strip_id)
    assert (record.layout_id, record.theme_id) == ("vintage", "neon")
    assert compositor.calls[-1] == (3, "vintage", "neon")


async def test_select_with_unchanged_presets_keeps_composite(make_booth):
    booth = make_booth(layout_id="horizontal")
    result = await run_capture(booth)

    booth.select(layout_id="horizontal", theme_id="classic")

    assert booth.result is result
    assert booth.status().has_result


class GatedCompositor(StripCompositor):
    def __init__(self):
        super().__init__(output_format="jpeg")
        self.gate = asyncio.Event()

    async def compose(self, frames, layout, theme, now=None):
        await self.gate.wait()
        return await super().compose(frames, layout, theme, now)


async def test_composite_finishing_after_preset_change_is_discarded(make_session):
    compositor = GatedCompositor()
    booth = BoothService(make_session(FakeCamera(), layout_id="horizontal"), compositor, InMemoryStripStorage())
    await booth.start()
    await booth.session.wait()
    await asyncio.sleep(0)

    booth.select(theme_id="wedding")
    compositor.gate.set()
    result = await booth.wait_for_result()

    assert result is None
    assert booth.session.theme.id == "wedding"
