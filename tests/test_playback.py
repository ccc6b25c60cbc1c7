"""
Tests for ordered, non-overlapping speech playback.
"""
import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import pytest_asyncio

from voice_pipeline.models import PlaybackResult
from voice_pipeline.playback import SpeechPlaybackQueue


@pytest_asyncio.fixture
async def queue(playback_engine):
    q = SpeechPlaybackQueue(playback_engine)
    yield q
    await q.aclose()


@pytest.mark.asyncio
async def test_single_utterance(queue, playback_engine):
    """Test one utterance is spoken and resolves as spoken."""
    assert await queue.enqueue("hello") is PlaybackResult.SPOKEN
    assert playback_engine.spoken == ["hello"]
    assert queue.speaking is False


@pytest.mark.asyncio
async def test_rapid_enqueues_play_in_order_without_overlap(queue, playback_engine):
    """Test rapid enqueues play in order and never overlap."""
    playback_engine.delay = 0.05

    first = queue.enqueue("first")
    second = queue.enqueue("second")
    assert queue.speaking is True

    assert await asyncio.gather(first, second) == [PlaybackResult.SPOKEN, PlaybackResult.SPOKEN]
    assert playback_engine.spoken == ["first", "second"]
    assert playback_engine.overlapped is False


@pytest.mark.asyncio
async def test_second_enqueue_does_not_interrupt(queue, playback_engine):
    """Test a second enqueue waits for the current utterance."""
    playback_engine.release = threading.Event()

    first = queue.enqueue("first")
    await asyncio.sleep(0.02)
    second = queue.enqueue("second")
    await asyncio.sleep(0.02)

    assert playback_engine.started == ["first"]
    assert not first.done()

    playback_engine.release.set()
    await asyncio.gather(first, second)
    assert playback_engine.spoken == ["first", "second"]


@pytest.mark.asyncio
async def test_clear_drops_pending_only(queue, playback_engine):
    """Test clear() drops pending items but not the one playing."""
    playback_engine.release = threading.Event()

    current = queue.enqueue("current")
    await asyncio.sleep(0.02)
    pending = [queue.enqueue("a"), queue.enqueue("b")]
    assert queue.pending == 2

    assert queue.clear() == 2
    assert queue.pending == 0
    assert [await p for p in pending] == [PlaybackResult.DROPPED, PlaybackResult.DROPPED]
    assert queue.speaking is True

    playback_engine.release.set()
    assert await current is PlaybackResult.SPOKEN
    assert playback_engine.spoken == ["current"]


@pytest.mark.asyncio
async def test_engine_error_is_logged_and_queue_advances(queue, playback_engine):
    """Test an engine error resolves as failed and the queue moves on."""
    playback_engine.fail_on = {"bad"}

    results = await asyncio.gather(queue.enqueue("bad"), queue.enqueue("good"))

    assert results == [PlaybackResult.FAILED, PlaybackResult.SPOKEN]
    assert playback_engine.spoken == ["good"]


@pytest.mark.asyncio
async def test_drain_waits_for_everything(queue, playback_engine):
    """Test drain() waits for every queued utterance."""
    playback_engine.delay = 0.02
    queue.enqueue("one")
    queue.enqueue("two")

    await queue.drain()

    assert playback_engine.spoken == ["one", "two"]
    assert queue.speaking is False


@pytest.mark.asyncio
async def test_drain_when_empty_returns(queue):
    """Test drain() returns at once on an empty queue."""
    await asyncio.wait_for(queue.drain(), timeout=1)


@pytest.mark.asyncio
async def test_injected_executor_is_not_shut_down(playback_engine):
    """Test aclose() leaves an injected executor running."""
    executor = ThreadPoolExecutor(max_workers=1)
    q = SpeechPlaybackQueue(playback_engine, executor=executor)
    await q.enqueue("hello")
    await q.aclose()

    # Still usable by its owner
    assert executor.submit(lambda: 42).result(timeout=1) == 42
    executor.shutdown()


@pytest.mark.asyncio
async def test_aclose_resolves_pending(playback_engine):
    """Test aclose() resolves pending items as dropped."""
    playback_engine.release = threading.Event()
    q = SpeechPlaybackQueue(playback_engine)
    q.enqueue("current")
    await asyncio.sleep(0.02)
    pending = q.enqueue("later")

    await q.aclose()
    playback_engine.release.set()

    assert await pending is PlaybackResult.DROPPED
