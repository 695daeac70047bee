import asyncio

import numpy as np

from livehost.audio import decode_pcm16
from livehost.models import AudioQueueItem, Intent, LogEntry
from livehost.playback import PlaybackScheduler

from conftest import FakeSink


def clip(name: str) -> AudioQueueItem:
    entry = LogEntry(id=name, timestamp=0, user="Budi", question="q...", answer=name, intent=Intent.CHAT_RESPONSE)
    return AudioQueueItem(buffer=np.zeros(10, dtype=np.float32), sample_rate=24000, log_entry=entry)


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


def test_decode_pcm16():
    samples = decode_pcm16(b"\x00\x80\xff\x7f\x00\x00\x01")
    assert samples.dtype == np.float32
    assert samples.tolist() == [-1.0, 32767 / 32768, 0.0]


def test_clips_play_in_order_without_overlap():
    async def scenario():
        sink = FakeSink(auto_finish=False)
        logged = []
        playback = PlaybackScheduler(sink, on_log=lambda e: logged.append(e.id))

        for name in ("A", "B", "C"):
            playback.enqueue(clip(name))
        await settle()
        # log entry published when playback starts
        assert logged == ["A"]
        assert playback.is_playing and playback.pending == 2

        for _ in range(3):
            sink.finish()
            await settle()
        return sink, logged, playback

    sink, logged, playback = asyncio.run(scenario())
    assert logged == ["A", "B", "C"]
    assert sink.max_active == 1
    assert not playback.is_playing


def test_clear_drops_queued_clips_but_not_current():
    async def scenario():
        sink = FakeSink(auto_finish=False)
        logged = []
        playback = PlaybackScheduler(sink, on_log=lambda e: logged.append(e.id))
        for name in ("A", "B", "C"):
            playback.enqueue(clip(name))
        await settle()

        assert playback.clear() == 2
        sink.finish()
        await settle()
        return logged, playback

    logged, playback = asyncio.run(scenario())
    assert logged == ["A"]
    assert not playback.is_playing


def test_stop_cuts_current_clip():
    async def scenario():
        sink = FakeSink(auto_finish=False)
        playback = PlaybackScheduler(sink, on_log=lambda e: None)
        playback.enqueue(clip("A"))
        playback.enqueue(clip("B"))
        await settle()
        playback.stop()
        await settle()
        return sink, playback

    sink, playback = asyncio.run(scenario())
    assert sink.stopped == 1
    assert playback.pending == 0
    assert not playback.is_playing


def test_no_output_device_keeps_queue():
    async def scenario():
        sink = FakeSink()
        sink.available = False
        playback = PlaybackScheduler(sink, on_log=lambda e: None)
        playback.enqueue(clip("A"))
        await settle()
        return sink, playback

    sink, playback = asyncio.run(scenario())
    assert sink.played == []
    assert playback.pending == 1


def test_playback_error_moves_on():
    class FailingSink(FakeSink):
        async def play(self, buffer, sample_rate):
            self.played.append(buffer)
            if len(self.played) == 1:
                raise RuntimeError("device lost")

    async def scenario():
        sink = FailingSink()
        logged = []
        playback = PlaybackScheduler(sink, on_log=lambda e: logged.append(e.id))
        playback.enqueue(clip("A"))
        playback.enqueue(clip("B"))
        await settle()
        return logged

    assert asyncio.run(scenario()) == ["A", "B"]


def test_clip_started_after_stop_keeps_playing_flag():
    async def scenario():
        sink = FakeSink(auto_finish=False)
        playback = PlaybackScheduler(sink, on_log=lambda e: None)
        playback.enqueue(clip("A"))
        await settle()

        playback.stop()
        # enqueued before the cancelled clip has unwound
        playback.enqueue(clip("B"))
        await settle()
        playing_during_b = playback.is_playing
        playback.enqueue(clip("C"))
        await settle()
        return sink, playback, playing_during_b

    sink, playback, playing_during_b = asyncio.run(scenario())
    assert playing_during_b
    assert sink.max_active == 1
    assert playback.pending == 1
