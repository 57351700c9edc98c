"""
Decode/playback scheduling for inbound assistant audio.

Chunks are decoded concurrently but scheduled back-to-back on the output
clock, in arrival order, through a single playback cursor. An interruption
advances the epoch, so every decode still in flight is discarded when it
finishes, and drains whatever is already queued on the device.
"""

import asyncio
import logging
import threading
from typing import Awaitable, Callable, Optional, Protocol

import numpy as np

from live_orb.core.audio import DecodedAudio, decode_audio_chunk
from live_orb.core.epoch import EpochToken, InterruptionEpoch
from live_orb.session.state import SessionSignals

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes | str, Optional[int]], Awaitable[DecodedAudio]]


class PlaybackHandle:
    """A buffer scheduled on the output clock."""

    def __init__(
        self,
        samples: np.ndarray,
        start_time: float,
        sample_rate: int,
        on_finished: Optional[Callable[["PlaybackHandle"], None]] = None,
    ):
        self.samples = samples
        self.start_time = start_time
        self.sample_rate = sample_rate
        self.stopped = False
        self.finished = False
        self._on_finished = on_finished

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def stop(self) -> None:
        """Silence the buffer; a stopped handle never reports completion."""
        self.stopped = True

    def finish(self) -> None:
        """Mark playback complete and run the completion callback once."""
        if self.stopped or self.finished:
            return
        self.finished = True
        if self._on_finished is not None:
            self._on_finished(self)

    def __repr__(self) -> str:
        return f"PlaybackHandle(start={self.start_time:.3f}, duration={self.duration:.3f})"


class OutputClock(Protocol):
    """Output device seen by the scheduler."""

    sample_rate: int

    def open(self) -> None: ...

    def close(self) -> None: ...

    def now(self) -> float:
        """Current output time in seconds."""
        ...

    def play_at(
        self,
        samples: np.ndarray,
        start_time: float,
        on_finished: Callable[[PlaybackHandle], None],
    ) -> PlaybackHandle: ...


class PlaybackScheduler:
    """
    Gapless scheduler for decoded audio chunks.

    All mutations of the pending set and the cursor happen under one lock,
    and the epoch check for a chunk happens under the same lock as the
    interruption drain.
    """

    def __init__(
        self,
        output: OutputClock,
        epoch: InterruptionEpoch,
        signals: SessionSignals,
        decoder: Optional[Decoder] = None,
    ):
        self.output = output
        self.epoch = epoch
        self.signals = signals
        self._decoder = decoder or self._decode_in_thread

        self._lock = threading.RLock()
        self._pending: set[PlaybackHandle] = set()
        self._next_start = 0.0

        # Arrival order: each chunk waits for its predecessor to settle
        self._tail: Optional[asyncio.Future] = None
        self._tasks: set[asyncio.Task] = set()

        self.scheduled_chunks = 0
        self.dropped_chunks = 0

    async def _decode_in_thread(self, payload: bytes | str, sample_rate: Optional[int]) -> DecodedAudio:
        return await asyncio.to_thread(
            decode_audio_chunk, payload, sample_rate, self.output.sample_rate
        )

    @property
    def next_start_time(self) -> float:
        with self._lock:
            return self._next_start

    @property
    def pending(self) -> frozenset[PlaybackHandle]:
        with self._lock:
            return frozenset(self._pending)

    @property
    def in_flight(self) -> int:
        """Number of chunks still decoding or waiting for their turn."""
        return len(self._tasks)

    def submit(self, payload: bytes | str, sample_rate: Optional[int] = None) -> asyncio.Task:
        """
        Accept one encoded chunk for decoding and playback.

        The epoch and the arrival slot are taken synchronously, so a chunk
        submitted before an interruption can never be scheduled after it.

        Raises:
            ValueError: If the payload is empty
        """
        if not payload:
            raise ValueError("Audio payload must be non-empty")

        loop = asyncio.get_running_loop()
        token = self.epoch.capture()
        previous, settled = self._tail, loop.create_future()
        self._tail = settled

        task = loop.create_task(self._decode_and_schedule(payload, sample_rate, token, previous, settled))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _decode_and_schedule(
        self,
        payload: bytes | str,
        sample_rate: Optional[int],
        token: EpochToken,
        previous: Optional[asyncio.Future],
        settled: asyncio.Future,
    ) -> Optional[PlaybackHandle]:
        try:
            audio = None
            try:
                audio = await self._decoder(payload, sample_rate)
            except Exception as e:
                self.dropped_chunks += 1
                logger.warning("Dropping undecodable audio chunk: %s", e)

            if previous is not None:
                await asyncio.shield(previous)

            if audio is None:
                return None
            return self._schedule(audio, token)
        finally:
            if not settled.done():
                settled.set_result(None)
            if self._tail is settled:
                self._tail = None

    def _schedule(self, audio: DecodedAudio, token: EpochToken) -> Optional[PlaybackHandle]:
        with self._lock:
            if not self.epoch.is_current(token):
                self.dropped_chunks += 1
                logger.debug(
                    "Discarding stale audio chunk (epoch %d, current %d)",
                    token.value, self.epoch.current(),
                )
                return None

            if len(audio.samples) == 0:
                return None

            self._next_start = max(self._next_start, self.output.now())
            handle = self.output.play_at(audio.samples, self._next_start, self._on_finished)
            self._next_start += audio.duration
            self._pending.add(handle)
            self.scheduled_chunks += 1

            self.signals.update(assistant_speaking=True, searching=False)
            return handle

    def _on_finished(self, handle: PlaybackHandle) -> None:
        with self._lock:
            if handle not in self._pending:
                return
            self._pending.discard(handle)
            if not self._pending:
                self.signals.update(assistant_speaking=False)

    def interrupt(self, before_drain: Optional[Callable[[], None]] = None) -> int:
        """
        Invalidate in-flight decodes and silence queued playback.

        Sequence: advance the epoch, run ``before_drain`` (turn archive),
        stop and clear every pending handle, reset the cursor to now.

        Returns:
            The new epoch value
        """
        with self._lock:
            new_epoch = self.epoch.advance()
            if before_drain is not None:
                before_drain()

            handles = list(self._pending)
            self._pending.clear()
            for handle in handles:
                handle.stop()

            # New speech starts a fresh arrival chain
            self._tail = None
            self._next_start = self.output.now()
            self.signals.update(assistant_speaking=False)

        logger.debug("Interrupted playback: epoch=%d, stopped=%d", new_epoch, len(handles))
        return new_epoch

    async def wait_idle(self) -> None:
        """Wait until every submitted chunk has been scheduled or dropped."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_pending(self) -> None:
        """Cancel decodes still in flight (teardown)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tail = None
