"""
Speaker output with a sample-accurate playback clock.

A single sounddevice OutputStream renders every scheduled buffer at its
absolute frame position, so chunks placed back-to-back on the clock play
without gaps or overlap regardless of when they were scheduled.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from live_orb.session.capture import find_usb_audio_device
from live_orb.session.playback import PlaybackHandle

logger = logging.getLogger(__name__)


@dataclass
class _Voice:
    handle: PlaybackHandle
    start_frame: int

    @property
    def end_frame(self) -> int:
        return self.start_frame + len(self.handle.samples)


class SoundDeviceOutput:
    """
    Mixer-backed output device.

    ``now()`` is the number of frames handed to the device, in seconds.
    Completion callbacks are delivered on the event loop that opened the
    device.
    """

    def __init__(
        self,
        sample_rate: int = 24000,
        device: Optional[int] = None,
        blocksize: int = 480,  # 20ms at 24kHz
    ):
        self.sample_rate = sample_rate
        self.blocksize = blocksize
        self._device = device

        self._voices: list[_Voice] = []
        self._frames_rendered = 0
        self._lock = threading.Lock()
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self) -> None:
        """Open and start the output stream."""
        if self._stream is not None:
            return

        import sounddevice as sd

        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        device = self._device
        if device is None:
            device = find_usb_audio_device(kind="output")
            if device is not None:
                logger.info("Auto-detected USB output device: [%d] %s",
                            device, sd.query_devices(device)["name"])

        self._stream = sd.OutputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="float32",
            blocksize=self.blocksize,
            device=device,
            callback=self._audio_callback,
        )
        self._stream.start()
        logger.info("Audio output open at %d Hz", self.sample_rate)

    def close(self) -> None:
        """Stop the stream and drop anything still queued."""
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()
        with self._lock:
            for voice in self._voices:
                voice.handle.stop()
            self._voices.clear()

    def now(self) -> float:
        with self._lock:
            return self._frames_rendered / self.sample_rate

    def play_at(
        self,
        samples: np.ndarray,
        start_time: float,
        on_finished: Callable[[PlaybackHandle], None],
    ) -> PlaybackHandle:
        handle = PlaybackHandle(
            samples.astype(np.float32, copy=False),
            start_time,
            self.sample_rate,
            on_finished,
        )
        with self._lock:
            # A block may have been rendered since the caller read now()
            start_frame = max(int(round(start_time * self.sample_rate)), self._frames_rendered)
            self._voices.append(_Voice(handle, start_frame))
        return handle

    def render(self, frames: int) -> np.ndarray:
        """Mix the next ``frames`` frames and advance the clock."""
        out = np.zeros(frames, dtype=np.float32)
        finished = []

        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames
            remaining = []

            for voice in self._voices:
                if voice.handle.stopped:
                    continue
                if voice.start_frame >= block_end:
                    remaining.append(voice)
                    continue

                lo = max(voice.start_frame, block_start)
                hi = min(voice.end_frame, block_end)
                if hi > lo:
                    src = voice.handle.samples[lo - voice.start_frame:hi - voice.start_frame]
                    out[lo - block_start:hi - block_start] += src

                if voice.end_frame <= block_end:
                    finished.append(voice.handle)
                else:
                    remaining.append(voice)

            self._voices = remaining
            self._frames_rendered = block_end

        for handle in finished:
            self._dispatch(handle.finish)

        np.clip(out, -1.0, 1.0, out=out)
        return out

    def _dispatch(self, callback: Callable[[], None]) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(callback)
        else:
            callback()

    def _audio_callback(self, outdata, frames, time_info, status):
        """Internal callback from sounddevice."""
        if status:
            logger.warning("Audio output status: %s", status)
        outdata[:, 0] = self.render(frames)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.close()
