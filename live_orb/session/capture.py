"""
Microphone capture for the live session.

Pulls fixed-size frames from the input device and hands them to a callback
as wire-format PCM (16-bit little-endian, mono).
"""

import logging
from typing import Callable, Optional

import numpy as np

from live_orb.core.audio import float_to_pcm16

logger = logging.getLogger(__name__)

# Virtual/internal devices to skip during auto-detection
_SKIP = {"HDMI", "HDA", "APE", "DisplayPort"}


class MicrophoneUnavailableError(RuntimeError):
    """No usable microphone; raised before any session is started."""


def find_usb_audio_device(kind: str = "input") -> Optional[int]:
    """Auto-detect a USB audio device, preferring devices with both input and output.

    Args:
        kind: "input" or "output"

    Returns:
        Device index, or None if no USB device found.
    """
    import sounddevice as sd

    need_input = kind == "input"
    need_output = kind == "output"

    best = None
    best_score = 0

    for i, dev in enumerate(sd.query_devices()):
        name = dev["name"]
        has_in = dev["max_input_channels"] > 0
        has_out = dev["max_output_channels"] > 0

        if any(skip in name for skip in _SKIP):
            continue
        if need_input and not has_in:
            continue
        if need_output and not has_out:
            continue
        if "USB" not in name:
            continue

        # Prefer speakerphones (in+out on one device)
        score = 1 + (2 if has_in and has_out else 0)
        if score > best_score:
            best = i
            best_score = score

    return best


def ensure_microphone(device: Optional[int] = None) -> dict:
    """
    Check that a usable input device exists.

    Args:
        device: Input device index (None for auto-detect / system default)

    Returns:
        The sounddevice device info dict

    Raises:
        MicrophoneUnavailableError: If no microphone can be opened
    """
    try:
        import sounddevice as sd
    except OSError as e:  # PortAudio library missing
        raise MicrophoneUnavailableError(f"Audio system unavailable: {e}") from e

    try:
        if device is None:
            info = sd.query_devices(kind="input")
        else:
            info = sd.query_devices(device)
    except (ValueError, sd.PortAudioError) as e:
        raise MicrophoneUnavailableError(f"No microphone found: {e}") from e

    if info["max_input_channels"] < 1:
        raise MicrophoneUnavailableError(f"Device '{info['name']}' has no input channels")

    return info


class MicrophoneCapture:
    """
    Continuous microphone input with callback.

    Runs on the PortAudio thread; the callback receives one PCM frame per
    block and must not block.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        frame_size: int = 2048,
        device: Optional[int] = None,
    ):
        """
        Initialize audio input.

        Args:
            sample_rate: Capture rate, also the wire rate
            frame_size: Samples per frame
            device: Input device index (None for default)
        """
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.device = device

        self._stream = None
        self._callback: Optional[Callable[[bytes], None]] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, callback: Callable[[bytes], None]) -> None:
        """
        Start audio capture.

        Args:
            callback: Function called with each PCM frame

        Raises:
            MicrophoneUnavailableError: If the input stream cannot be opened
        """
        if self._running:
            return

        import sounddevice as sd

        device = self.device
        if device is None:
            device = find_usb_audio_device(kind="input")
            if device is not None:
                logger.info("Auto-detected USB input device: [%d] %s",
                            device, sd.query_devices(device)["name"])

        self._callback = callback
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self.frame_size,
                device=device,
                callback=self._audio_callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            raise MicrophoneUnavailableError(f"Could not open microphone: {e}") from e

        self._running = True
        logger.info("Microphone capture started (%d Hz, %d-sample frames)", self.sample_rate, self.frame_size)

    def _audio_callback(self, indata, frames, time_info, status):
        """Internal callback from sounddevice."""
        if status:
            logger.warning("Audio input status: %s", status)

        if self._callback and self._running:
            audio = indata[:, 0] if indata.ndim > 1 else indata
            self._callback(float_to_pcm16(np.asarray(audio)))

    def stop(self) -> None:
        """Stop audio capture and release the device."""
        self._running = False
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.stop()
