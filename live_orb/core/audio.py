"""
Audio processing utilities.

Conversions between the float32 sample buffers used by the audio devices
and the 16-bit little-endian PCM carried on the wire.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional

import numpy as np

PCM_MIME_PREFIX = "audio/pcm"


class AudioDecodeError(ValueError):
    """Raised when an inbound audio payload cannot be decoded."""


@dataclass
class DecodedAudio:
    """A decoded mono chunk ready for scheduling."""

    samples: np.ndarray  # float32, mono
    sample_rate: int

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return get_audio_duration(self.samples, self.sample_rate)


def pcm_mime_type(sample_rate: int) -> str:
    """MIME type for raw PCM at the given rate, e.g. ``audio/pcm;rate=16000``."""
    return f"{PCM_MIME_PREFIX};rate={sample_rate}"


def parse_sample_rate(mime_type: Optional[str]) -> Optional[int]:
    """
    Extract the sample rate from a PCM MIME type.

    Returns None when the MIME type is missing or carries no rate.
    """
    if not mime_type:
        return None
    m = re.search(r"rate=(\d+)", mime_type)
    return int(m.group(1)) if m else None


def float_to_pcm16(audio: np.ndarray) -> bytes:
    """
    Convert float samples in [-1, 1] to little-endian int16 PCM bytes.

    Args:
        audio: Audio samples (float32/float64, or int16 passed through)

    Returns:
        Wire-format PCM bytes
    """
    if audio.dtype == np.int16:
        return audio.astype("<i2").tobytes()

    clipped = np.clip(audio.astype(np.float32), -1.0, 1.0)
    return (clipped * 32767).astype("<i2").tobytes()


def pcm16_to_float(data: bytes) -> np.ndarray:
    """
    Convert little-endian int16 PCM bytes to float32 samples.

    Raises:
        AudioDecodeError: If the byte count is not a whole number of samples
    """
    if len(data) % 2:
        raise AudioDecodeError(f"PCM payload has odd length ({len(data)} bytes)")
    return np.frombuffer(data, dtype="<i2").astype(np.float32) / 32768.0


def decode_audio_chunk(
    payload: bytes | str,
    source_rate: Optional[int],
    target_rate: int,
) -> DecodedAudio:
    """
    Decode one inbound audio chunk.

    Args:
        payload: Raw PCM bytes, or the same bytes base64-encoded
        source_rate: Sample rate reported by the service (None = target_rate)
        target_rate: Output device sample rate

    Returns:
        DecodedAudio at target_rate

    Raises:
        AudioDecodeError: On empty, undecodable or truncated payloads
    """
    if isinstance(payload, str):
        try:
            payload = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise AudioDecodeError(f"Invalid base64 audio payload: {e}") from e

    if not payload:
        raise AudioDecodeError("Empty audio payload")

    samples = pcm16_to_float(bytes(payload))
    rate = source_rate or target_rate
    if rate != target_rate:
        samples = resample_audio(samples, rate, target_rate)

    return DecodedAudio(samples=samples, sample_rate=target_rate)


def resample_audio(
    audio: np.ndarray,
    original_rate: int,
    target_rate: int,
) -> np.ndarray:
    """
    Resample audio to a different sample rate.

    Args:
        audio: Float32 samples
        original_rate: Original sample rate
        target_rate: Target sample rate

    Returns:
        Resampled float32 samples
    """
    if original_rate == target_rate or len(audio) == 0:
        return audio

    from scipy import signal

    num_samples = int(len(audio) * target_rate / original_rate)
    return signal.resample(audio, num_samples).astype(np.float32, copy=False)


def get_audio_duration(audio: np.ndarray, sample_rate: int) -> float:
    """
    Get audio duration in seconds.

    Args:
        audio: Audio data
        sample_rate: Sample rate in Hz

    Returns:
        Duration in seconds
    """
    return len(audio) / sample_rate
