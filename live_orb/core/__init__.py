"""
Core utilities: PCM codec, interruption epoch and text extraction.
"""

from live_orb.core.audio import AudioDecodeError, DecodedAudio, decode_audio_chunk, float_to_pcm16
from live_orb.core.epoch import EpochToken, InterruptionEpoch

__all__ = [
    "AudioDecodeError",
    "DecodedAudio",
    "EpochToken",
    "InterruptionEpoch",
    "decode_audio_chunk",
    "float_to_pcm16",
]
