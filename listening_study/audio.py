"""
Audio Buffer Module
===================

Canonical in-memory audio: per-channel float samples at a fixed sample rate.

Amplitude operations are raw primitives - nothing here clips or limits.
"""

import numpy as np
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)


@dataclass
class AudioBuffer:
    """
    Decoded audio.

    samples is a float32 array shaped (channels, frames). Values are
    not clamped to [-1, 1].
    """
    sample_rate: int
    samples: np.ndarray

    def __post_init__(self):
        try:
            samples = np.asarray(self.samples, dtype=np.float32)
        except ValueError as e:
            raise ValueError(f"Channels must have equal length: {e}") from e

        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        if samples.ndim != 2:
            raise ValueError(f"Expected (channels, frames) samples, got shape {samples.shape}")

        self.samples = samples

    @property
    def num_channels(self) -> int:
        return self.samples.shape[0]

    @property
    def num_frames(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        """Duration in seconds"""
        return self.num_frames / self.sample_rate

    def max_abs_amplitude(self) -> float:
        """
        Largest absolute sample value across all channels.

        Returns:
            Peak amplitude, 0.0 for silent or empty buffers
        """
        if self.samples.size == 0:
            return 0.0
        return float(np.max(np.abs(self.samples)))

    def amplify(self, factor: float):
        """
        Multiply every sample by factor, in place.

        No clipping is applied; pick factor with max_abs_amplitude().
        """
        self.samples *= factor

    def normalize_peak(self) -> float:
        """
        Scale in place so the peak amplitude is 1.0.

        Returns:
            The peak before normalization (silent buffers are left untouched)
        """
        peak = self.max_abs_amplitude()
        if peak > 0:
            self.amplify(1.0 / peak)
        return peak

    def mono(self) -> np.ndarray:
        """Average of all channels"""
        return self.samples.mean(axis=0)
