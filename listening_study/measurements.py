"""
Measurements Module
===================

Distance functions with the signature

    measure(sample_rate, reference: AudioBuffer, degraded: AudioBuffer) -> float

ready to be passed to Study.calculate. Each function raises on failure and
only reads its buffers, so it is safe to call from several workers at once.

Available:
- SNR: global signal-to-noise ratio (dB)
- PESQ: ITU-T P.862 wide-band score via the `pesq` package
- STOI: short-time objective intelligibility via `pystoi`
"""

import logging
from typing import Callable, Dict, Iterable, Tuple

import numpy as np

from .audio import AudioBuffer
from .config import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

Measurement = Callable[[int, AudioBuffer, AudioBuffer], float]


def _mono_pair(reference: AudioBuffer, degraded: AudioBuffer) -> Tuple[np.ndarray, np.ndarray]:
    """Mono mixes trimmed to the common length"""
    ref = reference.mono()
    deg = degraded.mono()
    min_len = min(len(ref), len(deg))
    return ref[:min_len].astype(np.float64), deg[:min_len].astype(np.float64)


def snr(sample_rate: int, reference: AudioBuffer, degraded: AudioBuffer) -> float:
    """
    Compute global SNR.

    SNR = 10 * log10(signal_power / noise_power)
    where noise = degraded - reference

    Returns:
        SNR in dB, clipped to the configured range
    """
    config = DEFAULT_CONFIG.audio
    ref, deg = _mono_pair(reference, degraded)

    noise = deg - ref
    signal_power = np.sum(ref ** 2)
    noise_power = np.sum(noise ** 2)

    if signal_power < 1e-10:
        raise ValueError("Reference signal has near-zero power")

    if noise_power < 1e-10:
        logger.debug("Noise power near zero - signals nearly identical")
        return config.SNR_MAX_DB

    value = 10 * np.log10(signal_power / noise_power)
    return float(np.clip(value, config.SNR_MIN_DB, config.SNR_MAX_DB))


def pesq_score(sample_rate: int, reference: AudioBuffer, degraded: AudioBuffer) -> float:
    """
    Compute wide-band PESQ.

    Both signals are resampled to 16kHz first.

    Returns:
        PESQ MOS-LQO score
    """
    import librosa
    from pesq import pesq

    config = DEFAULT_CONFIG.audio
    ref, deg = _mono_pair(reference, degraded)

    if sample_rate != config.PESQ_SAMPLE_RATE:
        ref = librosa.resample(ref, orig_sr=sample_rate, target_sr=config.PESQ_SAMPLE_RATE)
        deg = librosa.resample(deg, orig_sr=sample_rate, target_sr=config.PESQ_SAMPLE_RATE)

    return float(pesq(config.PESQ_SAMPLE_RATE, ref, deg, config.PESQ_MODE))


def stoi_score(sample_rate: int, reference: AudioBuffer, degraded: AudioBuffer) -> float:
    """
    Compute STOI (Short-Time Objective Intelligibility).

    Returns:
        STOI score (0.0 to 1.0)
    """
    from pystoi import stoi

    ref, deg = _mono_pair(reference, degraded)
    return float(stoi(ref, deg, sample_rate, extended=False))


MEASUREMENTS: Dict[str, Measurement] = {
    "SNR": snr,
    "PESQ": pesq_score,
    "STOI": stoi_score,
}


def get_measurements(names: Iterable[str]) -> Dict[str, Measurement]:
    """
    Select registered measurements by name.

    Raises:
        KeyError: For an unknown name
    """
    selected = {}
    for name in names:
        if name not in MEASUREMENTS:
            raise KeyError(f"Unknown measurement {name!r}, available: {', '.join(MEASUREMENTS)}")
        selected[name] = MEASUREMENTS[name]
    return selected
