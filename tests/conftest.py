"""
Pytest fixtures and configuration for the test suite.

- WAV byte builders for decoder tests
- 1kHz sine recordings at 48kHz (mono and stereo, s16le, with a LIST chunk)
- A small on-disk study with reference/distortion recordings and MOS scores
"""

import struct
import sys
from pathlib import Path

import matplotlib
import numpy as np
import pytest

matplotlib.use("Agg")

# Add project root to path so tests can import the package and runner
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from listening_study.study import Distortion, Reference, Study  # noqa: E402


SINE_1KHZ_48KHZ_1CH_S16LE = bytes.fromhex(
    "52494646a600000057415645666d7420100000000100010080bb00000077010002001000"
    "4c4953541a000000494e464f495346540e0000004c61766636302e31362e313030006461"
    "7461600000000000160224041e06ff07bd094f0bb10cda0dc70e730fdc0fff0fdc0f740f"
    "c80edb0db10c500bbd0900082006240417020100eafddcfbe2f901f843f6b1f44ff326f2"
    "39f18df024f001f024f08cf038f125f24ff3b0f443f600f8e0f9dcfbe9fd"
)

SINE_1KHZ_48KHZ_2CH_S16LE = bytes.fromhex(
    "524946460601000057415645666d7420100000000100020080bb000000ee020004001000"
    "4c4953541a000000494e464f495346540e0000004c61766636302e31362e313030006461"
    "7461c00000000000000016021602240424041e061e06ff07ff07bd09bd094f0b4f0bb10c"
    "b10cda0dda0dc70ec70e730f730fdc0fdc0fff0fff0fdc0fdc0f740f740fc80ec80edb0d"
    "db0db10cb10c500b500bbd09bd090008000820062006240424041702170201000100eafd"
    "eafddcfbdcfbe2f9e2f901f801f843f643f6b1f4b1f44ff34ff326f226f239f139f18df0"
    "8df024f024f001f001f024f024f08cf08cf038f138f125f225f24ff34ff3b0f4b0f443f6"
    "43f600f800f8e0f9e0f9dcfbdcfbe9fde9fd"
)


def build_wav(payload: bytes, channels: int = 1, sample_rate: int = 48000,
              bits: int = 16, format_tag: int = 1, byte_rate: int = None,
              block_align: int = None, extra_chunks=(), data_first: bool = False,
              riff: bytes = b"RIFF", wave: bytes = b"WAVE") -> bytes:
    """Assemble a WAV container; extra_chunks go between 'fmt ' and 'data'."""
    if block_align is None:
        block_align = channels * bits // 8
    if byte_rate is None:
        byte_rate = sample_rate * block_align

    fmt_body = struct.pack("<hhiihh", format_tag, channels, sample_rate,
                           byte_rate, block_align, bits)

    def chunk(tag: bytes, body: bytes) -> bytes:
        pad = b"\x00" if len(body) % 2 else b""
        return struct.pack("<4sI", tag, len(body)) + body + pad

    fmt_chunk = chunk(b"fmt ", fmt_body)
    data_chunk = chunk(b"data", payload)
    extras = b"".join(chunk(tag, body) for tag, body in extra_chunks)

    if data_first:
        body = wave + data_chunk + fmt_chunk
    else:
        body = wave + fmt_chunk + extras + data_chunk
    return riff + struct.pack("<I", len(body)) + body


def pcm16(frames) -> bytes:
    """Interleave (frames, channels) integers as s16le"""
    return np.asarray(frames, dtype="<i2").tobytes()


def write_wav(path: Path, samples: np.ndarray, sample_rate: int):
    """Write float samples shaped (channels, frames) as 16-bit PCM"""
    samples = np.atleast_2d(samples)
    ints = np.round(np.clip(samples, -1, 1) * 32767).astype("<i2")
    path.write_bytes(build_wav(ints.T.tobytes(), channels=samples.shape[0],
                               sample_rate=sample_rate))


# Noise level per distortion, with MOS falling as noise rises
NOISE_LEVELS = {
    ("ref_a", "light"): (0.01, 4.8),
    ("ref_b", "light"): (0.02, 4.5),
    ("ref_a", "medium"): (0.05, 3.9),
    ("ref_b", "medium"): (0.1, 3.1),
    ("ref_a", "heavy"): (0.2, 2.2),
    ("ref_b", "heavy"): (0.4, 1.4),
}

STUDY_SAMPLE_RATE = 16000


@pytest.fixture()
def study_dir(tmp_path: Path) -> Path:
    """Study with two references and three noisy distortions each."""
    rng = np.random.default_rng(12345)
    t = np.arange(STUDY_SAMPLE_RATE // 4) / STUDY_SAMPLE_RATE
    directory = tmp_path / "study"
    directory.mkdir()

    references = []
    for ref_name, freq in (("ref_a", 440.0), ("ref_b", 660.0)):
        clean = 0.5 * np.sin(2 * np.pi * freq * t)
        write_wav(directory / f"{ref_name}.wav", clean, STUDY_SAMPLE_RATE)

        distortions = []
        for dist_name in ("light", "medium", "heavy"):
            level, mos = NOISE_LEVELS[(ref_name, dist_name)]
            noisy = clean + rng.uniform(-level, level, size=clean.shape)
            path = f"{ref_name}_{dist_name}.wav"
            write_wav(directory / path, noisy, STUDY_SAMPLE_RATE)
            distortions.append(Distortion(name=dist_name, path=path, scores={"MOS": mos}))

        references.append(Reference(name=ref_name, path=f"{ref_name}.wav",
                                    provenance="synthetic sine", distortions=distortions))

    Study.create(directory, references)
    return directory
