"""
WAV Decoding Module
===================

RIFF/WAVE container parsing into a format descriptor and an AudioBuffer.

Features:
- Header magic validation (RIFF/WAVE)
- Chunk walking with auxiliary chunk skipping (LIST, fact, ...)
- Format consistency checks (byte rate, block align)
- 8/16/24/32-bit integer PCM normalized to float

Streams need not be seekable; skipped chunks are read and discarded.
"""

import io
import struct
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

import numpy as np

from .audio import AudioBuffer
from .config import AudioConfig, DEFAULT_CONFIG

logger = logging.getLogger(__name__)

RIFF_MAGIC = b"RIFF"
WAVE_MAGIC = b"WAVE"
FMT_CHUNK_ID = b"fmt "
DATA_CHUNK_ID = b"data"

FMT_CHUNK_SIZE = 16


class FormatError(ValueError):
    """Malformed or truncated WAV container."""


class UnsupportedFormatError(FormatError):
    """Structurally valid WAV with an encoding this decoder does not handle."""


@dataclass(frozen=True)
class FormatChunk:
    """Contents of the 16-byte 'fmt ' chunk body"""
    format_tag: int
    num_channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8


@dataclass
class WavFile:
    """Decoded WAV: format descriptor plus samples"""
    format: FormatChunk
    audio: AudioBuffer


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise FormatError(f"Truncated {what}: wanted {size} bytes, got {len(data)}")
    return data


def _skip(stream: BinaryIO, size: int, what: str):
    while size > 0:
        chunk = stream.read(min(size, 1 << 16))
        if not chunk:
            raise FormatError(f"Truncated {what}: {size} bytes missing")
        size -= len(chunk)


def parse_format_chunk(body: bytes, config: AudioConfig = None) -> FormatChunk:
    """
    Parse and validate a 'fmt ' chunk body.

    Args:
        body: At least 16 bytes of chunk body
        config: AudioConfig with the supported encodings

    Returns:
        Validated FormatChunk
    """
    config = config or DEFAULT_CONFIG.audio

    fmt = FormatChunk(*struct.unpack("<hhiihh", body[:FMT_CHUNK_SIZE]))

    if fmt.format_tag != config.PCM_FORMAT_TAG:
        raise UnsupportedFormatError(f"Unsupported format tag {fmt.format_tag}, only PCM is decoded")
    if fmt.bits_per_sample not in config.SUPPORTED_BITS_PER_SAMPLE:
        raise UnsupportedFormatError(f"Unsupported bits per sample: {fmt.bits_per_sample}")
    if fmt.num_channels < 1:
        raise FormatError(f"Invalid channel count: {fmt.num_channels}")
    if fmt.sample_rate <= 0:
        raise FormatError(f"Invalid sample rate: {fmt.sample_rate}")

    block_align = fmt.num_channels * fmt.bytes_per_sample
    if fmt.block_align != block_align:
        raise FormatError(f"Block align {fmt.block_align} != {block_align} "
                          f"({fmt.num_channels} channels x {fmt.bits_per_sample} bits)")
    if fmt.byte_rate != fmt.sample_rate * block_align:
        raise FormatError(f"Byte rate {fmt.byte_rate} != {fmt.sample_rate * block_align}")

    return fmt


def pcm_to_float(payload: bytes, fmt: FormatChunk) -> np.ndarray:
    """
    Convert interleaved PCM bytes to normalized float samples.

    Each integer sample is divided by the largest positive value at its
    bit depth. 8-bit PCM is unsigned (offset 128) per the WAVE convention.

    Returns:
        float32 array shaped (channels, frames)
    """
    bits = fmt.bits_per_sample

    if bits == 8:
        ints = np.frombuffer(payload, dtype=np.uint8).astype(np.int32) - 128
    elif bits == 16:
        ints = np.frombuffer(payload, dtype="<i2").astype(np.int32)
    elif bits == 24:
        raw = np.frombuffer(payload, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        ints = raw[:, 0] | (raw[:, 1] << 8) | (raw[:, 2] << 16)
        ints = np.where(ints >= 1 << 23, ints - (1 << 24), ints)
    elif bits == 32:
        ints = np.frombuffer(payload, dtype="<i4").astype(np.int64)
    else:
        raise UnsupportedFormatError(f"Unsupported bits per sample: {bits}")

    max_value = float(2 ** (bits - 1) - 1)
    samples = (ints / max_value).astype(np.float32)

    # sample i of channel c is at i * channels + c
    return np.ascontiguousarray(samples.reshape(-1, fmt.num_channels).T)


def read_wav(stream: BinaryIO, config: AudioConfig = None) -> WavFile:
    """
    Decode a WAV container from a binary stream.

    Args:
        stream: Readable binary stream positioned at the RIFF header
        config: AudioConfig instance (uses DEFAULT if None)

    Returns:
        WavFile with format descriptor and AudioBuffer
    """
    config = config or DEFAULT_CONFIG.audio

    riff, _, wave = struct.unpack("<4sI4s", _read_exact(stream, 12, "RIFF header"))
    if riff != RIFF_MAGIC:
        raise FormatError(f"Not a RIFF file: magic {riff!r}")
    if wave != WAVE_MAGIC:
        raise FormatError(f"Not a WAVE file: format {wave!r}")

    fmt = None
    while True:
        header = stream.read(8)
        if not header:
            raise FormatError("No data chunk found")
        if len(header) != 8:
            raise FormatError(f"Truncated chunk header: {len(header)} bytes")
        chunk_id, chunk_size = struct.unpack("<4sI", header)

        if chunk_id == FMT_CHUNK_ID:
            if chunk_size < FMT_CHUNK_SIZE:
                raise FormatError(f"Format chunk too short: {chunk_size} bytes")
            body = _read_exact(stream, chunk_size, "format chunk")
            _skip(stream, chunk_size % 2, "format chunk padding")
            fmt = parse_format_chunk(body, config)
            logger.debug(f"Format: {fmt.num_channels}ch {fmt.sample_rate}Hz {fmt.bits_per_sample}bit")

        elif chunk_id == DATA_CHUNK_ID:
            if fmt is None:
                raise FormatError("Data chunk precedes format chunk")
            if chunk_size % fmt.block_align != 0:
                raise FormatError(f"Data chunk size {chunk_size} is not a multiple of "
                                  f"block align {fmt.block_align}")
            payload = _read_exact(stream, chunk_size, "data chunk")
            break

        else:
            logger.debug(f"Skipping {chunk_id!r} chunk ({chunk_size} bytes)")
            _skip(stream, chunk_size + chunk_size % 2, f"{chunk_id!r} chunk")

    audio = AudioBuffer(sample_rate=fmt.sample_rate, samples=pcm_to_float(payload, fmt))
    return WavFile(format=fmt, audio=audio)


def decode_wav(data: bytes, config: AudioConfig = None) -> WavFile:
    """Decode a WAV container held in memory."""
    return read_wav(io.BytesIO(data), config)


def load_wav(path: Union[str, Path], config: AudioConfig = None) -> WavFile:
    """
    Load and decode a WAV file.

    Args:
        path: Path to .wav file

    Returns:
        WavFile with format descriptor and AudioBuffer
    """
    with open(path, "rb") as f:
        wav = read_wav(f, config)

    logger.debug(f"Loaded {path}: {wav.audio.duration:.2f}s @ {wav.audio.sample_rate}Hz")
    return wav
