"""
Pipeline Configuration Module
=============================

FROZEN decoding/measurement parameters and runtime settings.
DO NOT MODIFY the frozen sections without a version bump.

All settings are deterministic for reproducibility.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List
import hashlib
import json
from datetime import datetime

# ============================================================================
# FROZEN PARAMETERS - DO NOT MODIFY
# ============================================================================

@dataclass(frozen=True)
class AudioConfig:
    """
    Frozen audio decoding and measurement configuration.

    Modify only with version increment.
    """
    # WAVE container
    SUPPORTED_BITS_PER_SAMPLE: tuple = (8, 16, 24, 32)
    PCM_FORMAT_TAG: int = 1

    # PESQ (ITU-T P.862 runs at 8kHz or 16kHz only)
    PESQ_SAMPLE_RATE: int = 16000
    PESQ_MODE: str = "wb"

    # SNR clipping range
    SNR_MIN_DB: float = -20.0
    SNR_MAX_DB: float = 100.0

    # Version tracking
    CONFIG_VERSION: str = "1.0.0"


@dataclass(frozen=True)
class StudyConfig:
    """
    Study store layout and correlation settings.

    Expected structure:
    study_dir/
    ├── study.json       # references, distortions and recorded scores
    ├── ref_01.wav
    ├── ref_01_codec_a.wav
    └── ...
    """
    STUDY_FILE: str = "study.json"

    # Minimum common keys for a defined rank correlation
    MIN_COMMON_KEYS: int = 2

    # Output directories
    OUTPUT_DIR: str = "scoring_output"


def default_workers() -> int:
    """Worker count default: one per CPU."""
    return os.cpu_count() or 1


def default_measurements() -> List[str]:
    return ["SNR", "PESQ", "STOI"]


@dataclass
class PipelineConfig:
    """
    Main pipeline configuration.

    Combines frozen configs with runtime settings.
    """
    audio: AudioConfig = field(default_factory=AudioConfig)
    study: StudyConfig = field(default_factory=StudyConfig)

    # Runtime settings (can be modified)
    workers: int = field(default_factory=default_workers)
    measurements: List[str] = field(default_factory=default_measurements)
    verbose: bool = False
    show_progress: bool = True

    def __post_init__(self):
        """Generate config hash for version tracking"""
        self._config_hash = self._compute_hash()
        self._created_at = datetime.now().isoformat()

    def _compute_hash(self) -> str:
        """Compute deterministic hash of frozen parameters"""
        config_dict = {
            "audio": {
                k: v for k, v in self.audio.__dict__.items()
                if not k.startswith("_")
            },
            "study": {
                k: v for k, v in self.study.__dict__.items()
                if not k.startswith("_")
            }
        }
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def config_hash(self) -> str:
        return self._config_hash

    def to_dict(self) -> Dict:
        """Export configuration as dictionary"""
        return {
            "audio": {k: v for k, v in self.audio.__dict__.items()},
            "study": {k: v for k, v in self.study.__dict__.items()},
            "runtime": {
                "workers": self.workers,
                "measurements": list(self.measurements),
                "verbose": self.verbose,
                "show_progress": self.show_progress,
            },
            "meta": {
                "config_hash": self._config_hash,
                "created_at": self._created_at,
                "version": self.audio.CONFIG_VERSION
            }
        }

    def save(self, path: str):
        """Save configuration to JSON file"""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "PipelineConfig":
        """Load runtime settings from JSON file (frozen sections are not overridden)"""
        with open(path, "r") as f:
            data = json.load(f)

        config = cls()
        runtime = data["runtime"]
        config.workers = runtime["workers"]
        config.measurements = list(runtime["measurements"])
        config.verbose = runtime["verbose"]
        config.show_progress = runtime["show_progress"]

        return config


# ============================================================================
# DEFAULT CONFIGURATION INSTANCE
# ============================================================================

DEFAULT_CONFIG = PipelineConfig()


if __name__ == "__main__":
    config = PipelineConfig()
    print(f"Pipeline Configuration v{config.audio.CONFIG_VERSION}")
    print(f"Config Hash: {config.config_hash}")
    print(f"\nRuntime Settings:")
    print(f"  Workers: {config.workers}")
    print(f"  Measurements: {', '.join(config.measurements)}")
    print(f"\nStudy Settings:")
    print(f"  Study file: {config.study.STUDY_FILE}")
    print(f"  Min common keys: {config.study.MIN_COMMON_KEYS}")
