"""
Study Store
===========

Directory-backed listening-test dataset plus the measurement pipeline
that fills it.

A study directory holds `study.json` and the audio it references:

    {
      "references": [
        {
          "name": "ref_01",
          "path": "ref_01.wav",
          "provenance": "...",
          "distortions": [
            {"name": "codec_a", "path": "ref_01_codec_a.wav", "scores": {"MOS": 3.9}}
          ]
        }
      ]
    }

Scores are Measurement Records keyed by (score type, reference, distortion).
Human-opinion scores (e.g. MOS) come with the study; objective ones are
written by Study.calculate.
"""

import copy
import json
import logging
import math
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from .config import PipelineConfig, DEFAULT_CONFIG
from .correlation import RECORD_COLUMNS, correlation_table
from .measurements import Measurement
from .wav import load_wav
from .worker import AggregateError, TaskError, WorkerPool

logger = logging.getLogger(__name__)


class StudyError(Exception):
    """Study store could not be opened, parsed or written."""


@dataclass
class Distortion:
    """A test recording compared against its reference"""
    name: str
    path: str
    scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "path": self.path,
            "scores": dict(self.scores)
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Distortion":
        return cls(
            name=data["name"],
            path=data["path"],
            scores={k: float(v) for k, v in data.get("scores", {}).items()}
        )


@dataclass
class Reference:
    """A reference recording and its distortions"""
    name: str
    path: str
    provenance: str = ""
    distortions: List[Distortion] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "path": self.path,
            "provenance": self.provenance,
            "distortions": [d.to_dict() for d in self.distortions]
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Reference":
        return cls(
            name=data["name"],
            path=data["path"],
            provenance=data.get("provenance", ""),
            distortions=[Distortion.from_dict(d) for d in data.get("distortions", [])]
        )


@dataclass(frozen=True)
class MeasurementTask:
    """One (reference, distortion, score type) unit of work"""
    reference: str
    reference_path: Path
    distortion: str
    distortion_path: Path
    score_type: str
    measure: Measurement

    @property
    def key(self) -> str:
        return f"{self.score_type}:{self.reference}/{self.distortion}"


class Study:
    """
    Listening-test study.

    Usage:
        study = Study.open("studies/codec_test")
        study.calculate(get_measurements(["SNR"]), WorkerPool(workers=8))
        print(study.correlate())
    """

    def __init__(self, directory: Union[str, Path],
                 references: Iterable[Reference] = (),
                 config: PipelineConfig = None):
        self.config = config or DEFAULT_CONFIG
        self.directory = Path(directory)
        self._references: Dict[str, Reference] = {}
        self._lock = threading.Lock()

        for reference in references:
            self._references[reference.name] = copy.deepcopy(reference)

    @property
    def study_file(self) -> Path:
        return self.directory / self.config.study.STUDY_FILE

    # =========================================================================
    # STORE
    # =========================================================================

    @classmethod
    def open(cls, directory: Union[str, Path], config: PipelineConfig = None) -> "Study":
        """
        Open an existing study.

        Raises:
            StudyError: If the study file is missing or malformed
        """
        study = cls(directory, config=config)

        try:
            with open(study.study_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            references = [Reference.from_dict(r) for r in data["references"]]
        except FileNotFoundError as e:
            raise StudyError(f"No study found at {study.study_file}") from e
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StudyError(f"Malformed study file {study.study_file}: {e}") from e

        for reference in references:
            study._references[reference.name] = reference

        logger.info(f"Opened study {study.directory} with {len(references)} references")
        return study

    @classmethod
    def create(cls, directory: Union[str, Path],
               references: Iterable[Reference] = (),
               config: PipelineConfig = None) -> "Study":
        """
        Create a new study directory.

        Raises:
            StudyError: If a study already exists there
        """
        study = cls(directory, references, config)
        if study.study_file.exists():
            raise StudyError(f"Study already exists at {study.study_file}")

        study.directory.mkdir(parents=True, exist_ok=True)
        study.save()
        return study

    def save(self):
        """Write study.json atomically"""
        with self._lock:
            data = {"references": [r.to_dict() for r in self._references.values()]}

        tmp_path = self.study_file.with_name(self.study_file.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.study_file)
        except OSError as e:
            raise StudyError(f"Failed to write {self.study_file}: {e}") from e

        logger.debug(f"Saved study to {self.study_file}")

    def put(self, reference: Reference):
        """Add a reference, replacing one with the same name"""
        with self._lock:
            self._references[reference.name] = copy.deepcopy(reference)

    def resolve(self, path: str) -> Path:
        """Audio path relative to the study directory"""
        return self.directory / path

    def __len__(self) -> int:
        return len(self._references)

    @property
    def num_entries(self) -> int:
        """Number of (reference, distortion) pairs"""
        with self._lock:
            return sum(len(r.distortions) for r in self._references.values())

    def view_each_reference(self, visit: Callable[[Reference], None]):
        """
        Call visit with a copy of every reference, in insertion order.

        The first exception raised by visit stops the iteration and propagates.
        """
        with self._lock:
            snapshot = copy.deepcopy(list(self._references.values()))

        for reference in snapshot:
            visit(reference)

    def set_score(self, reference: str, distortion: str,
                  score_type: str, value: float) -> float:
        """
        Record a score.

        Raises:
            StudyError: For unknown entries or non-finite values
        """
        value = float(value)
        if not math.isfinite(value):
            raise StudyError(f"Refusing non-finite {score_type} score {value} "
                             f"for {reference}/{distortion}")

        with self._lock:
            ref = self._references.get(reference)
            if ref is None:
                raise StudyError(f"Unknown reference {reference!r}")
            for dist in ref.distortions:
                if dist.name == distortion:
                    dist.scores[score_type] = value
                    return value

        raise StudyError(f"Unknown distortion {distortion!r} of reference {reference!r}")

    def get_score(self, reference: str, distortion: str, score_type: str) -> Optional[float]:
        with self._lock:
            ref = self._references.get(reference)
            if ref is None:
                return None
            for dist in ref.distortions:
                if dist.name == distortion:
                    return dist.scores.get(score_type)
        return None

    def records(self) -> pd.DataFrame:
        """
        All recorded scores in long form.

        Returns:
            DataFrame with columns score_type, reference, distortion, value
        """
        rows = []
        with self._lock:
            for ref in self._references.values():
                for dist in ref.distortions:
                    for score_type, value in dist.scores.items():
                        rows.append({
                            "score_type": score_type,
                            "reference": ref.name,
                            "distortion": dist.name,
                            "value": value
                        })
        return pd.DataFrame(rows, columns=RECORD_COLUMNS)

    # =========================================================================
    # MEASUREMENT PIPELINE
    # =========================================================================

    def tasks(self, measurements: Mapping[str, Measurement]) -> List[MeasurementTask]:
        """One task per (reference, distortion, score type)"""
        tasks = []
        with self._lock:
            for ref in self._references.values():
                for dist in ref.distortions:
                    for score_type, measure in measurements.items():
                        tasks.append(MeasurementTask(
                            reference=ref.name,
                            reference_path=self.resolve(ref.path),
                            distortion=dist.name,
                            distortion_path=self.resolve(dist.path),
                            score_type=score_type,
                            measure=measure
                        ))
        return tasks

    def _measure(self, task: MeasurementTask) -> float:
        """Worker function: decode both recordings, measure, record"""
        reference = load_wav(task.reference_path, self.config.audio).audio
        distortion = load_wav(task.distortion_path, self.config.audio).audio

        if reference.sample_rate != distortion.sample_rate:
            raise ValueError(f"Sample rate mismatch: reference {reference.sample_rate}Hz, "
                             f"distortion {distortion.sample_rate}Hz")

        value = task.measure(reference.sample_rate, reference, distortion)
        value = self.set_score(task.reference, task.distortion, task.score_type, value)

        logger.debug(f"{task.key} = {value:.4f}")
        return value

    def calculate(self, measurements: Mapping[str, Measurement], pool: WorkerPool):
        """
        Compute every measurement for every (reference, distortion) entry.

        Successful scores are recorded as they complete and the study is
        saved even when some tasks fail.

        Args:
            measurements: Score type -> distance function
            pool: WorkerPool that runs the tasks

        Raises:
            AggregateError: Naming every failed task, after all tasks ran.
                A failed save of the partial results is appended to its
                errors under the key "save:<study file>".
            StudyError: If saving fails after every task succeeded
        """
        tasks = self.tasks(measurements)
        logger.info(f"Calculating {len(measurements)} score types for "
                    f"{self.num_entries} entries ({len(tasks)} tasks)")

        failure: Optional[AggregateError] = None
        try:
            pool.map(tasks, self._measure, key=lambda task: task.key)
        except AggregateError as e:
            failure = e

        try:
            self.save()
        except StudyError as e:
            if failure is None:
                raise
            logger.error(f"Saving partial results failed: {e}")
            save_error = TaskError(f"save:{self.study_file.name}", len(tasks), self.study_file, e)
            save_error.__cause__ = e
            raise AggregateError(failure.errors + [save_error], failure.results) from failure

        if failure is not None:
            raise failure

        logger.info(f"Calculated {len(tasks)} scores")

    def correlate(self) -> pd.DataFrame:
        """Rank correlation table between all recorded score types"""
        return correlation_table(self.records(), self.config.study.MIN_COMMON_KEYS)
