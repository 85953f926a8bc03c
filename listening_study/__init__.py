"""
Listening Study - Audio Score Calculation Pipeline
==================================================

Concurrent scoring of (reference, distortion) recording pairs in
listening-test datasets, with rank correlation between score types.

Modules:
- config: Frozen decoding/measurement parameters and runtime settings
- wav: RIFF/WAVE decoding into audio buffers
- audio: Per-channel float sample buffer with amplitude operations
- worker: Bounded-concurrency worker pool with collect-all errors
- progress: tqdm progress adapter for the worker pool
- measurements: SNR, PESQ and STOI distance functions
- study: Study store and measurement pipeline
- correlation: Spearman correlation tables between score types
- reporting: CSV/JSON exports and correlation heatmap
"""

__version__ = "1.0.0"
