"""Adapter layer package for manifest ingestion and rule evaluation."""

from .evaluator import EvaluationRun, Evaluator, default_max_workers
from .manifest_loader import ManifestLoader, ManifestLoaderError, ManifestSource

__all__ = [
    "EvaluationRun",
    "Evaluator",
    "ManifestLoader",
    "ManifestLoaderError",
    "ManifestSource",
    "default_max_workers",
]
