"""Policy conformance checks for Kubernetes workload manifests."""

from .service import CheckResult, ConformanceService, NoDocumentsError

__version__ = "0.1.0"

__all__ = ["CheckResult", "ConformanceService", "NoDocumentsError", "__version__"]
