from .apply_engine import ApplyEngine, ArtifactFile, order_artifacts
from .auditor import AuditReport, SupersedenceAuditor
from .fetcher import ContentFetcher
from .validator import ArtifactValidator

__all__ = [
    "ApplyEngine",
    "ArtifactFile",
    "order_artifacts",
    "AuditReport",
    "SupersedenceAuditor",
    "ContentFetcher",
    "ArtifactValidator",
]
