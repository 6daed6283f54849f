from .step_10_resolve import ResolveStep
from .step_20_audit_cache import AuditCacheStep
from .step_30_fetch import FetchStep
from .step_40_apply import ApplyStep
from .step_90_report import ReportStep, summarize

__all__ = [
    "ResolveStep",
    "AuditCacheStep",
    "FetchStep",
    "ApplyStep",
    "ReportStep",
    "summarize",
]
