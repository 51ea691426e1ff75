from .config import ALLOWED_REPORT_TYPES, RuntimeConfig
from .models import Hotspot, Report, ReportSubmission

__all__ = [
    "ALLOWED_REPORT_TYPES",
    "RuntimeConfig",
    "Report",
    "ReportSubmission",
    "Hotspot",
]
