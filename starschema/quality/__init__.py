"""
Data Quality Module
"""
from .validators import ReferentialValidator, ValidationIssue, ValidationResult, ValidationStatus

__all__ = [
    "ReferentialValidator",
    "ValidationIssue",
    "ValidationResult",
    "ValidationStatus",
]
