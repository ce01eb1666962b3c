"""Report Normalizer - Normalization Layer

Builds the canonical CreditReport from either input shape and checks it for
three-bureau completeness.
"""
from .builder import CanonicalModelBuilder, unwrap_captured_lists
from .completeness import CompletenessResult, check_completeness

__all__ = [
    "CanonicalModelBuilder", "unwrap_captured_lists",
    "CompletenessResult", "check_completeness",
]
