"""
Schema discovery against endpoints that only describe their schema
through error messages
"""

from websrm.discovery.classifier import (
    ErrorCategory,
    ErrorClassifier,
    ClassificationRule,
    ClassifiedError,
    DEFAULT_RULES,
    classify,
    is_missing_field,
    extract_field_path,
)
from websrm.discovery.harness import (
    SchemaDiscoveryHarness,
    DiscoveryIteration,
    DiscoveryReport,
    DiscoveryState,
    get_path,
    set_path,
)

__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
    "ClassificationRule",
    "ClassifiedError",
    "DEFAULT_RULES",
    "classify",
    "is_missing_field",
    "extract_field_path",
    "SchemaDiscoveryHarness",
    "DiscoveryIteration",
    "DiscoveryReport",
    "DiscoveryState",
    "get_path",
    "set_path",
]
