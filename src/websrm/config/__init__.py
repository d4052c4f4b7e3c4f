"""
Configuration module
"""

from websrm.config.websrm_config import (
    WebSrmConfig,
    PartialWebSrmConfig,
    WebSrmEnvironment,
    WEBSRM_BASE_URLS,
    WEBSRM_ENROLMENT_URLS,
    DEFAULT_TEST_CASES,
    ENV_VAR_MAPPING,
    ConfigDefaults,
)
from websrm.config.config_loader import ConfigLoader
from websrm.config.config_validator import (
    ConfigValidator,
    ValidationResult,
    ValidationErrorDetail,
)

__all__ = [
    "WebSrmConfig",
    "PartialWebSrmConfig",
    "WebSrmEnvironment",
    "WEBSRM_BASE_URLS",
    "WEBSRM_ENROLMENT_URLS",
    "DEFAULT_TEST_CASES",
    "ENV_VAR_MAPPING",
    "ConfigDefaults",
    "ConfigLoader",
    "ConfigValidator",
    "ValidationResult",
    "ValidationErrorDetail",
]
