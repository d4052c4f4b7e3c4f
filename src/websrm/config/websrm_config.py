"""
WEB-SRM Configuration Types and Schema
Type-safe configuration objects for the WEB-SRM client
"""

import re
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class WebSrmEnvironment(str, Enum):
    """WEB-SRM environment types"""
    DEV = "DEV"
    ESSAI = "ESSAI"
    PROD = "PROD"


# Transaction endpoints per environment
WEBSRM_BASE_URLS = {
    WebSrmEnvironment.DEV: "https://cnfr.api.rq-fo.ca",
    WebSrmEnvironment.ESSAI: "https://cnfr.api.rq-fo.ca",
    WebSrmEnvironment.PROD: "https://api.rq-fo.ca",
}

# Certificate authority enrolment endpoints per environment
WEBSRM_ENROLMENT_URLS = {
    WebSrmEnvironment.DEV: "https://certificats.cnfr.api.rq-fo.ca/enrolement",
    WebSrmEnvironment.ESSAI: "https://certificats.cnfr.api.rq-fo.ca/enrolement",
    WebSrmEnvironment.PROD: "https://certificats.api.rq-fo.ca/enrolement",
}

# Default CASESSAI header per environment (PROD sends none)
DEFAULT_TEST_CASES = {
    WebSrmEnvironment.DEV: "000.000",
    WebSrmEnvironment.ESSAI: "500.001",
    WebSrmEnvironment.PROD: None,
}

AUTH_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4}-[A-Z0-9]{4}$")


class ConfigDefaults:
    """Default configuration values"""
    ENVIRONMENT = WebSrmEnvironment.DEV
    INITIATOR = "SRV"
    TIMEOUT = 30000
    RETRY_ATTEMPTS = 0
    RETRY_DELAY = 1000
    CERT_DIR = "./certs"
    VERIFY_SERVER = True
    ENABLE_AUDIT_LOG = True


# Environment variable mapping
ENV_VAR_MAPPING = {
    "WEBSRM_ENVIRONMENT": "environment",
    "WEBSRM_ENROLMENT_URL": "enrolment_url",
    "WEBSRM_BASE_URL": "base_url",
    "WEBSRM_AUTH_CODE": "auth_code",
    "WEBSRM_PARTNER_ID": "partner_id",
    "WEBSRM_CERTIFICATION_CODE": "certification_code",
    "WEBSRM_SOFTWARE_ID": "software_id",
    "WEBSRM_SOFTWARE_VERSION_ID": "software_version_id",
    "WEBSRM_VERSION": "version",
    "WEBSRM_PARTNER_VERSION": "partner_version",
    "WEBSRM_TEST_CASE": "test_case",
    "WEBSRM_INITIATOR": "initiator",
    "WEBSRM_TIMEOUT": "timeout",
    "WEBSRM_RETRY_ATTEMPTS": "retry_attempts",
    "WEBSRM_RETRY_DELAY": "retry_delay",
    "WEBSRM_CERT_DIR": "cert_dir",
    "WEBSRM_KEY_PASSWORD": "key_password",
    "WEBSRM_VERIFY_SERVER": "verify_server",
    "WEBSRM_ENABLE_AUDIT_LOG": "enable_audit_log",
}


class WebSrmConfig(BaseModel):
    """
    Main WEB-SRM configuration

    One instance describes one environment. Instances are passed to the
    clients that need them; nothing is read from process-wide state.
    """

    # Required - partner / software registration
    auth_code: str = Field(
        ...,
        description="Authorization code (CODAUTORI header, never sent in a body)",
        min_length=1
    )
    partner_id: str = Field(
        ...,
        description="Partner identifier (IDPARTN)",
        min_length=1
    )
    certification_code: str = Field(
        ...,
        description="Certification code (CODCERTIF)",
        min_length=1
    )
    software_id: str = Field(
        ...,
        description="Sales recording system identifier (IDSEV)",
        min_length=1
    )
    software_version_id: str = Field(
        ...,
        description="Software version identifier (IDVERSI)",
        min_length=1
    )
    version: str = Field(
        ...,
        description="Software version (VERSI)",
        min_length=1
    )

    # Optional - environment settings
    environment: WebSrmEnvironment = Field(
        default=ConfigDefaults.ENVIRONMENT,
        description="Environment: DEV, ESSAI or PROD"
    )
    enrolment_url: Optional[str] = Field(
        default=None,
        description="Override default enrolment URL"
    )
    base_url: Optional[str] = Field(
        default=None,
        description="Override default transaction base URL"
    )
    partner_version: Optional[str] = Field(
        default=None,
        description="Partner version (VERSIPARN); defaults to '0' on DEV"
    )
    test_case: Optional[str] = Field(
        default=None,
        description="Test case (CASESSAI); defaults per environment"
    )
    initiator: str = Field(
        default=ConfigDefaults.INITIATOR,
        description="Initiating device type (APPRLINIT)"
    )
    timeout: int = Field(
        default=ConfigDefaults.TIMEOUT,
        description="Request timeout in milliseconds",
        ge=1000,
        le=300000
    )
    retry_attempts: int = Field(
        default=ConfigDefaults.RETRY_ATTEMPTS,
        description="Retries for transient transport failures only",
        ge=0,
        le=10
    )
    retry_delay: int = Field(
        default=ConfigDefaults.RETRY_DELAY,
        description="Base delay between retries in milliseconds",
        ge=1,
        le=60000
    )

    # Optional - certificate storage
    cert_dir: str = Field(
        default=ConfigDefaults.CERT_DIR,
        description="Directory holding enrolled key/certificate/chain files"
    )
    key_password: Optional[str] = Field(
        default=None,
        description="Password used to encrypt private keys at rest"
    )
    verify_server: bool = Field(
        default=ConfigDefaults.VERIFY_SERVER,
        description="Validate the server certificate; False is test mode only"
    )

    # Optional - audit logging
    enable_audit_log: bool = Field(
        default=ConfigDefaults.ENABLE_AUDIT_LOG,
        description="Enable HTTP audit callbacks"
    )

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator("auth_code")
    @classmethod
    def validate_auth_code(cls, v: str) -> str:
        """Validate auth_code looks like XXXX-XXXX"""
        if not AUTH_CODE_PATTERN.match(v):
            raise ValueError("auth_code must have the form XXXX-XXXX")
        return v

    @field_validator("enrolment_url", "base_url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate URL fields"""
        if v is not None and v != "":
            if not v.startswith(("http://", "https://")):
                raise ValueError("URL must be a valid HTTP/HTTPS URL")
        return v

    @model_validator(mode="after")
    def set_environment_defaults(self) -> "WebSrmConfig":
        """Fill environment-dependent defaults"""
        if self.base_url is None:
            self.base_url = WEBSRM_BASE_URLS[self.environment]
        if self.enrolment_url is None:
            self.enrolment_url = WEBSRM_ENROLMENT_URLS[self.environment]
        if self.test_case is None and DEFAULT_TEST_CASES[self.environment]:
            self.test_case = DEFAULT_TEST_CASES[self.environment]
        if self.partner_version is None:
            self.partner_version = (
                "0" if self.environment == WebSrmEnvironment.DEV else "1.0.0"
            )
        return self

    def get_resolved_base_url(self) -> str:
        """Get the resolved transaction base URL"""
        return self.base_url or WEBSRM_BASE_URLS[self.environment]

    def get_resolved_enrolment_url(self) -> str:
        """Get the resolved enrolment URL"""
        return self.enrolment_url or WEBSRM_ENROLMENT_URLS[self.environment]


class PartialWebSrmConfig(BaseModel):
    """
    Partial configuration for merging from multiple sources
    All fields are optional to allow partial configuration
    """

    auth_code: Optional[str] = None
    partner_id: Optional[str] = None
    certification_code: Optional[str] = None
    software_id: Optional[str] = None
    software_version_id: Optional[str] = None
    version: Optional[str] = None
    environment: Optional[WebSrmEnvironment] = None
    enrolment_url: Optional[str] = None
    base_url: Optional[str] = None
    partner_version: Optional[str] = None
    test_case: Optional[str] = None
    initiator: Optional[str] = None
    timeout: Optional[int] = None
    retry_attempts: Optional[int] = None
    retry_delay: Optional[int] = None
    cert_dir: Optional[str] = None
    key_password: Optional[str] = None
    verify_server: Optional[bool] = None
    enable_audit_log: Optional[bool] = None

    model_config = {
        "str_strip_whitespace": True,
    }
