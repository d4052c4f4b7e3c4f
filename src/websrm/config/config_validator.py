"""
Configuration Validator
Validates WEB-SRM configuration with clear error messages
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from websrm.config.websrm_config import AUTH_CODE_PATTERN, WebSrmEnvironment


@dataclass
class ValidationErrorDetail:
    """Validation error detail"""
    field: str
    message: str
    value: Optional[Any] = None


@dataclass
class ValidationResult:
    """Validation result"""
    valid: bool
    errors: List[ValidationErrorDetail] = field(default_factory=list)


class ConfigValidator:
    """
    ConfigValidator class
    Provides comprehensive validation for WEB-SRM configuration
    """

    REQUIRED_FIELDS = (
        "auth_code",
        "partner_id",
        "certification_code",
        "software_id",
        "software_version_id",
        "version",
    )

    def __init__(self) -> None:
        self._errors: List[ValidationErrorDetail] = []

    def validate(self, config: Dict[str, Any]) -> ValidationResult:
        """
        Validate the entire configuration dictionary

        Args:
            config: Configuration dictionary to validate

        Returns:
            ValidationResult with any errors
        """
        self._errors = []

        self._validate_required(config)
        self._validate_formats(config)
        self._validate_ranges(config)
        self._validate_environment(config)

        return ValidationResult(
            valid=len(self._errors) == 0,
            errors=self._errors.copy()
        )

    def validate_or_raise(self, config: Dict[str, Any]) -> None:
        """
        Validate and raise if invalid

        Raises:
            ValidationError: If configuration is invalid
        """
        from websrm.exceptions import ValidationError

        result = self.validate(config)
        if not result.valid:
            error_messages = "; ".join(
                f"{e.field}: {e.message}" for e in result.errors
            )
            raise ValidationError(
                f"Configuration validation failed: {error_messages}",
                field=result.errors[0].field,
            )

    def _validate_required(self, config: Dict[str, Any]) -> None:
        """Validate required fields are present and non-empty"""
        for field_name in self.REQUIRED_FIELDS:
            value = config.get(field_name)
            if value is None:
                self._errors.append(ValidationErrorDetail(
                    field=field_name,
                    message=f"{field_name} is required"
                ))
            elif isinstance(value, str) and value.strip() == "":
                self._errors.append(ValidationErrorDetail(
                    field=field_name,
                    message=f"{field_name} cannot be empty",
                    value=value
                ))

    def _validate_formats(self, config: Dict[str, Any]) -> None:
        """Validate field formats"""
        auth_code = config.get("auth_code")
        if isinstance(auth_code, str) and auth_code.strip():
            if not AUTH_CODE_PATTERN.match(auth_code.strip()):
                # The code itself is never echoed back.
                self._errors.append(ValidationErrorDetail(
                    field="auth_code",
                    message="auth_code must have the form XXXX-XXXX",
                    value="[REDACTED]"
                ))

        for url_field in ("enrolment_url", "base_url"):
            url = config.get(url_field)
            if url is not None and url != "":
                if not str(url).startswith(("http://", "https://")):
                    self._errors.append(ValidationErrorDetail(
                        field=url_field,
                        message=f"{url_field} must be a valid HTTP/HTTPS URL",
                        value=url
                    ))

        cert_dir = config.get("cert_dir")
        if cert_dir is not None and not isinstance(cert_dir, str):
            self._errors.append(ValidationErrorDetail(
                field="cert_dir",
                message="cert_dir must be a string",
                value=cert_dir
            ))

    def _validate_ranges(self, config: Dict[str, Any]) -> None:
        """Validate numeric ranges"""
        timeout = config.get("timeout")
        if timeout is not None:
            if not isinstance(timeout, (int, float)) or timeout <= 0:
                self._errors.append(ValidationErrorDetail(
                    field="timeout",
                    message="timeout must be a positive number (milliseconds)",
                    value=timeout
                ))
            elif timeout < 1000:
                self._errors.append(ValidationErrorDetail(
                    field="timeout",
                    message="timeout should be at least 1000ms for reliable operation",
                    value=timeout
                ))
            elif timeout > 300000:
                self._errors.append(ValidationErrorDetail(
                    field="timeout",
                    message="timeout should not exceed 300000ms (5 minutes)",
                    value=timeout
                ))

        retry_attempts = config.get("retry_attempts")
        if retry_attempts is not None:
            if not isinstance(retry_attempts, int) or retry_attempts < 0:
                self._errors.append(ValidationErrorDetail(
                    field="retry_attempts",
                    message="retry_attempts must be a non-negative integer",
                    value=retry_attempts
                ))
            elif retry_attempts > 10:
                self._errors.append(ValidationErrorDetail(
                    field="retry_attempts",
                    message="retry_attempts should not exceed 10",
                    value=retry_attempts
                ))

        retry_delay = config.get("retry_delay")
        if retry_delay is not None:
            if not isinstance(retry_delay, (int, float)) or retry_delay <= 0:
                self._errors.append(ValidationErrorDetail(
                    field="retry_delay",
                    message="retry_delay must be a positive number (milliseconds)",
                    value=retry_delay
                ))
            elif retry_delay > 60000:
                self._errors.append(ValidationErrorDetail(
                    field="retry_delay",
                    message="retry_delay should not exceed 60000ms (1 minute)",
                    value=retry_delay
                ))

    def _validate_environment(self, config: Dict[str, Any]) -> None:
        """Validate environment setting"""
        environment = config.get("environment")
        if environment is not None:
            valid_environments = [e.value for e in WebSrmEnvironment]
            env_value = (
                environment.value
                if isinstance(environment, WebSrmEnvironment)
                else environment
            )
            if env_value not in valid_environments:
                self._errors.append(ValidationErrorDetail(
                    field="environment",
                    message=f"environment must be one of: {', '.join(valid_environments)}",
                    value=environment
                ))
