"""Exception classes for the WEB-SRM client"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from websrm.models.enrolment import EnrollmentResult, ErrorRecord
    from websrm.discovery.harness import DiscoveryReport


class WebSrmErrorCategory(str, Enum):
    """WEB-SRM error category codes"""
    CSR = "CSR"
    ENROLMENT = "ENR"
    PROTOCOL = "PROTO"
    NETWORK = "NET"
    CRYPTO = "CRYPTO"
    STORE = "STORE"
    DISCOVERY = "DISC"
    CONFIG = "CONFIG"
    VALIDATION = "VAL"
    UNKNOWN = "UNKNOWN"


_CATEGORY_PREFIXES = (
    ("CSR", WebSrmErrorCategory.CSR),
    ("ENR", WebSrmErrorCategory.ENROLMENT),
    ("PROTO", WebSrmErrorCategory.PROTOCOL),
    ("NET", WebSrmErrorCategory.NETWORK),
    ("CRYPTO", WebSrmErrorCategory.CRYPTO),
    ("STORE", WebSrmErrorCategory.STORE),
    ("DISC", WebSrmErrorCategory.DISCOVERY),
    ("CONFIG", WebSrmErrorCategory.CONFIG),
    ("VAL", WebSrmErrorCategory.VALIDATION),
)


class WebSrmError(Exception):
    """
    Base exception for WEB-SRM errors

    All errors raised by the client extend from this class so callers can
    catch one type and still inspect the code, HTTP status and category.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.cause = cause
        self.details = details
        self.timestamp = datetime.now(timezone.utc)
        self.category = self._determine_category(code)

    def _determine_category(self, code: Optional[str]) -> WebSrmErrorCategory:
        """Determine error category from code"""
        if not code:
            return WebSrmErrorCategory.UNKNOWN

        for prefix, category in _CATEGORY_PREFIXES:
            if code.startswith(prefix):
                return category

        return WebSrmErrorCategory.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary"""
        return {
            "name": self.__class__.__name__,
            "message": str(self),
            "code": self.code,
            "status_code": self.status_code,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }

    def has_code(self, code: str) -> bool:
        """Check if error has a specific code"""
        return self.code == code

    def is_category(self, category: WebSrmErrorCategory) -> bool:
        """Check if error belongs to a category"""
        return self.category == category

    def get_description(self) -> str:
        """Get human-readable error description"""
        parts = [str(self)]

        if self.code:
            parts.insert(0, f"[{self.code}]")

        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")

        return " ".join(parts)


class ValidationError(WebSrmError):
    """Validation error"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code="VALIDATION_ERROR", details=details)
        self.field = field


class MalformedDnOrderError(WebSrmError):
    """
    Raised when a Distinguished Name is not in the protocol's fixed order

    The CA reads the subject positionally, so a permuted DN is rejected
    before any key is generated or any request leaves the process.
    """

    def __init__(
        self,
        message: str,
        expected: Optional[Sequence[str]] = None,
        actual: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="CSR01",
            details={
                "expected": list(expected) if expected else None,
                "actual": list(actual) if actual else None,
            },
        )
        self.expected = list(expected) if expected else []
        self.actual = list(actual) if actual else []


class TransportError(WebSrmError):
    """
    Transport-level failure (timeout, refused connection, TLS handshake)

    Distinct from an HTTP error status: a TransportError means no
    application-level response was obtained.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        network_code: str = "NET10",
        retryable: bool = True,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            message, code=network_code, status_code=status_code, cause=cause
        )
        self.network_code = network_code
        self.retryable = retryable

    @property
    def is_tls_failure(self) -> bool:
        """True when the failure happened during the TLS handshake"""
        return self.network_code == "NET04"

    @classmethod
    def timeout(
        cls, message: str = "Request timed out", cause: Optional[Exception] = None
    ) -> "TransportError":
        """Create a timeout error"""
        return cls(
            message, status_code=408, network_code="NET01", retryable=True, cause=cause
        )

    @classmethod
    def connection_refused(
        cls, message: str = "Connection refused", cause: Optional[Exception] = None
    ) -> "TransportError":
        """Create a connection refused error"""
        return cls(message, network_code="NET02", retryable=True, cause=cause)

    @classmethod
    def circuit_breaker_open(cls, retry_after_seconds: int) -> "TransportError":
        """Create a circuit breaker open error"""
        return cls(
            f"Circuit breaker is open. Retry after {retry_after_seconds} seconds",
            status_code=503,
            network_code="NET05",
            retryable=False,
        )

    @classmethod
    def ssl_error(
        cls, message: str = "SSL/TLS error", cause: Optional[Exception] = None
    ) -> "TransportError":
        """Create an SSL error"""
        return cls(message, network_code="NET04", retryable=False, cause=cause)


class ProtocolViolationError(WebSrmError):
    """Success status received without the payload the protocol guarantees"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        result: Optional["EnrollmentResult"] = None,
    ) -> None:
        super().__init__(message, code="PROTO01", status_code=status_code)
        self.result = result


class RejectedError(WebSrmError):
    """
    The remote service refused the request

    Carries the raw error records returned by the server; they are the only
    signal that tells a bad DN apart from bad headers or a wrong partner
    registration.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List["ErrorRecord"]] = None,
        status_code: Optional[int] = None,
        result: Optional["EnrollmentResult"] = None,
    ) -> None:
        super().__init__(message, code="ENR01", status_code=status_code)
        self.errors: List["ErrorRecord"] = list(errors or [])
        self.result = result

    def get_description(self) -> str:
        lines = [super().get_description()]
        for record in self.errors:
            lines.append(f"  - [{record.code or '?'}] {record.id}: {record.message}")
        return "\n".join(lines)


class InvalidCertificateError(WebSrmError):
    """Certificate could not be parsed or lacks validity fields"""

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code="CRYPTO40", cause=cause, details=details)


class NotFoundError(WebSrmError):
    """No certificate bundle exists for the requested enrollment identifier"""

    def __init__(self, enrollment_id: str) -> None:
        super().__init__(
            f"No certificate bundle found for enrollment '{enrollment_id}'",
            code="STORE01",
        )
        self.enrollment_id = enrollment_id


class DiscoveryExhaustedError(WebSrmError):
    """Iteration budget spent while missing-field errors remained"""

    def __init__(self, message: str, report: Optional["DiscoveryReport"] = None) -> None:
        super().__init__(message, code="DISC01")
        self.report = report


class CanonicalizationError(WebSrmError):
    """
    Payload cannot be reduced to canonical bytes

    This is a programmer error (unsupported type, NaN, non-string key) and is
    never worth retrying.
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="CRYPTO50", details={"path": path})
        self.path = path


class CryptoError(WebSrmError):
    """Cryptographic operation error"""

    def __init__(
        self,
        message: str,
        code: str = "CRYPTO01",
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, cause=cause, details=details)


class ConfigError(WebSrmError):
    """Configuration error"""

    def __init__(
        self,
        message: str,
        code: str = "CONFIG01",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
