"""
WEB-SRM certificate enrolment and transaction signing client for Python

Main entry point for the package
"""

from websrm.exceptions import (
    WebSrmError,
    WebSrmErrorCategory,
    ValidationError,
    MalformedDnOrderError,
    TransportError,
    ProtocolViolationError,
    RejectedError,
    InvalidCertificateError,
    NotFoundError,
    DiscoveryExhaustedError,
    CanonicalizationError,
    CryptoError,
    ConfigError,
)

# Configuration
from websrm.config import (
    WebSrmConfig,
    PartialWebSrmConfig,
    WebSrmEnvironment,
    ConfigLoader,
    ConfigValidator,
    WEBSRM_BASE_URLS,
    WEBSRM_ENROLMENT_URLS,
    ENV_VAR_MAPPING,
    ConfigDefaults,
)

# Models
from websrm.models import (
    DistinguishedName,
    KeyMaterial,
    CsrArtifact,
    EnrolmentOperation,
    EnrollmentOutcome,
    EnrollmentRequest,
    EnrollmentResult,
    ErrorRecord,
    CertificateBundle,
    ProtocolHeaders,
)

# Crypto
from websrm.crypto import (
    CsrBuilder,
    CertificateInspector,
    CertificateSummary,
    CertificateStore,
    CanonicalDocument,
    canonicalize,
    CanonicalSigner,
    SignatureEnvelope,
    SignatureFormat,
    SignedTransaction,
    TransactionSigner,
)

# Clients
from websrm.client import (
    HttpClient,
    HttpRequestOptions,
    HttpResponse,
    HttpAuditEntry,
    CircuitState,
    CircuitBreakerConfig,
    EnrollmentClient,
    MutualTlsSession,
    RawResponse,
)

# Discovery
from websrm.discovery import (
    SchemaDiscoveryHarness,
    DiscoveryIteration,
    DiscoveryReport,
    DiscoveryState,
    ErrorClassifier,
    ErrorCategory,
    is_missing_field,
)

__version__ = "0.1.0"

__all__ = [
    # Exceptions
    "WebSrmError",
    "WebSrmErrorCategory",
    "ValidationError",
    "MalformedDnOrderError",
    "TransportError",
    "ProtocolViolationError",
    "RejectedError",
    "InvalidCertificateError",
    "NotFoundError",
    "DiscoveryExhaustedError",
    "CanonicalizationError",
    "CryptoError",
    "ConfigError",
    # Configuration
    "WebSrmConfig",
    "PartialWebSrmConfig",
    "WebSrmEnvironment",
    "ConfigLoader",
    "ConfigValidator",
    "WEBSRM_BASE_URLS",
    "WEBSRM_ENROLMENT_URLS",
    "ENV_VAR_MAPPING",
    "ConfigDefaults",
    # Models
    "DistinguishedName",
    "KeyMaterial",
    "CsrArtifact",
    "EnrolmentOperation",
    "EnrollmentOutcome",
    "EnrollmentRequest",
    "EnrollmentResult",
    "ErrorRecord",
    "CertificateBundle",
    "ProtocolHeaders",
    # Crypto
    "CsrBuilder",
    "CertificateInspector",
    "CertificateSummary",
    "CertificateStore",
    "CanonicalDocument",
    "canonicalize",
    "CanonicalSigner",
    "SignatureEnvelope",
    "SignatureFormat",
    "SignedTransaction",
    "TransactionSigner",
    # Clients
    "HttpClient",
    "HttpRequestOptions",
    "HttpResponse",
    "HttpAuditEntry",
    "CircuitState",
    "CircuitBreakerConfig",
    "EnrollmentClient",
    "MutualTlsSession",
    "RawResponse",
    # Discovery
    "SchemaDiscoveryHarness",
    "DiscoveryIteration",
    "DiscoveryReport",
    "DiscoveryState",
    "ErrorClassifier",
    "ErrorCategory",
    "is_missing_field",
]
