"""
Network clients: HTTP transport, enrolment and mutual TLS
"""

from websrm.client.http_client import (
    HttpClient,
    HttpMethod,
    HttpResponse,
    HttpRequestOptions,
    HttpAuditEntry,
    CircuitState,
    CircuitBreakerConfig,
    redact_sensitive_data,
)
from websrm.client.envelope import collect_errors, operation_result
from websrm.client.enrolment import EnrollmentClient
from websrm.client.mtls import MutualTlsSession, RawResponse

__all__ = [
    "HttpClient",
    "HttpMethod",
    "HttpResponse",
    "HttpRequestOptions",
    "HttpAuditEntry",
    "CircuitState",
    "CircuitBreakerConfig",
    "redact_sensitive_data",
    "collect_errors",
    "operation_result",
    "EnrollmentClient",
    "MutualTlsSession",
    "RawResponse",
]
