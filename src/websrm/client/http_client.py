"""
HTTP transport layer for WEB-SRM
Handles HTTP communication with bounded transport retries, interceptors,
circuit breaker pattern, audit logging and connection pooling
"""

import time
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
    Union,
)

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from websrm.config.websrm_config import WebSrmConfig
from websrm.exceptions import TransportError, WebSrmError


# Logger for this module
logger = logging.getLogger(__name__)


class HttpMethod(str, Enum):
    """HTTP method types supported"""
    GET = "GET"
    POST = "POST"


class CircuitState(str, Enum):
    """Circuit breaker states"""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration"""
    failure_threshold: int = 5
    recovery_timeout: int = 30000  # milliseconds
    success_threshold: int = 3


@dataclass
class HttpRequestOptions:
    """
    Request options for HTTP client

    Attributes:
        headers: Extra headers, merged over the session defaults
        timeout: Per-call timeout in milliseconds (overrides the config)
        skip_retry: Disable transport retries for this call
        cert: Client certificate as (cert_file, key_file)
        verify: Trust anchor file, True for system trust, False to skip
            server validation (test mode only)
    """
    headers: Optional[Dict[str, str]] = None
    timeout: Optional[int] = None
    skip_retry: bool = False
    cert: Optional[Tuple[str, str]] = None
    verify: Union[bool, str, None] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class HttpResponse:
    """
    HTTP response wrapper

    Returned for every HTTP status; an error status is application data,
    not a transport failure.
    """
    data: Any
    status: int
    headers: Dict[str, str]
    duration: int  # milliseconds
    request_id: str
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Parsed JSON body, or None when the body was not JSON"""
        return self.data if isinstance(self.data, (dict, list)) else None


@dataclass
class HttpAuditEntry:
    """Audit log entry for HTTP requests"""
    timestamp: str
    request_id: str
    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[Any] = None
    response: Optional[Dict[str, Any]] = None
    duration: int = 0
    success: bool = False
    error: Optional[str] = None
    retry_attempt: Optional[int] = None


# Sensitive fields that should be redacted in logs
SENSITIVE_FIELDS = [
    "codautori",
    "auth_code",
    "authorization",
    "privatekey",
    "private_key",
    "password",
]


# Request interceptor type
RequestInterceptor = Callable[[requests.PreparedRequest], requests.PreparedRequest]

# Response interceptor type
ResponseInterceptor = Callable[[requests.Response], requests.Response]


def redact_sensitive_data(obj: Any) -> Any:
    """Redact sensitive keys from headers or bodies before they are logged"""
    if obj is None or isinstance(obj, str):
        return obj

    if isinstance(obj, list):
        return [redact_sensitive_data(item) for item in obj]

    if isinstance(obj, dict):
        redacted = {}
        for key, value in obj.items():
            lower_key = str(key).lower()
            if any(field in lower_key for field in SENSITIVE_FIELDS):
                redacted[key] = "[REDACTED]"
            elif isinstance(value, (dict, list)):
                redacted[key] = redact_sensitive_data(value)
            else:
                redacted[key] = value
        return redacted

    return obj


class HttpClient:
    """
    HTTP Client for WEB-SRM endpoints

    Features:
    - Bounded retry with exponential backoff, transport failures only
    - Circuit breaker tripped by transport failures (never by HTTP status)
    - Request/response interceptors
    - Request ID generation for traceability
    - Audit logging with redaction
    - Connection keep-alive via session pooling

    Example:
        >>> client = HttpClient(config, base_url=config.get_resolved_enrolment_url())
        >>> response = client.post("", {"reqCertif": {...}})
        >>> response.status
        201
    """

    def __init__(
        self,
        config: WebSrmConfig,
        base_url: Optional[str] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Create a new HTTP client instance

        Args:
            config: Resolved WEB-SRM configuration
            base_url: Base URL for relative paths (default: config base URL)
            circuit_breaker_config: Optional circuit breaker configuration
            session: Optional preconfigured requests session
        """
        self.config = config
        self._base_url = (base_url or config.get_resolved_base_url()).rstrip("/")
        self.circuit_config = circuit_breaker_config or CircuitBreakerConfig()

        # Circuit breaker state
        self._circuit_state = CircuitState.CLOSED
        self._circuit_failure_count = 0
        self._circuit_success_count = 0
        self._circuit_open_time = 0.0

        # Custom interceptors
        self._request_interceptors: List[RequestInterceptor] = []
        self._response_interceptors: List[ResponseInterceptor] = []

        # Audit logging callback
        self._audit_log_callback: Optional[Callable[[HttpAuditEntry], None]] = None

        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session with connection pooling"""
        session = requests.Session()

        session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

        # urllib3 never retries; transport retries are handled here
        adapter = HTTPAdapter(
            pool_connections=10,
            pool_maxsize=10,
            max_retries=Retry(total=0, read=False, raise_on_status=False),
        )

        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def _generate_request_id(self) -> str:
        """Generate unique request ID for traceability"""
        timestamp = hex(int(time.time() * 1000))[2:]
        unique_id = uuid.uuid4().hex[:8]
        return f"websrm-{timestamp}-{unique_id}"

    def _resolve_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        if not url:
            return self._base_url
        return f"{self._base_url}/{url.lstrip('/')}"

    def _check_circuit_breaker(self) -> None:
        """Check circuit breaker state and raise if open"""
        if self._circuit_state == CircuitState.OPEN:
            time_since_open = (time.time() * 1000) - self._circuit_open_time

            if time_since_open >= self.circuit_config.recovery_timeout:
                self._circuit_state = CircuitState.HALF_OPEN
                self._circuit_success_count = 0
                logger.info("Circuit breaker transitioning to HALF_OPEN state")
            else:
                retry_after = int(
                    (self.circuit_config.recovery_timeout - time_since_open) / 1000
                )
                raise TransportError.circuit_breaker_open(retry_after)

    def _record_circuit_success(self) -> None:
        """Record circuit breaker success"""
        if self._circuit_state == CircuitState.HALF_OPEN:
            self._circuit_success_count += 1

            if self._circuit_success_count >= self.circuit_config.success_threshold:
                self._circuit_state = CircuitState.CLOSED
                self._circuit_failure_count = 0
                self._circuit_success_count = 0
                logger.info("Circuit breaker CLOSED after successful recovery")
        elif self._circuit_state == CircuitState.CLOSED:
            self._circuit_failure_count = 0

    def _record_circuit_failure(self) -> None:
        """Record circuit breaker failure"""
        if self._circuit_state == CircuitState.HALF_OPEN:
            self._circuit_state = CircuitState.OPEN
            self._circuit_open_time = time.time() * 1000
            logger.warning("Circuit breaker REOPENED after failure in half-open state")
        elif self._circuit_state == CircuitState.CLOSED:
            self._circuit_failure_count += 1

            if self._circuit_failure_count >= self.circuit_config.failure_threshold:
                self._circuit_state = CircuitState.OPEN
                self._circuit_open_time = time.time() * 1000
                logger.warning(
                    f"Circuit breaker OPENED after {self._circuit_failure_count} failures"
                )

    def _calculate_retry_delay(self, attempt: int) -> float:
        """
        Calculate retry delay with exponential backoff

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds, capped at 16 seconds
        """
        delay_ms = self.config.retry_delay * (2 ** attempt)
        delay_ms = min(delay_ms, 16000)
        return delay_ms / 1000.0

    def _normalize_error(self, error: Exception) -> WebSrmError:
        """Map requests exceptions onto TransportError"""
        if isinstance(error, WebSrmError):
            return error

        # SSLError and ConnectTimeout are ConnectionError subclasses
        if isinstance(error, requests.exceptions.SSLError):
            return TransportError.ssl_error(f"TLS handshake failed: {error}", cause=error)

        if isinstance(error, requests.exceptions.Timeout):
            return TransportError.timeout(f"Request timed out: {error}", cause=error)

        if isinstance(error, requests.exceptions.ConnectionError):
            return TransportError.connection_refused(
                f"Connection error: {error}", cause=error
            )

        if isinstance(error, requests.exceptions.RequestException):
            return TransportError(f"Request error: {error}", cause=error)

        return WebSrmError(f"Request error: {error}", cause=error)

    def _create_audit_entry(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[Any],
        request_id: str,
        start_time: float,
        response: Optional[requests.Response] = None,
        error: Optional[Exception] = None,
        retry_attempt: Optional[int] = None,
    ) -> HttpAuditEntry:
        """Create audit log entry"""
        duration = int((time.time() - start_time) * 1000)

        response_data = None
        if response is not None:
            try:
                response_body = response.json()
            except ValueError:
                response_body = response.text[:500] if response.text else None

            response_data = {
                "statusCode": response.status_code,
                "body": redact_sensitive_data(response_body),
            }

        return HttpAuditEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            method=method,
            url=url,
            headers=redact_sensitive_data(dict(headers)),
            body=redact_sensitive_data(body),
            response=response_data,
            duration=duration,
            success=error is None and response is not None and response.ok,
            error=str(error) if error else None,
            retry_attempt=retry_attempt,
        )

    def _log_audit(self, entry: HttpAuditEntry) -> None:
        """Log audit entry"""
        if self.config.enable_audit_log and self._audit_log_callback:
            self._audit_log_callback(entry)

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> None:
        """Add a custom request interceptor"""
        self._request_interceptors.append(interceptor)

    def add_response_interceptor(self, interceptor: ResponseInterceptor) -> None:
        """Add a custom response interceptor"""
        self._response_interceptors.append(interceptor)

    def set_audit_log_callback(
        self, callback: Callable[[HttpAuditEntry], None]
    ) -> None:
        """Set audit log callback"""
        self._audit_log_callback = callback

    def _apply_request_interceptors(
        self, prepared: requests.PreparedRequest
    ) -> requests.PreparedRequest:
        for interceptor in self._request_interceptors:
            prepared = interceptor(prepared)
        return prepared

    def _apply_response_interceptors(
        self, response: requests.Response
    ) -> requests.Response:
        for interceptor in self._response_interceptors:
            response = interceptor(response)
        return response

    def _execute_with_retry(
        self,
        method: HttpMethod,
        url: str,
        data: Optional[Any] = None,
        options: Optional[HttpRequestOptions] = None,
    ) -> HttpResponse:
        """Execute HTTP request, retrying transient transport failures only"""
        options = options or HttpRequestOptions()

        self._check_circuit_breaker()

        max_attempts = 1 if options.skip_retry else self.config.retry_attempts + 1
        full_url = self._resolve_url(url)
        timeout_seconds = (options.timeout or self.config.timeout) / 1000.0
        verify = self.config.verify_server if options.verify is None else options.verify

        for attempt in range(max_attempts):
            start_time = time.time()
            request_id = self._generate_request_id()

            headers = dict(self._session.headers)
            headers["X-Request-ID"] = request_id
            if options.headers:
                headers.update(options.headers)

            response: Optional[requests.Response] = None

            try:
                request = requests.Request(
                    method=method.value,
                    url=full_url,
                    headers=headers,
                    json=data if data is not None else None,
                )
                prepared = self._session.prepare_request(request)
                prepared = self._apply_request_interceptors(prepared)

                response = self._session.send(
                    prepared,
                    timeout=timeout_seconds,
                    cert=options.cert,
                    verify=verify,
                )
                response = self._apply_response_interceptors(response)

            except requests.exceptions.RequestException as e:
                self._record_circuit_failure()
                error = self._normalize_error(e)

                self._log_audit(self._create_audit_entry(
                    method=method.value,
                    url=full_url,
                    headers=headers,
                    body=data,
                    request_id=request_id,
                    start_time=start_time,
                    error=error,
                    retry_attempt=attempt,
                ))

                retryable = isinstance(error, TransportError) and error.retryable
                if attempt < max_attempts - 1 and retryable:
                    delay = self._calculate_retry_delay(attempt)
                    logger.warning(
                        f"Transport failure (attempt {attempt + 1}/{max_attempts}), "
                        f"retrying in {delay:.2f}s: {error}"
                    )
                    time.sleep(delay)
                    continue

                raise error from e

            # Any HTTP status is an answer; only transport failures trip the breaker
            self._record_circuit_success()

            self._log_audit(self._create_audit_entry(
                method=method.value,
                url=full_url,
                headers=headers,
                body=data,
                request_id=request_id,
                start_time=start_time,
                response=response,
                retry_attempt=attempt if attempt > 0 else None,
            ))

            try:
                response_data = response.json()
            except ValueError:
                response_data = response.text

            duration = int((time.time() - start_time) * 1000)
            logger.debug(
                f"{method.value} {full_url} -> {response.status_code} "
                f"in {duration}ms [{request_id}]"
            )

            return HttpResponse(
                data=response_data,
                status=response.status_code,
                headers=dict(response.headers),
                duration=duration,
                request_id=request_id,
                text=response.text or "",
            )

        # max_attempts is always at least 1
        raise WebSrmError("Unknown error occurred")

    def get(
        self,
        url: str,
        options: Optional[HttpRequestOptions] = None,
    ) -> HttpResponse:
        """
        Perform GET request

        Args:
            url: Request URL (absolute or relative to the base URL)
            options: Optional request options

        Returns:
            HTTP response wrapper
        """
        return self._execute_with_retry(HttpMethod.GET, url, None, options)

    def post(
        self,
        url: str,
        data: Optional[Any] = None,
        options: Optional[HttpRequestOptions] = None,
    ) -> HttpResponse:
        """
        Perform POST request

        Args:
            url: Request URL (absolute or relative to the base URL)
            data: JSON request body
            options: Optional request options

        Returns:
            HTTP response wrapper
        """
        return self._execute_with_retry(HttpMethod.POST, url, data, options)

    @property
    def circuit_state(self) -> CircuitState:
        """Get current circuit breaker state"""
        return self._circuit_state

    def reset_circuit_breaker(self) -> None:
        """Reset circuit breaker to closed state"""
        self._circuit_state = CircuitState.CLOSED
        self._circuit_failure_count = 0
        self._circuit_success_count = 0
        self._circuit_open_time = 0.0
        logger.info("Circuit breaker manually reset to CLOSED state")

    @property
    def base_url(self) -> str:
        """Get base URL"""
        return self._base_url

    def close(self) -> None:
        """Close the HTTP session"""
        self._session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
