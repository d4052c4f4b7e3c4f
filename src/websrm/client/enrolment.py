"""
Enrolment client

Submits Add (AJO) and Cancel (SUP) operations to the certificate
authority and classifies the outcome:

    Add,    201 + certificate  -> EnrollmentResult(outcome=ENROLLED)
    Add,    201, no certificate -> ProtocolViolationError
    Cancel, 2xx, no listErr     -> EnrollmentResult(outcome=CANCELLED)
    anything else               -> RejectedError(errors)

Enrolment is not idempotent, so a submission is never retried here.
"""

import logging
from typing import Optional, Tuple

from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)

from websrm.client.envelope import collect_errors, operation_result, text_field
from websrm.client.http_client import HttpClient, HttpRequestOptions, HttpResponse
from websrm.config.websrm_config import WebSrmConfig
from websrm.crypto.certificate import CertificateInspector
from websrm.crypto.csr import CsrBuilder
from websrm.crypto.store import CertificateStore
from websrm.exceptions import (
    InvalidCertificateError,
    NotFoundError,
    ProtocolViolationError,
    RejectedError,
    ValidationError,
)
from websrm.models.bundle import CertificateBundle
from websrm.models.csr import KeyMaterial
from websrm.models.dn import DistinguishedName
from websrm.models.enrolment import (
    EnrolmentOperation,
    EnrollmentOutcome,
    EnrollmentRequest,
    EnrollmentResult,
)
from websrm.models.headers import ProtocolHeaders


logger = logging.getLogger(__name__)

RESULT_KEY = "retourCertif"

HTTP_CREATED = 201


class EnrollmentClient:
    """
    Client for the certificate authority enrolment endpoint

    Example:
        >>> client = EnrollmentClient(config, store=CertificateStore(config.cert_dir))
        >>> result, bundle = client.enroll(dn, enrollment_id="pos-1")
        >>> bundle.device_id
        'X1'
    """

    def __init__(
        self,
        config: WebSrmConfig,
        store: Optional[CertificateStore] = None,
        http_client: Optional[HttpClient] = None,
        csr_builder: Optional[CsrBuilder] = None,
        inspector: Optional[CertificateInspector] = None,
    ) -> None:
        """
        Args:
            config: Resolved configuration for one environment
            store: Where successful enrolments are persisted
            http_client: Transport (default: one bound to the enrolment URL)
            csr_builder: Key pair and CSR generator
            inspector: Certificate parser used before anything is saved
        """
        self.config = config
        self.store = store
        self._http = http_client or HttpClient(
            config, base_url=config.get_resolved_enrolment_url()
        )
        self._csr_builder = csr_builder or CsrBuilder()
        self._inspector = inspector or CertificateInspector()

    @property
    def http_client(self) -> HttpClient:
        return self._http

    def default_headers(self) -> ProtocolHeaders:
        return ProtocolHeaders.from_config(self.config)

    def submit(
        self,
        request: EnrollmentRequest,
        headers: Optional[ProtocolHeaders] = None,
        enrollment_id: Optional[str] = None,
        key: Optional[KeyMaterial] = None,
        timeout: Optional[int] = None,
    ) -> EnrollmentResult:
        """
        Send one enrolment operation and classify the response

        When ``enrollment_id`` and ``key`` are given and a store is
        configured, a successful Add is saved as the active bundle; a
        successful Cancel invalidates it.

        Args:
            request: Add or Cancel request
            headers: Protocol headers (default: built from the config)
            enrollment_id: Store key for the resulting bundle
            key: Key pair whose CSR is being submitted (Add only)
            timeout: Per-call timeout in milliseconds

        Returns:
            EnrollmentResult with ``outcome`` set

        Raises:
            TransportError: If no HTTP response was obtained
            ProtocolViolationError: 201 without a certificate
            RejectedError: Any other non-success outcome
            InvalidCertificateError: The issued certificate does not parse
                or does not match the submitted key
        """
        headers = headers or self.default_headers()

        logger.info(
            "Submitting enrolment %s to %s",
            request.operation.name,
            self._http.base_url,
        )
        response = self._http.post(
            "",
            request.to_body(),
            HttpRequestOptions(
                headers=headers.to_http_headers(),
                timeout=timeout,
                skip_retry=True,
            ),
        )

        result = self.parse_response(response)
        if request.operation == EnrolmentOperation.ADD:
            result = self._classify_add(result)
            if enrollment_id and key is not None:
                self._save(result, enrollment_id, key)
        else:
            result = self._classify_cancel(result)
            if enrollment_id and self.store is not None:
                self.store.invalidate(enrollment_id)

        return result

    def enroll(
        self,
        dn: DistinguishedName,
        enrollment_id: str,
        headers: Optional[ProtocolHeaders] = None,
        timeout: Optional[int] = None,
    ) -> Tuple[EnrollmentResult, CertificateBundle]:
        """
        Generate a key pair and CSR, enrol it, and store the bundle

        Returns:
            Tuple of (EnrollmentResult, CertificateBundle)
        """
        key, csr = self._csr_builder.generate(dn)
        logger.info("Enrolling %s with CSR %s", enrollment_id, csr.digest)

        if self.store is None:
            result = self.submit(EnrollmentRequest.add(csr), headers, timeout=timeout)
            return result, self._build_bundle(result, enrollment_id, key)

        with self.store.locked(enrollment_id):
            result = self.submit(EnrollmentRequest.add(csr), headers, timeout=timeout)
            bundle = self._build_bundle(result, enrollment_id, key)
            self.store.save(bundle)
        return result, bundle

    def cancel(
        self,
        enrollment_id: str,
        serial: Optional[str] = None,
        headers: Optional[ProtocolHeaders] = None,
        timeout: Optional[int] = None,
    ) -> EnrollmentResult:
        """
        Cancel an issued certificate and invalidate its stored bundle

        Args:
            enrollment_id: Store key of the bundle to cancel
            serial: Certificate serial (default: read from the stored certificate)
        """
        if self.store is None and serial is None:
            raise ValidationError(
                "A serial is required when no store is configured", field="serial"
            )

        if self.store is None:
            return self.submit(EnrollmentRequest.cancel(serial), headers, timeout=timeout)

        with self.store.locked(enrollment_id):
            stored = None
            if serial is None or headers is None:
                stored = self.store.find(enrollment_id)
            if serial is None:
                if stored is None:
                    raise NotFoundError(enrollment_id)
                serial = self.serial_for_cancel(stored.certificate_pem)
            if headers is None:
                headers = self.default_headers()
                if stored is not None and stored.device_id:
                    headers = headers.with_device_id(stored.device_id)
            return self.submit(
                EnrollmentRequest.cancel(serial), headers, enrollment_id, timeout=timeout
            )

    def serial_for_cancel(self, certificate_pem: str) -> str:
        """Certificate serial as the CA expects it in noSerie (lowercase hex)"""
        serial = self._inspector.inspect(certificate_pem).serial_hex.lower()
        return serial if len(serial) % 2 == 0 else "0" + serial

    def parse_response(self, response: HttpResponse) -> EnrollmentResult:
        """Parse a raw enrolment response without classifying it"""
        body = response.json()
        result = operation_result(body, RESULT_KEY)

        return EnrollmentResult(
            http_status=response.status,
            certificate_pem=text_field(result, "certif"),
            ca_chain_pem=text_field(result, "certifPSI"),
            device_id=text_field(result, "idApprl"),
            errors=collect_errors(body),
            raw=body if body is not None else response.text,
        )

    # ============ Private Helper Methods ============

    def _classify_add(self, result: EnrollmentResult) -> EnrollmentResult:
        if result.http_status == HTTP_CREATED:
            if not result.has_certificate:
                raise ProtocolViolationError(
                    "Enrolment answered 201 without a certificate",
                    status_code=result.http_status,
                    result=result,
                )
            if result.errors:
                logger.warning(
                    "Enrolment succeeded with %d error record(s): %s",
                    len(result.errors),
                    "; ".join(str(e) for e in result.errors),
                )
            return result.model_copy(update={"outcome": EnrollmentOutcome.ENROLLED})

        raise self._rejected(result, "Enrolment rejected")

    def _classify_cancel(self, result: EnrollmentResult) -> EnrollmentResult:
        if 200 <= result.http_status < 300 and not result.errors:
            return result.model_copy(update={"outcome": EnrollmentOutcome.CANCELLED})

        raise self._rejected(result, "Certificate cancellation rejected")

    def _rejected(self, result: EnrollmentResult, message: str) -> RejectedError:
        error = RejectedError(
            f"{message} (HTTP {result.http_status}, {len(result.errors)} error record(s))",
            errors=result.errors,
            status_code=result.http_status,
            result=result,
        )
        logger.error(error.get_description())
        return error

    def _build_bundle(
        self, result: EnrollmentResult, enrollment_id: str, key: KeyMaterial
    ) -> CertificateBundle:
        summary = self._inspector.inspect(result.certificate_pem)
        if not self._inspector.key_matches(result.certificate_pem, key.private_key):
            raise InvalidCertificateError(
                "Issued certificate does not match the submitted key",
                details={"serial": summary.serial_hex},
            )

        return CertificateBundle(
            enrollment_id=enrollment_id,
            private_key_pem=key.private_key.private_bytes(
                encoding=Encoding.PEM,
                format=PrivateFormat.PKCS8,
                encryption_algorithm=NoEncryption(),
            ).decode("utf-8"),
            certificate_pem=result.certificate_pem,
            ca_chain_pem=result.ca_chain_pem,
            device_id=result.device_id,
        )

    def _save(
        self, result: EnrollmentResult, enrollment_id: str, key: KeyMaterial
    ) -> None:
        bundle = self._build_bundle(result, enrollment_id, key)
        if self.store is not None:
            self.store.save(bundle)
