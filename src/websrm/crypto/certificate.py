"""
X.509 certificate inspection

Parses issued certificates into a plain summary and runs the pre-flight
checks that precede any mutual-TLS use of a certificate.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.ec import (
    EllipticCurvePrivateKey,
    EllipticCurvePublicKey,
)
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from websrm.exceptions import InvalidCertificateError
from websrm.models.bundle import CertificateBundle
from websrm.models.dn import DN_OIDS, DN_STRING_LABELS


logger = logging.getLogger(__name__)

_OID_LABELS = {oid: DN_STRING_LABELS[key] for key, oid in DN_OIDS.items()}


def format_fingerprint(digest: bytes) -> str:
    """Format a digest as colon-separated uppercase hex pairs"""
    return ":".join(f"{b:02X}" for b in digest)


def format_name(name: x509.Name) -> str:
    """Render an x509.Name in its encoded RDN order"""
    parts = []
    for rdn in name.rdns:
        for attribute in rdn:
            label = _OID_LABELS.get(attribute.oid)
            if label is None:
                parts.append(attribute.rfc4514_string())
            else:
                parts.append(f"{label}={attribute.value}")
    return ", ".join(parts)


@dataclass(frozen=True)
class CertificateSummary:
    """
    Certificate details needed before use

    Attributes:
        subject_dn: Subject DN in encoded order
        issuer_dn: Issuer DN in encoded order
        serial_hex: Serial number, uppercase hex
        not_before: Validity start (UTC)
        not_after: Validity end (UTC)
        sha256_fingerprint: SHA-256 over the DER encoding, AA:BB:... form
        sha1_fingerprint: SHA-1 over the DER encoding, lowercase hex
        public_key_algorithm: "EC" or "RSA"
    """
    subject_dn: str
    issuer_dn: str
    serial_hex: str
    not_before: datetime
    not_after: datetime
    sha256_fingerprint: str
    sha1_fingerprint: str
    public_key_algorithm: str

    def is_valid_at(self, instant: Optional[datetime] = None) -> bool:
        """Whether the validity window contains the given instant (default: now)"""
        instant = instant or datetime.now(timezone.utc)
        return self.not_before <= instant <= self.not_after

    @property
    def days_until_expiry(self) -> int:
        return (self.not_after - datetime.now(timezone.utc)).days


class CertificateInspector:
    """
    Parses and checks issued certificates

    Example:
        >>> inspector = CertificateInspector()
        >>> summary = inspector.inspect(bundle.certificate_pem)
        >>> summary.sha256_fingerprint[:5]
        '3F:A1'
    """

    def load(self, certificate_pem: Union[str, bytes]) -> x509.Certificate:
        """
        Parse the first certificate of a PEM string

        Raises:
            InvalidCertificateError: If the PEM cannot be parsed
        """
        data = (
            certificate_pem.encode("utf-8")
            if isinstance(certificate_pem, str)
            else certificate_pem
        )
        if not data or b"-----BEGIN CERTIFICATE-----" not in data:
            raise InvalidCertificateError("Input is not a PEM certificate")

        try:
            return x509.load_pem_x509_certificate(data)
        except ValueError as e:
            raise InvalidCertificateError(
                f"Failed to parse certificate: {e}", cause=e
            ) from e

    def load_chain(self, chain_pem: Union[str, bytes]) -> List[x509.Certificate]:
        """
        Parse every certificate of a PEM chain

        Raises:
            InvalidCertificateError: If the chain is empty or unparseable
        """
        data = chain_pem.encode("utf-8") if isinstance(chain_pem, str) else chain_pem
        try:
            certificates = x509.load_pem_x509_certificates(data)
        except ValueError as e:
            raise InvalidCertificateError(
                f"Failed to parse certificate chain: {e}", cause=e
            ) from e
        return certificates

    def inspect(self, certificate_pem: Union[str, bytes]) -> CertificateSummary:
        """
        Summarize a certificate

        Args:
            certificate_pem: PEM text of the certificate

        Returns:
            CertificateSummary

        Raises:
            InvalidCertificateError: If parsing fails or the validity window
                is missing or empty
        """
        certificate = self.load(certificate_pem)

        try:
            not_before = certificate.not_valid_before_utc
            not_after = certificate.not_valid_after_utc
        except ValueError as e:
            raise InvalidCertificateError(
                "Certificate validity fields are unreadable", cause=e
            ) from e

        if not_before >= not_after:
            raise InvalidCertificateError(
                "Certificate validity window is empty",
                details={
                    "not_before": not_before.isoformat(),
                    "not_after": not_after.isoformat(),
                },
            )

        return CertificateSummary(
            subject_dn=format_name(certificate.subject),
            issuer_dn=format_name(certificate.issuer),
            serial_hex=format(certificate.serial_number, "X"),
            not_before=not_before,
            not_after=not_after,
            sha256_fingerprint=format_fingerprint(
                certificate.fingerprint(hashes.SHA256())
            ),
            sha1_fingerprint=certificate.fingerprint(hashes.SHA1()).hex(),
            public_key_algorithm=self._key_algorithm(certificate),
        )

    def fingerprint_hex(self, certificate_pem: Union[str, bytes]) -> str:
        """SHA-256 fingerprint as lowercase hex, as sent in signature blocks"""
        return self.load(certificate_pem).fingerprint(hashes.SHA256()).hex()

    def key_matches(
        self,
        certificate_pem: Union[str, bytes],
        private_key: EllipticCurvePrivateKey,
    ) -> bool:
        """Whether the private key belongs to the certificate's public key"""
        public_key = self.load(certificate_pem).public_key()
        if not isinstance(public_key, EllipticCurvePublicKey):
            return False
        return public_key.public_bytes(
            Encoding.DER, PublicFormat.SubjectPublicKeyInfo
        ) == private_key.public_key().public_bytes(
            Encoding.DER, PublicFormat.SubjectPublicKeyInfo
        )

    def preflight(
        self,
        bundle: CertificateBundle,
        instant: Optional[datetime] = None,
        key_password: Optional[str] = None,
    ) -> CertificateSummary:
        """
        Check a bundle before presenting it in a TLS handshake

        Raises:
            InvalidCertificateError: If the certificate does not parse, is
                outside its validity window, or does not match the key
        """
        summary = self.inspect(bundle.certificate_pem)

        if not summary.is_valid_at(instant):
            raise InvalidCertificateError(
                f"Certificate for '{bundle.enrollment_id}' is not valid at this time "
                f"(valid {summary.not_before.isoformat()} to {summary.not_after.isoformat()})",
                details={"serial": summary.serial_hex},
            )

        private_key = bundle.load_private_key(key_password)
        if not self.key_matches(bundle.certificate_pem, private_key):
            raise InvalidCertificateError(
                f"Private key does not match certificate for '{bundle.enrollment_id}'",
                details={"serial": summary.serial_hex},
            )

        if bundle.ca_chain_pem:
            self.load_chain(bundle.ca_chain_pem)

        logger.debug(
            "Certificate %s for %s passed pre-flight",
            summary.serial_hex,
            bundle.enrollment_id,
        )
        return summary

    def _key_algorithm(self, certificate: x509.Certificate) -> str:
        public_key = certificate.public_key()
        if isinstance(public_key, EllipticCurvePublicKey):
            return "EC"
        if isinstance(public_key, RSAPublicKey):
            return "RSA"
        return type(public_key).__name__
