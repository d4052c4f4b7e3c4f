"""
Certificate bundle model
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from websrm.exceptions import CryptoError


@dataclass(frozen=True)
class CertificateBundle:
    """
    Everything needed to act as an enrolled device

    A bundle is never mutated: re-enrolment produces a new bundle that
    supersedes the old one in the CertificateStore.

    Attributes:
        enrollment_id: Logical identity the bundle is stored under
        private_key_pem: PKCS#8 PEM private key (excluded from repr)
        certificate_pem: Issued client certificate
        ca_chain_pem: Issuing CA certificate(s), used as the trust anchor
        issued_at: When the bundle was created locally
        device_id: Opaque device identifier assigned by the CA (idApprl)
    """
    enrollment_id: str
    private_key_pem: str = field(repr=False)
    certificate_pem: str
    ca_chain_pem: Optional[str] = None
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    device_id: Optional[str] = None

    def load_private_key(self, password: Optional[str] = None) -> EllipticCurvePrivateKey:
        """
        Load the private key object

        Raises:
            CryptoError: If the key cannot be decoded or is not an EC key
        """
        try:
            key = load_pem_private_key(
                self.private_key_pem.encode("utf-8"),
                password=password.encode("utf-8") if password else None,
            )
        except (ValueError, TypeError) as e:
            raise CryptoError(
                f"Failed to load private key for '{self.enrollment_id}'",
                code="CRYPTO03",
                cause=e,
            ) from e

        if not isinstance(key, EllipticCurvePrivateKey):
            raise CryptoError(
                f"Unsupported key type: {type(key).__name__}. Only EC keys are supported.",
                code="CRYPTO03",
            )
        return key
