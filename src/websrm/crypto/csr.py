"""
Key pair and CSR generation

Builds ECDSA P-256 key pairs and Certificate Signing Requests whose
subject follows the enrolment DN order, exported as single-line PEM.
"""

import base64
import hashlib
import logging
import re
from typing import Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding

from websrm.exceptions import CryptoError
from websrm.models.csr import CsrArtifact, KeyMaterial
from websrm.models.dn import DistinguishedName


logger = logging.getLogger(__name__)

PEM_CSR_HEADER = "-----BEGIN CERTIFICATE REQUEST-----"
PEM_CSR_FOOTER = "-----END CERTIFICATE REQUEST-----"

_PEM_CSR_PATTERN = re.compile(
    re.escape(PEM_CSR_HEADER) + r"\s*(.*?)\s*" + re.escape(PEM_CSR_FOOTER),
    re.DOTALL,
)


def to_single_line_pem(der: bytes) -> str:
    """
    Encode CSR DER bytes as PEM with the base64 body on one line

    The certificate authority rejects the usual 64-column wrapping.
    """
    body = base64.b64encode(der).decode("ascii")
    return f"{PEM_CSR_HEADER}\n{body}\n{PEM_CSR_FOOTER}"


def pem_to_der(pem: str) -> bytes:
    """
    Decode a CSR PEM, wrapped or not, back to DER

    Raises:
        CryptoError: If the PEM markers are missing or the body is not base64
    """
    match = _PEM_CSR_PATTERN.search(pem)
    if match is None:
        raise CryptoError("Not a PEM certificate request", code="CRYPTO21")
    try:
        return base64.b64decode("".join(match.group(1).split()), validate=True)
    except ValueError as e:
        raise CryptoError(
            "Certificate request PEM body is not valid base64",
            code="CRYPTO21",
            cause=e,
        ) from e


class CsrBuilder:
    """
    Generates key material and enrolment CSRs

    The CSR carries exactly one extension: a critical Key Usage of
    digitalSignature + nonRepudiation. Extended Key Usage is left to the
    certificate authority, which assigns clientAuth itself.

    Example:
        >>> builder = CsrBuilder()
        >>> key, csr = builder.generate(dn)
        >>> csr.pem.count("\\n")
        2
    """

    def generate_key_pair(self) -> KeyMaterial:
        """
        Generate a new ECDSA P-256 key pair

        Raises:
            CryptoError: If key generation fails
        """
        try:
            private_key = ec.generate_private_key(ec.SECP256R1())
        except Exception as e:
            raise CryptoError(
                f"Failed to generate key pair: {e}",
                code="CRYPTO05",
                cause=e,
            ) from e

        return KeyMaterial(public_key=private_key.public_key(), private_key=private_key)

    def build_csr(self, dn: DistinguishedName, key: KeyMaterial) -> CsrArtifact:
        """
        Build and sign a CSR for an existing key pair

        Args:
            dn: Validated Distinguished Name, used in its given order
            key: Key pair whose private half signs the request

        Returns:
            CsrArtifact with DER, single-line PEM and SHA-256 digest

        Raises:
            CryptoError: If signing fails
        """
        key_usage = x509.KeyUsage(
            digital_signature=True,
            content_commitment=True,
            key_encipherment=False,
            data_encipherment=False,
            key_agreement=False,
            key_cert_sign=False,
            crl_sign=False,
            encipher_only=False,
            decipher_only=False,
        )

        try:
            csr = (
                x509.CertificateSigningRequestBuilder()
                .subject_name(dn.to_x509_name())
                .add_extension(key_usage, critical=True)
                .sign(key.private_key, hashes.SHA256())
            )
        except Exception as e:
            raise CryptoError(
                f"Failed to generate CSR: {e}",
                code="CRYPTO09",
                cause=e,
            ) from e

        der = csr.public_bytes(Encoding.DER)
        artifact = CsrArtifact(
            der=der,
            pem=to_single_line_pem(der),
            dn=dn,
            digest=hashlib.sha256(der).hexdigest(),
        )
        logger.debug("Built CSR for %s (sha256 %s)", dn.to_string(), artifact.digest)
        return artifact

    def generate(
        self, dn: DistinguishedName, key: Optional[KeyMaterial] = None
    ) -> Tuple[KeyMaterial, CsrArtifact]:
        """
        Generate a key pair (unless one is given) and its CSR

        Args:
            dn: Distinguished Name; order was validated when it was built
            key: Optional existing key pair to reuse

        Returns:
            Tuple of (KeyMaterial, CsrArtifact)
        """
        key = key or self.generate_key_pair()
        return key, self.build_csr(dn, key)


def load_csr(artifact_or_pem) -> x509.CertificateSigningRequest:
    """Parse a CsrArtifact or CSR PEM string into a cryptography object"""
    if isinstance(artifact_or_pem, CsrArtifact):
        der = artifact_or_pem.der
    else:
        der = pem_to_der(artifact_or_pem)
    return x509.load_der_x509_csr(der)
