"""
Key material and CSR artifacts
"""

from dataclasses import dataclass, field

from cryptography.hazmat.primitives.asymmetric.ec import (
    EllipticCurvePrivateKey,
    EllipticCurvePublicKey,
)

from websrm.models.dn import DistinguishedName


KEY_ALGORITHM = "ECDSA P-256"


@dataclass(frozen=True)
class KeyMaterial:
    """
    Generated key pair

    The private key is excluded from repr so it cannot leak through
    logging or tracebacks.
    """
    public_key: EllipticCurvePublicKey
    private_key: EllipticCurvePrivateKey = field(repr=False)
    algorithm: str = KEY_ALGORITHM


@dataclass(frozen=True)
class CsrArtifact:
    """
    Certificate Signing Request ready for submission

    Attributes:
        der: DER encoding of the CSR
        pem: Single-line PEM (base64 body without line wrapping)
        dn: Distinguished Name used as the CSR subject
        digest: SHA-256 hex digest of the DER bytes
    """
    der: bytes = field(repr=False)
    pem: str = field(repr=False)
    dn: DistinguishedName
    digest: str
