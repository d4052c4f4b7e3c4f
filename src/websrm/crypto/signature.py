"""
Canonical signing

Signs canonical JSON documents with ECDSA P-256 over their SHA-256
digest and builds the chained signature block carried by transactions.
"""

import base64
import copy
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

from websrm.crypto.canonical import CanonicalDocument, canonicalize
from websrm.crypto.certificate import CertificateInspector
from websrm.exceptions import CryptoError, ValidationError
from websrm.models.bundle import CertificateBundle
from websrm.models.csr import KeyMaterial
from websrm.models.headers import ProtocolHeaders


logger = logging.getLogger(__name__)

DIGEST_ALGORITHM = "SHA-256"
SIGNATURE_ALGORITHM = "ECDSA P-256"

# P-256 scalar size in bytes
_COORDINATE_SIZE = 32

# Placeholder "previous signature" of the first transaction in a chain
FIRST_PREVIOUS_SIGNATURE = "=" * 88

# Base64 of a 64-byte P1363 signature
_CHAINED_SIGNATURE_PATTERN = re.compile(r"[A-Za-z0-9+/=]{88}")


class SignatureFormat(str, Enum):
    """Encoding of the ECDSA signature value"""
    P1363 = "P1363"  # raw r || s, 64 bytes
    DER = "DER"


def der_to_p1363(signature: bytes) -> bytes:
    """Convert a DER ECDSA signature to fixed-width r || s"""
    r, s = decode_dss_signature(signature)
    return r.to_bytes(_COORDINATE_SIZE, "big") + s.to_bytes(_COORDINATE_SIZE, "big")


def p1363_to_der(signature: bytes) -> bytes:
    """Convert a fixed-width r || s signature to DER"""
    if len(signature) != 2 * _COORDINATE_SIZE:
        raise CryptoError(
            f"P1363 signature must be {2 * _COORDINATE_SIZE} bytes, got {len(signature)}",
            code="CRYPTO31",
        )
    r = int.from_bytes(signature[:_COORDINATE_SIZE], "big")
    s = int.from_bytes(signature[_COORDINATE_SIZE:], "big")
    return encode_dss_signature(r, s)


@dataclass(frozen=True)
class SignatureEnvelope:
    """
    Signature over a canonical document

    Attributes:
        signature_bytes: Signature value in ``signature_format`` encoding
        signing_certificate_fingerprint: SHA-256 of the signing certificate,
            lowercase hex, when the signer knows its certificate
    """
    signature_bytes: bytes
    signing_certificate_fingerprint: Optional[str] = None
    signature_format: SignatureFormat = SignatureFormat.P1363
    digest_algorithm: str = DIGEST_ALGORITHM
    signature_algorithm: str = SIGNATURE_ALGORITHM

    @property
    def signature_b64(self) -> str:
        return base64.b64encode(self.signature_bytes).decode("ascii")


class CanonicalSigner:
    """
    Canonicalize, hash and sign payloads

    Example:
        >>> signer = CanonicalSigner(certificate_pem=bundle.certificate_pem)
        >>> document, envelope = signer.sign({"b": 1, "a": 2}, key)
        >>> document.text
        '{"a":2,"b":1}'
    """

    def __init__(
        self,
        signature_format: SignatureFormat = SignatureFormat.P1363,
        certificate_pem: Optional[str] = None,
    ) -> None:
        self._format = signature_format
        self._fingerprint = (
            CertificateInspector().fingerprint_hex(certificate_pem)
            if certificate_pem
            else None
        )

    @property
    def signature_format(self) -> SignatureFormat:
        return self._format

    def sign(
        self,
        payload: Any,
        key: Union[KeyMaterial, ec.EllipticCurvePrivateKey],
    ) -> Tuple[CanonicalDocument, SignatureEnvelope]:
        """
        Sign a JSON payload

        Args:
            payload: JSON-compatible value
            key: Key pair or private key

        Returns:
            Tuple of (CanonicalDocument, SignatureEnvelope)

        Raises:
            CanonicalizationError: If the payload has no canonical form
            CryptoError: If signing fails
        """
        document = canonicalize(payload)
        return document, self.sign_document(document, key)

    def sign_document(
        self,
        document: CanonicalDocument,
        key: Union[KeyMaterial, ec.EllipticCurvePrivateKey],
    ) -> SignatureEnvelope:
        """Sign an already canonical document"""
        private_key = key.private_key if isinstance(key, KeyMaterial) else key
        if not isinstance(private_key.curve, ec.SECP256R1):
            raise CryptoError(
                f"Signing key must be on P-256, got {private_key.curve.name}",
                code="CRYPTO30",
            )

        try:
            der = private_key.sign(document.digest, ec.ECDSA(Prehashed(hashes.SHA256())))
        except Exception as e:
            raise CryptoError(
                f"Failed to sign document: {e}", code="CRYPTO33", cause=e
            ) from e

        signature = der_to_p1363(der) if self._format == SignatureFormat.P1363 else der
        return SignatureEnvelope(
            signature_bytes=signature,
            signing_certificate_fingerprint=self._fingerprint,
            signature_format=self._format,
        )

    def verify(
        self,
        document: Union[CanonicalDocument, bytes],
        envelope: SignatureEnvelope,
        public_key: ec.EllipticCurvePublicKey,
    ) -> bool:
        """
        Verify an envelope against the canonical bytes it claims to cover

        Returns:
            True if the signature is valid for the given public key
        """
        data = document.data if isinstance(document, CanonicalDocument) else document
        digest = CanonicalDocument(data).digest

        signature = envelope.signature_bytes
        if envelope.signature_format == SignatureFormat.P1363:
            try:
                signature = p1363_to_der(signature)
            except CryptoError:
                return False

        try:
            public_key.verify(signature, digest, ec.ECDSA(Prehashed(hashes.SHA256())))
            return True
        except InvalidSignature:
            return False


@dataclass
class SignedTransaction:
    """
    A transaction ready for submission

    Attributes:
        body: Request body with the signature block under transActu.signa
        headers: Protocol headers including the transaction flags
        document: Canonical form of the transaction before signing
        envelope: Signature over ``document``
    """
    body: Dict[str, Any]
    headers: Dict[str, str] = field(repr=False)
    document: CanonicalDocument
    envelope: SignatureEnvelope

    @property
    def signature(self) -> str:
        """Base64 signature, the ``previous_signature`` of the next transaction"""
        return self.envelope.signature_b64


class TransactionSigner:
    """
    Signs transactions with an enrolled certificate bundle

    Each signature block links to the previous transaction's signature;
    the first transaction of a chain links to a placeholder. Signatures are
    always P1363 so that both links are 88 base64 characters.

    Example:
        >>> signer = TransactionSigner(bundle, headers, tps_number="...", tvq_number="...")
        >>> first = signer.sign_transaction(payload)
        >>> second = signer.sign_transaction(payload2, first.signature)
    """

    def __init__(
        self,
        bundle: CertificateBundle,
        headers: ProtocolHeaders,
        tps_number: str,
        tvq_number: str,
        key_password: Optional[str] = None,
    ) -> None:
        self._bundle = bundle
        self._headers = headers
        self._tps_number = tps_number
        self._tvq_number = tvq_number
        self._private_key = bundle.load_private_key(key_password)
        self._signer = CanonicalSigner(SignatureFormat.P1363, bundle.certificate_pem)

    @property
    def signer(self) -> CanonicalSigner:
        return self._signer

    def sign_transaction(
        self,
        payload: Dict[str, Any],
        previous_signature: Optional[str] = None,
        signed_at: Optional[datetime] = None,
    ) -> SignedTransaction:
        """
        Sign one transaction and wrap it for submission

        Args:
            payload: Transaction fields (without any signature block)
            previous_signature: Base64 signature of the previous transaction
            signed_at: Signing time written as datActu (default: now, local offset)

        Returns:
            SignedTransaction

        Raises:
            ValidationError: If previous_signature is not an 88-character
                base64 signature
        """
        if previous_signature is not None and not _CHAINED_SIGNATURE_PATTERN.fullmatch(
            previous_signature
        ):
            raise ValidationError(
                "previous_signature must be exactly 88 base64 characters",
                field="previous_signature",
            )

        document, envelope = self._signer.sign(payload, self._private_key)

        transaction = copy.deepcopy(payload)
        transaction["signa"] = {
            "empreinteCert": envelope.signing_certificate_fingerprint,
            "hash": {"actu": document.digest_hex},
            "actu": envelope.signature_b64,
            "preced": previous_signature or FIRST_PREVIOUS_SIGNATURE,
            "datActu": (signed_at or datetime.now().astimezone()).isoformat(
                timespec="seconds"
            ),
        }

        logger.debug(
            "Signed transaction for %s (sha256 %s)",
            self._bundle.enrollment_id,
            document.digest_hex,
        )
        return SignedTransaction(
            body={"reqTrans": {"transActu": transaction}},
            headers=self._headers.to_transaction_headers(
                self._tps_number, self._tvq_number
            ),
            document=document,
            envelope=envelope,
        )
