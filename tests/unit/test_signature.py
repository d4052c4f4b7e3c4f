"""
Canonical Signer Unit Tests
"""

import base64
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from websrm.crypto import (
    FIRST_PREVIOUS_SIGNATURE,
    CanonicalSigner,
    CertificateInspector,
    SignatureEnvelope,
    SignatureFormat,
    TransactionSigner,
    canonicalize,
    der_to_p1363,
    p1363_to_der,
)
from websrm.exceptions import CryptoError, ValidationError
from websrm.models import CertificateBundle, ProtocolHeaders


PAYLOAD = {
    "noTrans": "0000000001",
    "datTrans": "20250101120000",
    "mont": {"avantTax": "+000010.00", "TPS": "+000000.50", "TVQ": "+000001.00"},
}


@pytest.fixture
def signer() -> CanonicalSigner:
    return CanonicalSigner()


class TestCanonicalSigner:
    """Tests for CanonicalSigner"""

    def test_sign_and_verify(self, signer: CanonicalSigner, key_and_csr):
        """Should verify a signature over the canonical document"""
        key, _ = key_and_csr
        document, envelope = signer.sign(PAYLOAD, key)

        assert document == canonicalize(PAYLOAD)
        assert signer.verify(document, envelope, key.public_key)
        assert envelope.signature_algorithm == "ECDSA P-256"
        assert envelope.digest_algorithm == "SHA-256"

    def test_p1363_length(self, signer: CanonicalSigner, key_and_csr):
        """Should emit raw r || s signatures of 64 bytes"""
        key, _ = key_and_csr
        _, envelope = signer.sign(PAYLOAD, key)

        assert envelope.signature_format == SignatureFormat.P1363
        assert len(envelope.signature_bytes) == 64
        assert len(base64.b64decode(envelope.signature_b64)) == 64

    def test_der_format(self, key_and_csr):
        """Should emit DER signatures when asked"""
        key, _ = key_and_csr
        der_signer = CanonicalSigner(SignatureFormat.DER)
        document, envelope = der_signer.sign(PAYLOAD, key)

        assert envelope.signature_bytes[0] == 0x30
        assert der_signer.verify(document, envelope, key.public_key)

    def test_verify_is_order_independent(self, signer: CanonicalSigner, key_and_csr):
        """Should verify against a reordered but equal payload"""
        key, _ = key_and_csr
        _, envelope = signer.sign(PAYLOAD, key)
        reordered = {"mont": dict(reversed(list(PAYLOAD["mont"].items()))),
                     "datTrans": PAYLOAD["datTrans"], "noTrans": PAYLOAD["noTrans"]}

        assert signer.verify(canonicalize(reordered), envelope, key.public_key)

    def test_tampered_document(self, signer: CanonicalSigner, key_and_csr):
        """Should reject a signature over different bytes"""
        key, _ = key_and_csr
        document, envelope = signer.sign(PAYLOAD, key)
        tampered = bytearray(document.data)
        tampered[-2] ^= 0x01

        assert not signer.verify(bytes(tampered), envelope, key.public_key)

    def test_tampered_signature(self, signer: CanonicalSigner, key_and_csr):
        """Should reject a modified signature"""
        key, _ = key_and_csr
        document, envelope = signer.sign(PAYLOAD, key)
        corrupted = bytearray(envelope.signature_bytes)
        corrupted[10] ^= 0xFF

        assert not signer.verify(
            document,
            SignatureEnvelope(signature_bytes=bytes(corrupted)),
            key.public_key,
        )
        assert not signer.verify(
            document, SignatureEnvelope(signature_bytes=b"short"), key.public_key
        )

    def test_wrong_key(self, signer: CanonicalSigner, key_and_csr):
        """Should reject verification under another key"""
        key, _ = key_and_csr
        document, envelope = signer.sign(PAYLOAD, key)
        other = ec.generate_private_key(ec.SECP256R1()).public_key()

        assert not signer.verify(document, envelope, other)

    def test_rejects_other_curves(self, signer: CanonicalSigner):
        """Should only sign with P-256 keys"""
        with pytest.raises(CryptoError) as exc_info:
            signer.sign(PAYLOAD, ec.generate_private_key(ec.SECP384R1()))
        assert exc_info.value.code == "CRYPTO30"

    def test_certificate_fingerprint(self, bundle: CertificateBundle):
        """Should carry the signing certificate fingerprint"""
        signer = CanonicalSigner(certificate_pem=bundle.certificate_pem)
        _, envelope = signer.sign(PAYLOAD, bundle.load_private_key())

        assert envelope.signing_certificate_fingerprint == (
            CertificateInspector().fingerprint_hex(bundle.certificate_pem)
        )

    def test_format_conversion(self, signer: CanonicalSigner, key_and_csr):
        """Should convert between P1363 and DER losslessly"""
        key, _ = key_and_csr
        _, envelope = signer.sign(PAYLOAD, key)

        der = p1363_to_der(envelope.signature_bytes)
        assert der_to_p1363(der) == envelope.signature_bytes
        with pytest.raises(CryptoError):
            p1363_to_der(b"\x00" * 63)


class TestTransactionSigner:
    """Tests for TransactionSigner"""

    @pytest.fixture
    def transaction_signer(self, bundle: CertificateBundle, config) -> TransactionSigner:
        headers = ProtocolHeaders.from_config(config, device_id=bundle.device_id)
        return TransactionSigner(
            bundle,
            headers,
            tps_number="567891234RT0001",
            tvq_number="5678912340TQ0001",
        )

    def test_signature_block(self, transaction_signer: TransactionSigner, bundle):
        """Should attach the signature block under transActu.signa"""
        signed_at = datetime(2025, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=-5)))
        signed = transaction_signer.sign_transaction(PAYLOAD, signed_at=signed_at)

        transaction = signed.body["reqTrans"]["transActu"]
        signa = transaction["signa"]

        assert transaction["noTrans"] == PAYLOAD["noTrans"]
        assert "signa" not in PAYLOAD
        assert signa["empreinteCert"] == CertificateInspector().fingerprint_hex(
            bundle.certificate_pem
        )
        assert signa["hash"] == {"actu": signed.document.digest_hex}
        assert signa["actu"] == signed.signature
        assert signa["preced"] == FIRST_PREVIOUS_SIGNATURE
        assert signa["datActu"] == "2025-01-01T12:00:00-05:00"
        assert len(signa["preced"]) == 88

    def test_signature_covers_payload(self, transaction_signer: TransactionSigner, bundle):
        """Should sign the canonical payload without its signature block"""
        signed = transaction_signer.sign_transaction(PAYLOAD)

        assert signed.document == canonicalize(PAYLOAD)
        assert transaction_signer.signer.verify(
            signed.document,
            signed.envelope,
            bundle.load_private_key().public_key(),
        )

    def test_chaining(self, transaction_signer: TransactionSigner):
        """Should link each transaction to the previous signature"""
        first = transaction_signer.sign_transaction(PAYLOAD)
        second = transaction_signer.sign_transaction(
            {**PAYLOAD, "noTrans": "0000000002"}, previous_signature=first.signature
        )

        preced = second.body["reqTrans"]["transActu"]["signa"]["preced"]
        assert preced == first.signature
        assert len(first.signature) == 88

    def test_transaction_headers(self, transaction_signer: TransactionSigner):
        """Should send the transaction flags without the device identifier"""
        headers = transaction_signer.sign_transaction(PAYLOAD).headers

        assert headers["SIGNATRANSM"] == "OUI"
        assert headers["EMPRCERTIFTRANSM"] == "OUI"
        assert "IDAPPRL" not in headers
        assert headers["NOTPS"] == "567891234RT0001"

    def test_always_p1363(self, transaction_signer: TransactionSigner):
        """Should emit 88-character P1363 signatures"""
        signed = transaction_signer.sign_transaction(PAYLOAD)

        assert transaction_signer.signer.signature_format == SignatureFormat.P1363
        assert len(signed.body["reqTrans"]["transActu"]["signa"]["actu"]) == 88

    @pytest.mark.parametrize(
        "previous",
        ["not-a-signature", "", "A" * 87, "A" * 89, "-" * 88, "A" * 86 + "\n="],
    )
    def test_rejects_malformed_previous_signature(
        self, transaction_signer: TransactionSigner, previous: str
    ):
        """Should refuse to chain onto anything but an 88-character signature"""
        with pytest.raises(ValidationError) as exc_info:
            transaction_signer.sign_transaction(PAYLOAD, previous_signature=previous)
        assert exc_info.value.field == "previous_signature"
