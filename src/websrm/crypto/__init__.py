"""
Cryptographic operations: key pairs and CSRs, certificate inspection,
certificate storage, canonical JSON and signing
"""

from websrm.crypto.csr import (
    CsrBuilder,
    to_single_line_pem,
    pem_to_der,
    load_csr,
)
from websrm.crypto.certificate import (
    CertificateInspector,
    CertificateSummary,
    format_fingerprint,
)
from websrm.crypto.store import CertificateStore, StoreDefaults
from websrm.crypto.canonical import (
    CanonicalDocument,
    canonicalize,
    canonical_bytes,
    canonical_dumps,
)
from websrm.crypto.signature import (
    CanonicalSigner,
    SignatureEnvelope,
    SignatureFormat,
    SignedTransaction,
    TransactionSigner,
    FIRST_PREVIOUS_SIGNATURE,
    der_to_p1363,
    p1363_to_der,
)

__all__ = [
    "CsrBuilder",
    "to_single_line_pem",
    "pem_to_der",
    "load_csr",
    "CertificateInspector",
    "CertificateSummary",
    "format_fingerprint",
    "CertificateStore",
    "StoreDefaults",
    "CanonicalDocument",
    "canonicalize",
    "canonical_bytes",
    "canonical_dumps",
    "CanonicalSigner",
    "SignatureEnvelope",
    "SignatureFormat",
    "SignedTransaction",
    "TransactionSigner",
    "FIRST_PREVIOUS_SIGNATURE",
    "der_to_p1363",
    "p1363_to_der",
]
