"""
Data models
"""

from websrm.models.dn import (
    DistinguishedName,
    CANONICAL_DN_ORDER,
    REQUIRED_DN_ATTRIBUTES,
)
from websrm.models.csr import KeyMaterial, CsrArtifact, KEY_ALGORITHM
from websrm.models.enrolment import (
    EnrolmentOperation,
    EnrollmentOutcome,
    EnrollmentRequest,
    EnrollmentResult,
    ErrorRecord,
)
from websrm.models.bundle import CertificateBundle
from websrm.models.headers import ProtocolHeaders, FLAG_TRUE

__all__ = [
    "DistinguishedName",
    "CANONICAL_DN_ORDER",
    "REQUIRED_DN_ATTRIBUTES",
    "KeyMaterial",
    "CsrArtifact",
    "KEY_ALGORITHM",
    "EnrolmentOperation",
    "EnrollmentOutcome",
    "EnrollmentRequest",
    "EnrollmentResult",
    "ErrorRecord",
    "CertificateBundle",
    "ProtocolHeaders",
    "FLAG_TRUE",
]
