"""
Enrolment request and result models

Wire format of the certificate authority:

    request:  {"reqCertif": {"modif": "AJO"|"SUP", "csr"?: ..., "noSerie"?: ...}}
    response: {"retourCertif": {"listErr"?: [...], "certif"?, "certifPSI"?, "idApprl"?}}
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from websrm.models.csr import CsrArtifact


class EnrolmentOperation(str, Enum):
    """Enrolment operation codes (modif)"""
    ADD = "AJO"
    CANCEL = "SUP"


class EnrollmentOutcome(str, Enum):
    """Definitive outcome of a successful enrolment call"""
    ENROLLED = "ENROLLED"
    CANCELLED = "CANCELLED"


class ErrorRecord(BaseModel):
    """
    One entry of a listErr array

    The server spells the fields codRetour / id / mess; the normalized
    spelling code / id / message is accepted as well.
    """
    code: str = ""
    id: str = ""
    message: str = ""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_wire(cls, data: Any) -> "ErrorRecord":
        """Build from a raw listErr entry, tolerating either spelling"""
        if not isinstance(data, dict):
            return cls(message=str(data))

        code = data.get("codRetour", data.get("code", ""))
        message = data.get("mess", data.get("message", ""))
        return cls(
            code="" if code is None else str(code),
            id="" if data.get("id") is None else str(data.get("id")),
            message="" if message is None else str(message),
        )

    def __str__(self) -> str:
        return f"[{self.code}] {self.id}: {self.message}"


class EnrollmentRequest(BaseModel):
    """
    Enrolment request

    Add carries a CSR and no serial; Cancel carries the target serial and
    no CSR. The authorization code is never part of the body.
    """
    operation: EnrolmentOperation
    csr: Optional[CsrArtifact] = None
    target_serial: Optional[str] = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def check_operation_fields(self) -> "EnrollmentRequest":
        """Enforce which fields each operation carries"""
        if self.operation == EnrolmentOperation.ADD:
            if self.csr is None:
                raise ValueError("Add enrolment requires a CSR")
            if self.target_serial is not None:
                raise ValueError("Add enrolment must not carry a target serial")
        else:
            if not self.target_serial:
                raise ValueError("Cancel enrolment requires the target serial")
            if self.csr is not None:
                raise ValueError("Cancel enrolment must not carry a CSR")
        return self

    @classmethod
    def add(cls, csr: CsrArtifact) -> "EnrollmentRequest":
        return cls(operation=EnrolmentOperation.ADD, csr=csr)

    @classmethod
    def cancel(cls, target_serial: str) -> "EnrollmentRequest":
        return cls(operation=EnrolmentOperation.CANCEL, target_serial=target_serial)

    def to_body(self) -> Dict[str, Any]:
        """Serialize to the JSON body expected by the CA"""
        req: Dict[str, Any] = {"modif": self.operation.value}
        if self.csr is not None:
            req["csr"] = self.csr.pem
        if self.target_serial is not None:
            req["noSerie"] = self.target_serial
        return {"reqCertif": req}


class EnrollmentResult(BaseModel):
    """
    Parsed enrolment response

    Attributes:
        http_status: HTTP status code returned by the CA
        certificate_pem: Issued certificate (certif)
        ca_chain_pem: Issuing CA certificate (certifPSI)
        device_id: Opaque identifier assigned by the CA (idApprl)
        errors: Every listErr entry found in the response, in document order
        outcome: Set once the response has been classified as a success
    """
    http_status: int
    certificate_pem: Optional[str] = Field(default=None, repr=False)
    ca_chain_pem: Optional[str] = Field(default=None, repr=False)
    device_id: Optional[str] = None
    errors: List[ErrorRecord] = Field(default_factory=list)
    outcome: Optional[EnrollmentOutcome] = None
    raw: Optional[Any] = Field(default=None, repr=False)

    @property
    def opaque_identifier(self) -> Optional[str]:
        return self.device_id

    @property
    def has_certificate(self) -> bool:
        return bool(self.certificate_pem and self.certificate_pem.strip())
