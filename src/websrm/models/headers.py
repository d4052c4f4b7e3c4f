"""
Protocol headers

Every call to the certificate authority or to the transaction endpoints
carries the same fixed header set. The authorization code lives here and
nowhere else.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from websrm.config.websrm_config import WebSrmConfig, WebSrmEnvironment


# Value of the boolean-style protocol flags
FLAG_TRUE = "OUI"


class ProtocolHeaders(BaseModel):
    """
    Fixed protocol header map

    Example:
        >>> headers = ProtocolHeaders.from_config(config)
        >>> headers.to_http_headers()["ENVIRN"]
        'DEV'
    """
    environment: WebSrmEnvironment
    test_case: Optional[str] = None
    partner_version: str
    auth_code: str = Field(repr=False)
    partner_id: str
    certification_code: str
    software_id: str
    software_version_id: str
    version: str
    initiator: str = "SRV"
    device_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_config(
        cls, config: WebSrmConfig, device_id: Optional[str] = None
    ) -> "ProtocolHeaders":
        """Build the header set for one configured environment"""
        return cls(
            environment=config.environment,
            test_case=config.test_case,
            partner_version=config.partner_version or "0",
            auth_code=config.auth_code,
            partner_id=config.partner_id,
            certification_code=config.certification_code,
            software_id=config.software_id,
            software_version_id=config.software_version_id,
            version=config.version,
            initiator=config.initiator,
            device_id=device_id,
        )

    def with_device_id(self, device_id: str) -> "ProtocolHeaders":
        """Copy with the CA-assigned device identifier (IDAPPRL)"""
        return self.model_copy(update={"device_id": device_id})

    def to_http_headers(self) -> Dict[str, str]:
        """Render as HTTP header names and values"""
        headers = {
            "ENVIRN": self.environment.value,
            "APPRLINIT": self.initiator,
        }
        if self.test_case:
            headers["CASESSAI"] = self.test_case
        headers.update({
            "VERSIPARN": self.partner_version,
            "IDSEV": self.software_id,
            "IDVERSI": self.software_version_id,
            "CODCERTIF": self.certification_code,
            "IDPARTN": self.partner_id,
            "VERSI": self.version,
            "CODAUTORI": self.auth_code,
        })
        if self.device_id:
            headers["IDAPPRL"] = self.device_id
        return headers

    def to_transaction_headers(
        self, tps_number: str, tvq_number: str
    ) -> Dict[str, str]:
        """
        Headers for a signed transaction submission

        The transaction endpoint rejects IDAPPRL, so it is left out even
        when a device identifier is known.

        Args:
            tps_number: Signer's registered GST/TPS number (NOTPS)
            tvq_number: Signer's registered QST/TVQ number (NOTVQ)
        """
        headers = self.to_http_headers()
        headers.pop("IDAPPRL", None)
        headers.update({
            "SIGNATRANSM": FLAG_TRUE,
            "EMPRCERTIFTRANSM": FLAG_TRUE,
            "NOTPS": tps_number,
            "NOTVQ": tvq_number,
        })
        return headers
