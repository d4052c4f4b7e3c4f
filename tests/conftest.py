"""
Shared fixtures: configuration, Distinguished Names, a throwaway
certificate authority and a scripted requests session
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Union
from unittest.mock import Mock

import pytest
import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)
from cryptography.x509.oid import NameOID

from websrm.config import WebSrmConfig
from websrm.crypto import CertificateStore, CsrBuilder, load_csr
from websrm.models import CertificateBundle, DistinguishedName, KeyMaterial


class FakeAuthority:
    """Minimal CA that signs CSRs the way the enrolment endpoint does"""

    def __init__(self) -> None:
        self.key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([
            x509.NameAttribute(NameOID.COUNTRY_NAME, "CA"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Authority"),
            x509.NameAttribute(NameOID.COMMON_NAME, "Test Authority Root"),
        ])
        now = datetime.now(timezone.utc)
        self.certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=3650))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(self.key, hashes.SHA256())
        )

    @property
    def certificate_pem(self) -> str:
        return self.certificate.public_bytes(Encoding.PEM).decode("utf-8")

    def issue(
        self,
        csr: Union[str, x509.CertificateSigningRequest, Any],
        not_before: Optional[datetime] = None,
        not_after: Optional[datetime] = None,
        serial: Optional[int] = None,
    ) -> str:
        """Sign a CSR (artifact, PEM or object) and return the certificate PEM"""
        if not isinstance(csr, x509.CertificateSigningRequest):
            csr = load_csr(csr)
        now = datetime.now(timezone.utc)
        certificate = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(self.certificate.subject)
            .public_key(csr.public_key())
            .serial_number(serial or x509.random_serial_number())
            .not_valid_before(not_before or now - timedelta(minutes=5))
            .not_valid_after(not_after or now + timedelta(days=365))
            .add_extension(
                x509.ExtendedKeyUsage([x509.oid.ExtendedKeyUsageOID.CLIENT_AUTH]),
                critical=False,
            )
            .sign(self.key, hashes.SHA256())
        )
        return certificate.public_bytes(Encoding.PEM).decode("utf-8")


def private_key_pem(key: Union[KeyMaterial, ec.EllipticCurvePrivateKey]) -> str:
    private_key = key.private_key if isinstance(key, KeyMaterial) else key
    return private_key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.PKCS8,
        encryption_algorithm=NoEncryption(),
    ).decode("utf-8")


def make_response(
    status: int,
    body: Any = None,
    headers: Optional[dict] = None,
) -> requests.Response:
    """Build a requests.Response as the transport would return it"""
    response = requests.Response()
    response.status_code = status
    if body is None:
        response._content = b""
    elif isinstance(body, (bytes, str)):
        response._content = body if isinstance(body, bytes) else body.encode("utf-8")
    else:
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    response.headers.update(headers or {})
    response.encoding = "utf-8"
    return response


def scripted_session(*outcomes: Union[requests.Response, Exception]) -> requests.Session:
    """
    Session whose send() replays the given responses (or raises the given
    exceptions) in order
    """
    session = requests.Session()
    session.send = Mock(side_effect=list(outcomes))
    return session


def sent_requests(session: requests.Session) -> List[requests.PreparedRequest]:
    return [call.args[0] for call in session.send.call_args_list]


@pytest.fixture
def config(tmp_path) -> WebSrmConfig:
    return WebSrmConfig(
        auth_code="D8T8-W8W8",
        partner_id="0000000000001FF2",
        certification_code="FOB201999999",
        software_id="0000000000003973",
        software_version_id="00000000000045D6",
        version="1.0.0",
        cert_dir=str(tmp_path / "certs"),
        retry_delay=1,
    )


@pytest.fixture
def dn() -> DistinguishedName:
    return DistinguishedName.from_fields(
        country="CA",
        state="QC",
        locality="-05:00",
        surname="Certificat du serveur",
        organization="RBC-D8T8-W8W8",
        common_name="5678912340",
    )


@pytest.fixture(scope="session")
def authority() -> FakeAuthority:
    return FakeAuthority()


@pytest.fixture
def csr_builder() -> CsrBuilder:
    return CsrBuilder()


@pytest.fixture
def key_and_csr(csr_builder: CsrBuilder, dn: DistinguishedName):
    return csr_builder.generate(dn)


@pytest.fixture
def bundle(key_and_csr, authority: FakeAuthority) -> CertificateBundle:
    key, csr = key_and_csr
    return CertificateBundle(
        enrollment_id="pos-1",
        private_key_pem=private_key_pem(key),
        certificate_pem=authority.issue(csr),
        ca_chain_pem=authority.certificate_pem,
        device_id="X1",
    )


@pytest.fixture
def store(tmp_path) -> CertificateStore:
    return CertificateStore(tmp_path / "certs")


@pytest.fixture
def response_factory():
    return make_response


@pytest.fixture
def session_factory():
    return scripted_session


@pytest.fixture
def key_pem():
    return private_key_pem
