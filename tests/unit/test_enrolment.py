"""
Enrollment Client Unit Tests
"""

import json
from unittest.mock import Mock

import pytest
import requests

from websrm.client import EnrollmentClient, HttpClient
from websrm.exceptions import (
    InvalidCertificateError,
    NotFoundError,
    ProtocolViolationError,
    RejectedError,
    TransportError,
    ValidationError,
)
from websrm.models import (
    EnrollmentOutcome,
    EnrollmentRequest,
    ErrorRecord,
    ProtocolHeaders,
)


def request_body(prepared: requests.PreparedRequest) -> dict:
    return json.loads(prepared.body)


@pytest.fixture
def authority_session(authority, response_factory):
    """Session that answers Add requests like the certificate authority"""

    def answer(prepared, **kwargs):
        req = request_body(prepared)["reqCertif"]
        return response_factory(201, {
            "retourCertif": {
                "certif": authority.issue(req["csr"]),
                "certifPSI": authority.certificate_pem,
                "idApprl": "X1",
            }
        })

    session = requests.Session()
    session.send = Mock(side_effect=answer)
    return session


def make_client(config, store, session) -> EnrollmentClient:
    http = HttpClient(config, base_url=config.get_resolved_enrolment_url(), session=session)
    return EnrollmentClient(config, store=store, http_client=http)


class TestEnroll:
    """Tests for EnrollmentClient.enroll"""

    def test_enrolled_end_to_end(self, config, store, dn, authority_session):
        """Should enroll, store the bundle and expose the device identifier"""
        client = make_client(config, store, authority_session)

        result, bundle = client.enroll(dn, enrollment_id="pos-1")

        assert result.outcome == EnrollmentOutcome.ENROLLED
        assert result.http_status == 201
        assert result.opaque_identifier == "X1"
        assert bundle.device_id == "X1"

        stored = store.load("pos-1")
        assert stored.certificate_pem == result.certificate_pem
        assert stored.ca_chain_pem == result.ca_chain_pem
        assert stored.device_id == "X1"

    def test_request_shape(self, config, store, dn, authority_session):
        """Should send the CSR in the body and the auth code only as a header"""
        client = make_client(config, store, authority_session)
        client.enroll(dn, enrollment_id="pos-1")

        prepared = authority_session.send.call_args.args[0]
        body = request_body(prepared)

        assert prepared.method == "POST"
        assert prepared.url == config.get_resolved_enrolment_url()
        assert body["reqCertif"]["modif"] == "AJO"
        assert body["reqCertif"]["csr"].count("\n") == 2
        assert "noSerie" not in body["reqCertif"]
        assert prepared.headers["CODAUTORI"] == "D8T8-W8W8"
        assert prepared.headers["ENVIRN"] == "DEV"
        assert prepared.headers["CASESSAI"] == "000.000"
        assert "D8T8-W8W8" not in prepared.body.decode("utf-8")

    def test_existing_bundle_superseded(self, config, store, dn, authority_session):
        """Should replace the active bundle on re-enrolment"""
        client = make_client(config, store, authority_session)

        _, first = client.enroll(dn, enrollment_id="pos-1")
        _, second = client.enroll(dn, enrollment_id="pos-1")

        assert first.certificate_pem != second.certificate_pem
        assert store.load("pos-1").certificate_pem == second.certificate_pem

    def test_protocol_violation(self, config, store, dn, session_factory, response_factory):
        """Should raise on 201 without a certificate and store nothing"""
        session = session_factory(
            response_factory(201, {"retourCertif": {"idApprl": "X1"}})
        )
        client = make_client(config, store, session)

        with pytest.raises(ProtocolViolationError) as exc_info:
            client.enroll(dn, enrollment_id="pos-1")

        assert exc_info.value.code == "PROTO01"
        assert exc_info.value.result.device_id == "X1"
        assert store.list_ids() == []

    def test_rejected_with_errors(self, config, store, dn, session_factory, response_factory):
        """Should surface every error record of a rejection"""
        session = session_factory(response_factory(400, {
            "retourCertif": {
                "listErr": [
                    {"codRetour": "95", "id": "CSR", "mess": "Le DN est invalide"},
                    {"codRetour": "12", "id": "IDPARTN", "mess": "Partenaire inconnu"},
                ]
            }
        }))
        client = make_client(config, store, session)

        with pytest.raises(RejectedError) as exc_info:
            client.enroll(dn, enrollment_id="pos-1")

        error = exc_info.value
        assert error.status_code == 400
        assert error.errors == [
            ErrorRecord(code="95", id="CSR", message="Le DN est invalide"),
            ErrorRecord(code="12", id="IDPARTN", message="Partenaire inconnu"),
        ]
        assert "Partenaire inconnu" in error.get_description()
        assert not store.exists("pos-1")

    def test_rejected_without_body(self, config, store, dn, session_factory, response_factory):
        """Should reject a 200 without certificate for Add"""
        session = session_factory(response_factory(200, "oops"))
        client = make_client(config, store, session)

        with pytest.raises(RejectedError) as exc_info:
            client.enroll(dn, enrollment_id="pos-1")
        assert exc_info.value.errors == []
        assert exc_info.value.result.raw == "oops"

    def test_repeated_server_errors_are_rejections(
        self, config, store, dn, session_factory, response_factory
    ):
        """Should report every CA 5xx as a rejection, never as a transport failure"""
        session = session_factory(
            *(response_factory(500, "Internal Server Error") for _ in range(7))
        )
        client = make_client(config, store, session)

        for _ in range(7):
            with pytest.raises(RejectedError) as exc_info:
                client.enroll(dn, enrollment_id="pos-1")
            assert exc_info.value.status_code == 500

        assert session.send.call_count == 7

    def test_timeout_not_retried(self, config, store, dn, session_factory):
        """Should not retry or store anything on a transport timeout"""
        config.retry_attempts = 3
        session = session_factory(requests.exceptions.ReadTimeout("slow"))
        client = make_client(config, store, session)

        with pytest.raises(TransportError) as exc_info:
            client.enroll(dn, enrollment_id="pos-1")

        assert exc_info.value.network_code == "NET01"
        assert session.send.call_count == 1
        assert store.list_ids() == []

    def test_certificate_for_other_key(
        self, config, store, dn, authority, csr_builder, session_factory, response_factory
    ):
        """Should refuse a certificate that does not match the submitted key"""
        _, foreign_csr = csr_builder.generate(dn)
        session = session_factory(response_factory(201, {
            "retourCertif": {"certif": authority.issue(foreign_csr), "idApprl": "X1"}
        }))
        client = make_client(config, store, session)

        with pytest.raises(InvalidCertificateError):
            client.enroll(dn, enrollment_id="pos-1")
        assert not store.exists("pos-1")

    def test_warnings_on_success_are_kept(
        self, config, store, key_and_csr, authority, session_factory, response_factory
    ):
        """Should keep non-fatal error records on a successful Add"""
        key, csr = key_and_csr
        session = session_factory(response_factory(201, {
            "retourCertif": {
                "certif": authority.issue(csr),
                "listErr": [{"codRetour": "0", "id": "INFO", "mess": "Avertissement"}],
            }
        }))
        client = make_client(config, store, session)

        result = client.submit(EnrollmentRequest.add(csr), enrollment_id="pos-1", key=key)

        assert result.outcome == EnrollmentOutcome.ENROLLED
        assert len(result.errors) == 1
        assert store.exists("pos-1")


class TestCancel:
    """Tests for EnrollmentClient.cancel"""

    def test_cancel_stored_certificate(
        self, config, store, bundle, session_factory, response_factory
    ):
        """Should send the stored serial and invalidate the bundle"""
        store.save(bundle)
        session = session_factory(response_factory(200, {"retourCertif": {}}))
        client = make_client(config, store, session)

        result = client.cancel("pos-1")

        assert result.outcome == EnrollmentOutcome.CANCELLED
        prepared = session.send.call_args.args[0]
        req = request_body(prepared)["reqCertif"]
        assert req["modif"] == "SUP"
        assert req["noSerie"] == client.serial_for_cancel(bundle.certificate_pem)
        assert "csr" not in req
        assert prepared.headers["IDAPPRL"] == "X1"
        assert not store.exists("pos-1")

    def test_cancel_reads_store_once(
        self, config, store, bundle, session_factory, response_factory, monkeypatch
    ):
        """Should take both serial and device identifier from one stored read"""
        store.save(bundle)
        find = Mock(wraps=store.find)
        monkeypatch.setattr(store, "find", find)
        session = session_factory(response_factory(200, {"retourCertif": {}}))

        make_client(config, store, session).cancel("pos-1")

        assert find.call_count == 1
        assert session.send.call_args.args[0].headers["IDAPPRL"] == "X1"

    def test_cancel_rejected_keeps_bundle(
        self, config, store, bundle, session_factory, response_factory
    ):
        """Should keep the bundle when cancellation is refused"""
        store.save(bundle)
        session = session_factory(response_factory(200, {
            "retourCertif": {"listErr": [{"codRetour": "40", "mess": "Certificat inconnu"}]}
        }))
        client = make_client(config, store, session)

        with pytest.raises(RejectedError):
            client.cancel("pos-1")
        assert store.exists("pos-1")

    def test_cancel_unknown_identifier(self, config, store, session_factory):
        """Should raise NotFoundError without calling the authority"""
        session = session_factory()
        client = make_client(config, store, session)

        with pytest.raises(NotFoundError):
            client.cancel("pos-9")
        session.send.assert_not_called()

    def test_cancel_without_store_requires_serial(self, config, session_factory):
        """Should need an explicit serial when no store is configured"""
        client = make_client(config, None, session_factory())
        with pytest.raises(ValidationError):
            client.cancel("pos-1")

    def test_serial_for_cancel(self, config, key_and_csr, authority):
        """Should render the serial as even-length lowercase hex"""
        _, csr = key_and_csr
        client = make_client(config, None, requests.Session())

        assert client.serial_for_cancel(authority.issue(csr, serial=0xABC)) == "0abc"
        assert client.serial_for_cancel(authority.issue(csr, serial=0x1F2E)) == "1f2e"


class TestEnrollmentRequest:
    """Tests for EnrollmentRequest"""

    def test_add_requires_csr(self):
        """Should refuse an Add without a CSR"""
        with pytest.raises(ValueError):
            EnrollmentRequest(operation="AJO")

    def test_cancel_requires_serial(self, key_and_csr):
        """Should refuse a Cancel without serial or with a CSR"""
        _, csr = key_and_csr
        with pytest.raises(ValueError):
            EnrollmentRequest(operation="SUP")
        with pytest.raises(ValueError):
            EnrollmentRequest(operation="SUP", csr=csr, target_serial="0abc")

    def test_headers_use_device_id(self, config):
        """Should add IDAPPRL once the device identifier is known"""
        headers = ProtocolHeaders.from_config(config).with_device_id("X1")
        assert headers.to_http_headers()["IDAPPRL"] == "X1"
