"""
Mutual-TLS Session Unit Tests
"""

import os
import stat
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import requests

from websrm.client import HttpClient, MutualTlsSession
from websrm.exceptions import (
    InvalidCertificateError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from websrm.models import CertificateBundle


TRANSACTION = {"reqTrans": {"transActu": {"noTrans": "0000000001"}}}
HEADERS = {"ENVIRN": "DEV", "SIGNATRANSM": "OUI"}


def make_session(config, session, **kwargs) -> MutualTlsSession:
    return MutualTlsSession(config, http_client=HttpClient(config, session=session), **kwargs)


class TestMutualTlsSession:
    """Tests for MutualTlsSession"""

    def test_presents_bundle(self, config, bundle, session_factory, response_factory):
        """Should send the bundle as client certificate and trust its chain"""
        transport = session_factory(response_factory(200, {"retourTrans": {}}))

        with make_session(config, transport) as mtls:
            response = mtls.post("/transaction", HEADERS, TRANSACTION, bundle)

            call = transport.send.call_args
            cert_file, key_file = call.kwargs["cert"]
            assert Path(cert_file).read_text() == bundle.certificate_pem
            assert Path(key_file).read_text() == bundle.private_key_pem
            assert Path(call.kwargs["verify"]).read_text() == bundle.ca_chain_pem
            if sys.platform != "win32":
                assert stat.S_IMODE(os.stat(key_file).st_mode) == 0o600

        assert response.status == 200
        assert call.args[0].url == config.get_resolved_base_url() + "/transaction"
        assert call.args[0].headers["SIGNATRANSM"] == "OUI"
        assert not os.path.exists(cert_file)

    def test_system_trust_without_chain(
        self, config, bundle, session_factory, response_factory
    ):
        """Should fall back to system trust when the bundle has no chain"""
        transport = session_factory(response_factory(200, {}))
        no_chain = CertificateBundle(
            enrollment_id=bundle.enrollment_id,
            private_key_pem=bundle.private_key_pem,
            certificate_pem=bundle.certificate_pem,
        )

        with make_session(config, transport) as mtls:
            mtls.post("/transaction", HEADERS, TRANSACTION, no_chain)

        assert transport.send.call_args.kwargs["verify"] is True

    def test_insecure_test_mode(self, config, bundle, session_factory, response_factory, caplog):
        """Should skip server validation only when configured, with a warning"""
        config.verify_server = False
        transport = session_factory(response_factory(200, {}))

        with make_session(config, transport) as mtls:
            mtls.post("/transaction", HEADERS, TRANSACTION, bundle)

        assert transport.send.call_args.kwargs["verify"] is False
        assert "DISABLED" in caplog.text

    def test_http_error_returned(self, config, bundle, session_factory, response_factory):
        """Should return error statuses as raw responses"""
        body = {"retourTrans": {"listErr": [{"codRetour": "10", "mess": "Refus"}]}}
        transport = session_factory(response_factory(500, body))

        with make_session(config, transport) as mtls:
            response = mtls.post("/transaction", HEADERS, TRANSACTION, bundle)

        assert response.status == 500
        assert response.json() == body

    def test_repeated_server_errors_stay_data(
        self, config, bundle, session_factory, response_factory
    ):
        """Should keep sending and returning 5xx answers without opening the circuit"""
        transport = session_factory(*(response_factory(500, {}) for _ in range(7)))

        with make_session(config, transport) as mtls:
            statuses = [
                mtls.post("/transaction", HEADERS, TRANSACTION, bundle).status
                for _ in range(7)
            ]

        assert statuses == [500] * 7
        assert transport.send.call_count == 7

    def test_tls_failure(self, config, bundle, session_factory):
        """Should report a rejected client certificate as a TLS failure"""
        transport = session_factory(
            requests.exceptions.SSLError("tlsv1 alert unknown ca")
        )

        with make_session(config, transport) as mtls:
            with pytest.raises(TransportError) as exc_info:
                mtls.post("/transaction", HEADERS, TRANSACTION, bundle)

        assert exc_info.value.is_tls_failure

    def test_other_transport_failure(self, config, bundle, session_factory):
        """Should keep non-TLS failures distinguishable"""
        transport = session_factory(requests.exceptions.ReadTimeout("slow"))

        with make_session(config, transport) as mtls:
            with pytest.raises(TransportError) as exc_info:
                mtls.post("/transaction", HEADERS, TRANSACTION, bundle)

        assert not exc_info.value.is_tls_failure

    def test_preflight_blocks_expired_certificate(
        self, config, key_and_csr, authority, key_pem, session_factory
    ):
        """Should refuse an expired certificate before connecting"""
        key, csr = key_and_csr
        now = datetime.now(timezone.utc)
        expired = CertificateBundle(
            enrollment_id="pos-1",
            private_key_pem=key_pem(key),
            certificate_pem=authority.issue(
                csr, not_before=now - timedelta(days=30), not_after=now - timedelta(days=1)
            ),
        )
        transport = session_factory()

        with make_session(config, transport) as mtls:
            with pytest.raises(InvalidCertificateError):
                mtls.post("/transaction", HEADERS, TRANSACTION, expired)

        transport.send.assert_not_called()

    def test_post_for_before_enrollment(self, config, store, session_factory):
        """Should raise NotFoundError for an identifier with no bundle"""
        transport = session_factory()

        with make_session(config, transport, store=store) as mtls:
            with pytest.raises(NotFoundError):
                mtls.post_for("pos-1", "/transaction", HEADERS, TRANSACTION)

        transport.send.assert_not_called()

    def test_post_for_uses_store(self, config, store, bundle, session_factory, response_factory):
        """Should load the active bundle from the store"""
        store.save(bundle)
        transport = session_factory(response_factory(200, {}))

        with make_session(config, transport, store=store) as mtls:
            mtls.post_for("pos-1", "/transaction", HEADERS, TRANSACTION)
            cert_file, _ = transport.send.call_args.kwargs["cert"]
            assert Path(cert_file).read_text() == bundle.certificate_pem

    def test_post_for_requires_store(self, config, session_factory):
        """Should need a store for post_for"""
        with make_session(config, session_factory()) as mtls:
            with pytest.raises(ValidationError):
                mtls.post_for("pos-1", "/transaction", HEADERS, TRANSACTION)

    def test_files_released_without_reuse(
        self, config, bundle, session_factory, response_factory
    ):
        """Should remove bundle files after each call when not reusing"""
        transport = session_factory(response_factory(200, {}), response_factory(200, {}))

        with make_session(config, transport, reuse_connections=False) as mtls:
            mtls.post("/transaction", HEADERS, TRANSACTION, bundle)
            first_cert, _ = transport.send.call_args.kwargs["cert"]
            assert not os.path.exists(first_cert)

            mtls.post("/transaction", HEADERS, TRANSACTION, bundle)
            second_cert, _ = transport.send.call_args.kwargs["cert"]

        assert first_cert != second_cert
