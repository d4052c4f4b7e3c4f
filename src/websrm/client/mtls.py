"""
Mutual-TLS session

Presents an enrolled CertificateBundle as the client identity on HTTPS
calls to transaction endpoints. requests only accepts certificate and
key as file paths, so bundle material is written to a private temporary
directory (0700, key file 0600) for the lifetime of the session.
"""

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from websrm.client.http_client import HttpClient, HttpRequestOptions, HttpResponse
from websrm.config.websrm_config import WebSrmConfig
from websrm.crypto.certificate import CertificateInspector
from websrm.crypto.store import CertificateStore
from websrm.exceptions import ValidationError
from websrm.models.bundle import CertificateBundle


logger = logging.getLogger(__name__)

# Response returned by MutualTlsSession.post
RawResponse = HttpResponse


class _MaterializedBundle:
    """Bundle PEM files on disk"""

    def __init__(self, bundle: CertificateBundle) -> None:
        self.directory = Path(tempfile.mkdtemp(prefix="websrm-mtls-"))
        self.cert_file = self._write("cert.pem", bundle.certificate_pem, 0o644)
        self.key_file = self._write("key.pem", bundle.private_key_pem, 0o600)
        self.chain_file = (
            self._write("chain.pem", bundle.ca_chain_pem, 0o644)
            if bundle.ca_chain_pem
            else None
        )

    def _write(self, name: str, content: str, mode: int) -> str:
        path = self.directory / name
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        return str(path)

    def remove(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)


class MutualTlsSession:
    """
    HTTPS client authenticated by an enrolled certificate

    One ``post`` is one request/response. With ``reuse_connections`` the
    underlying requests session keeps connections (and the bundle files)
    alive across calls until ``close``.

    Transport failures raise TransportError; ``is_tls_failure`` tells a
    rejected or broken client certificate apart from other network errors.
    Any HTTP status, including errors, is returned as a RawResponse.

    Example:
        >>> with MutualTlsSession(config, store=store) as session:
        ...     response = session.post_for("pos-1", "/transaction", headers, body)
    """

    def __init__(
        self,
        config: WebSrmConfig,
        http_client: Optional[HttpClient] = None,
        store: Optional[CertificateStore] = None,
        inspector: Optional[CertificateInspector] = None,
        preflight: bool = True,
        reuse_connections: bool = True,
    ) -> None:
        """
        Args:
            config: Resolved configuration (base URL, timeout, verify_server)
            http_client: Transport (default: one bound to the transaction base URL)
            store: Needed only for ``post_for``
            inspector: Runs the certificate pre-flight check
            preflight: Check validity window and key match before each handshake
            reuse_connections: Keep bundle files and pooled connections between calls
        """
        self.config = config
        self._http = http_client or HttpClient(config)
        self._store = store
        self._inspector = inspector or CertificateInspector()
        self._preflight = preflight
        self._reuse = reuse_connections
        self._materialized: Dict[Tuple[str, str], _MaterializedBundle] = {}

        if not config.verify_server:
            logger.warning(
                "Server certificate validation is DISABLED (insecure test mode)"
            )

    def post(
        self,
        endpoint: str,
        headers: Dict[str, str],
        body: Any,
        bundle: CertificateBundle,
        timeout: Optional[int] = None,
    ) -> RawResponse:
        """
        POST a JSON body using the bundle as the TLS client identity

        Args:
            endpoint: Absolute URL or path relative to the base URL
            headers: Protocol headers for the call
            body: JSON body
            bundle: Enrolled certificate bundle
            timeout: Per-call timeout in milliseconds

        Returns:
            RawResponse for any HTTP status

        Raises:
            InvalidCertificateError: If the pre-flight check fails
            TransportError: If no HTTP response was obtained
        """
        if self._preflight:
            self._inspector.preflight(bundle)

        files = self._materialize(bundle)
        try:
            return self._http.post(
                endpoint,
                body,
                HttpRequestOptions(
                    headers=headers,
                    timeout=timeout,
                    cert=(files.cert_file, files.key_file),
                    verify=self._verify_setting(files),
                ),
            )
        finally:
            if not self._reuse:
                self._release(bundle)

    def post_for(
        self,
        enrollment_id: str,
        endpoint: str,
        headers: Dict[str, str],
        body: Any,
        timeout: Optional[int] = None,
    ) -> RawResponse:
        """
        POST using the active bundle of an enrollment identifier

        Raises:
            NotFoundError: If nothing is enrolled under the identifier
        """
        if self._store is None:
            raise ValidationError(
                "post_for requires a CertificateStore", field="store"
            )
        return self.post(
            endpoint, headers, body, self._store.load(enrollment_id), timeout
        )

    def close(self) -> None:
        """Remove bundle files and close pooled connections"""
        for files in self._materialized.values():
            files.remove()
        self._materialized.clear()
        self._http.close()

    def __enter__(self) -> "MutualTlsSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ============ Private Helper Methods ============

    def _bundle_key(self, bundle: CertificateBundle) -> Tuple[str, str]:
        material = (bundle.certificate_pem + bundle.private_key_pem).encode("utf-8")
        return bundle.enrollment_id, hashlib.sha256(material).hexdigest()

    def _materialize(self, bundle: CertificateBundle) -> _MaterializedBundle:
        key = self._bundle_key(bundle)
        files = self._materialized.get(key)
        if files is None:
            files = _MaterializedBundle(bundle)
            self._materialized[key] = files
        return files

    def _release(self, bundle: CertificateBundle) -> None:
        files = self._materialized.pop(self._bundle_key(bundle), None)
        if files is not None:
            files.remove()

    def _verify_setting(self, files: _MaterializedBundle):
        if not self.config.verify_server:
            return False
        return files.chain_file or True
