"""
Certificate store

File layout under the certificate directory, per enrollment identifier:

    {id}-key.pem    private key (0600, optionally encrypted)
    {id}-cert.pem   issued certificate
    {id}-chain.pem  CA chain, when the CA returned one
    {id}-meta.json  issued_at, device identifier, fingerprint

A save first writes every file of the new bundle to a temporary sibling;
only once all of them are on disk are they renamed into place, certificate
first and key last. A failed write leaves the previous bundle untouched.
"""

import json
import logging
import os
import re
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
)

from websrm.crypto.certificate import CertificateInspector
from websrm.exceptions import CryptoError, NotFoundError, ValidationError
from websrm.models.bundle import CertificateBundle


logger = logging.getLogger(__name__)


class StoreDefaults:
    """Default values for the certificate store"""
    KEY_FILE_PERMISSIONS = 0o600
    CERT_FILE_PERMISSIONS = 0o644
    DIR_PERMISSIONS = 0o700
    META_VERSION = 1


_ENROLLMENT_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


class CertificateStore:
    """
    Persists one active CertificateBundle per enrollment identifier

    ``save`` supersedes whatever was stored before for the same identifier.
    Writers for the same identifier are serialized through a per-identifier
    lock; callers orchestrating several steps on one identifier can hold
    that lock with ``locked()``.

    Example:
        >>> store = CertificateStore("./certs", key_password="secret")
        >>> store.save(bundle)
        >>> store.load(bundle.enrollment_id).device_id
        'X1'
    """

    def __init__(
        self,
        cert_dir: Union[str, Path],
        key_password: Optional[str] = None,
    ) -> None:
        """
        Args:
            cert_dir: Directory holding the bundle files (created if missing)
            key_password: Encrypts private keys at rest when set
        """
        self._dir = Path(cert_dir).resolve()
        self._key_password = key_password
        self._inspector = CertificateInspector()
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._dir

    @contextmanager
    def locked(self, enrollment_id: str) -> Iterator[None]:
        """Hold the writer lock for one enrollment identifier"""
        lock = self._lock_for(enrollment_id)
        with lock:
            yield

    def save(self, bundle: CertificateBundle) -> None:
        """
        Persist a bundle, superseding any previous one for the same identifier

        Raises:
            ValidationError: If the enrollment identifier is not a safe file name
            CryptoError: If the private key cannot be serialized
        """
        self._check_id(bundle.enrollment_id)
        key_bytes = self._serialize_key(bundle)
        fingerprint = self._inspector.fingerprint_hex(bundle.certificate_pem)

        with self.locked(bundle.enrollment_id):
            self._dir.mkdir(
                parents=True, exist_ok=True, mode=StoreDefaults.DIR_PERMISSIONS
            )

            paths = self._paths(bundle.enrollment_id)
            meta = {
                "version": StoreDefaults.META_VERSION,
                "enrollment_id": bundle.enrollment_id,
                "issued_at": bundle.issued_at.isoformat(),
                "device_id": bundle.device_id,
                "sha256_fingerprint": fingerprint,
                "encrypted": bool(self._key_password),
            }

            # Commit order: certificate, chain, metadata, key
            cert_mode = StoreDefaults.CERT_FILE_PERMISSIONS
            files = [(paths["cert"], bundle.certificate_pem.encode("utf-8"), cert_mode)]
            if bundle.ca_chain_pem:
                files.append((paths["chain"], bundle.ca_chain_pem.encode("utf-8"), cert_mode))
            files.append((paths["meta"], json.dumps(meta, indent=2).encode("utf-8"), cert_mode))
            files.append((paths["key"], key_bytes, StoreDefaults.KEY_FILE_PERMISSIONS))

            staged: List[Path] = []
            try:
                for path, data, mode in files:
                    staged.append(self._stage(path, data, mode))
                for temp_path, (path, _, _) in zip(staged, files):
                    temp_path.replace(path)
            except OSError:
                for temp_path in staged:
                    temp_path.unlink(missing_ok=True)
                raise

            if not bundle.ca_chain_pem:
                paths["chain"].unlink(missing_ok=True)

        logger.info(
            "Stored certificate bundle for %s (sha256 %s)",
            bundle.enrollment_id,
            fingerprint,
        )

    def load(self, enrollment_id: str) -> CertificateBundle:
        """
        Load the active bundle for an enrollment identifier

        Raises:
            NotFoundError: If no bundle is stored for the identifier
            CryptoError: If the stored key cannot be decrypted
        """
        bundle = self.find(enrollment_id)
        if bundle is None:
            raise NotFoundError(enrollment_id)
        return bundle

    def find(self, enrollment_id: str) -> Optional[CertificateBundle]:
        """Like ``load`` but returns None when nothing is stored"""
        self._check_id(enrollment_id)

        with self.locked(enrollment_id):
            paths = self._paths(enrollment_id)
            if not paths["key"].exists() or not paths["cert"].exists():
                return None

            key_pem = self._deserialize_key(enrollment_id, paths["key"].read_bytes())
            certificate_pem = paths["cert"].read_text("utf-8")
            chain_pem = (
                paths["chain"].read_text("utf-8") if paths["chain"].exists() else None
            )
            meta = (
                json.loads(paths["meta"].read_text("utf-8"))
                if paths["meta"].exists()
                else {}
            )

        issued_at = meta.get("issued_at")
        return CertificateBundle(
            enrollment_id=enrollment_id,
            private_key_pem=key_pem,
            certificate_pem=certificate_pem,
            ca_chain_pem=chain_pem,
            issued_at=(
                datetime.fromisoformat(issued_at)
                if issued_at
                else datetime.fromtimestamp(paths["cert"].stat().st_mtime).astimezone()
            ),
            device_id=meta.get("device_id"),
        )

    def exists(self, enrollment_id: str) -> bool:
        self._check_id(enrollment_id)
        paths = self._paths(enrollment_id)
        return paths["key"].exists() and paths["cert"].exists()

    def invalidate(self, enrollment_id: str) -> bool:
        """
        Remove the bundle for an enrollment identifier

        Returns:
            True if a bundle was removed
        """
        self._check_id(enrollment_id)

        removed = False
        with self.locked(enrollment_id):
            for path in self._paths(enrollment_id).values():
                if path.exists():
                    path.unlink()
                    removed = True

        if removed:
            logger.info("Invalidated certificate bundle for %s", enrollment_id)
        return removed

    def list_ids(self) -> List[str]:
        """Enrollment identifiers with a stored certificate"""
        if not self._dir.exists():
            return []
        suffix = "-cert.pem"
        return sorted(
            path.name[: -len(suffix)]
            for path in self._dir.glob(f"*{suffix}")
            if (self._dir / path.name.replace(suffix, "-key.pem")).exists()
        )

    # ============ Private Helper Methods ============

    def _lock_for(self, enrollment_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(enrollment_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[enrollment_id] = lock
            return lock

    def _paths(self, enrollment_id: str) -> Dict[str, Path]:
        return {
            "key": self._dir / f"{enrollment_id}-key.pem",
            "cert": self._dir / f"{enrollment_id}-cert.pem",
            "chain": self._dir / f"{enrollment_id}-chain.pem",
            "meta": self._dir / f"{enrollment_id}-meta.json",
        }

    def _check_id(self, enrollment_id: str) -> None:
        if not isinstance(enrollment_id, str) or not _ENROLLMENT_ID_PATTERN.fullmatch(
            enrollment_id
        ):
            raise ValidationError(
                f"Invalid enrollment identifier: {enrollment_id!r}",
                field="enrollment_id",
            )

    def _stage(self, path: Path, data: bytes, mode: int) -> Path:
        """Write data to a temporary sibling of path and return it"""
        temp_path = path.with_name(path.name + ".tmp")
        try:
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(temp_path, mode)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        return temp_path

    def _serialize_key(self, bundle: CertificateBundle) -> bytes:
        if not self._key_password:
            return bundle.private_key_pem.encode("utf-8")

        private_key = bundle.load_private_key()
        return private_key.private_bytes(
            encoding=Encoding.PEM,
            format=PrivateFormat.PKCS8,
            encryption_algorithm=BestAvailableEncryption(
                self._key_password.encode("utf-8")
            ),
        )

    def _deserialize_key(self, enrollment_id: str, data: bytes) -> str:
        text = data.decode("utf-8")
        if "ENCRYPTED PRIVATE KEY" not in text:
            return text

        if not self._key_password:
            raise CryptoError(
                f"Private key for '{enrollment_id}' is encrypted and no password is configured",
                code="CRYPTO02",
            )

        encrypted = CertificateBundle(
            enrollment_id=enrollment_id,
            private_key_pem=text,
            certificate_pem="",
        )
        private_key = encrypted.load_private_key(self._key_password)
        return private_key.private_bytes(
            encoding=Encoding.PEM,
            format=PrivateFormat.PKCS8,
            encryption_algorithm=NoEncryption(),
        ).decode("utf-8")
