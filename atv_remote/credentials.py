"""Credential storage for paired TVs.

Stores the client certificate and private key issued during pairing, keyed
by device_id, in a JSON file. The session client reads PEM files, so each
device also gets a certificate/key pair on disk under the certificate
directory.
"""

import base64
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

_LOGGER = logging.getLogger(__name__)


@dataclass
class Credentials:
    """Certificate material for one paired TV."""

    device_id: str
    host: str
    certificate: bytes
    private_key: bytes
    name: Optional[str] = None
    paired_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "host": self.host,
            "certificate": base64.b64encode(self.certificate).decode("ascii"),
            "private_key": base64.b64encode(self.private_key).decode("ascii"),
            "name": self.name,
            "paired_at": self.paired_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credentials":
        return cls(
            device_id=data["device_id"],
            host=data.get("host", ""),
            certificate=base64.b64decode(data.get("certificate") or ""),
            private_key=base64.b64decode(data.get("private_key") or ""),
            name=data.get("name"),
            paired_at=data.get("paired_at") or time.time(),
        )


def decode_credential(value: Optional[str], label: str) -> bytes:
    """Decode a transport-encoded (base64) credential blob.

    Raw PEM text is accepted as-is.
    """
    if not value:
        return b""
    if value.lstrip().startswith("-----BEGIN"):
        return value.encode("utf-8")
    try:
        return base64.b64decode(value, validate=True)
    except (ValueError, TypeError) as err:
        raise ValueError(f"{label} is not valid base64") from err


class CredentialStore:
    """Manages persistent storage of pairing credentials per device."""

    def __init__(self, storage_path: Optional[Path] = None, cert_dir: Optional[Path] = None):
        """Initialize credential storage.

        Args:
            storage_path: Path to the credentials file. None keeps
                credentials in memory only.
            cert_dir: Directory for per-device PEM files. Defaults to a
                ``certs`` directory next to the storage file, or ``./certs``.
        """
        self.storage_path = Path(storage_path) if storage_path else None
        if cert_dir is not None:
            self.cert_dir = Path(cert_dir)
        elif self.storage_path is not None:
            self.cert_dir = self.storage_path.parent / "certs"
        else:
            self.cert_dir = Path.cwd() / "certs"
        self._memory: Dict[str, Dict[str, Any]] = {}

    def _load_all(self) -> Dict[str, Any]:
        """Load all stored credentials."""
        if self.storage_path is None:
            return dict(self._memory)
        if not self.storage_path.exists():
            return {}
        try:
            with open(self.storage_path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            _LOGGER.warning("Credential file %s unreadable, starting empty", self.storage_path)
            return {}

    def _save_all(self, data: Dict[str, Any]):
        """Save all credentials to storage."""
        if self.storage_path is None:
            self._memory = dict(data)
            return
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.storage_path, "w") as f:
            json.dump(data, f, indent=2)

    def pem_paths(self, device_id: str) -> Tuple[Path, Path]:
        """Certificate and key file paths for a device.

        Device ids are opaque, so file names are derived from a hash.
        """
        digest = hashlib.sha1(device_id.encode("utf-8")).hexdigest()[:16]
        return self.cert_dir / f"{digest}_cert.pem", self.cert_dir / f"{digest}_key.pem"

    def write_pem_files(self, credentials: Credentials) -> Tuple[Path, Path]:
        """Write a device's certificate material where the session client reads it."""
        certfile, keyfile = self.pem_paths(credentials.device_id)
        self.cert_dir.mkdir(parents=True, exist_ok=True)
        certfile.write_bytes(credentials.certificate)
        keyfile.write_bytes(credentials.private_key)
        keyfile.chmod(0o600)
        return certfile, keyfile

    def get(self, device_id: str) -> Optional[Credentials]:
        """Get stored credentials for a device, or None if not paired."""
        data = self._load_all().get(device_id)
        if not data:
            return None
        return Credentials.from_dict(data)

    def save(self, credentials: Credentials) -> None:
        """Save credentials and write the device's PEM files."""
        data = self._load_all()
        data[credentials.device_id] = credentials.to_dict()
        self._save_all(data)
        self.write_pem_files(credentials)
        _LOGGER.info("Saved credentials for %s (%s)", credentials.device_id, credentials.host)

    def update_host(self, device_id: str, host: str) -> None:
        """Record a new address for a paired device."""
        data = self._load_all()
        if device_id in data and data[device_id].get("host") != host:
            data[device_id]["host"] = host
            self._save_all(data)

    def delete(self, device_id: str) -> bool:
        """Delete stored credentials and PEM files for a device.

        Returns:
            True if credentials existed
        """
        data = self._load_all()
        existed = data.pop(device_id, None) is not None
        if existed:
            self._save_all(data)
        for path in self.pem_paths(device_id):
            if path.exists():
                path.unlink()
        return existed

    def list_devices(self) -> List[Dict[str, Any]]:
        """List all paired devices.

        Returns:
            List of dicts with device_id, host, name and paired_at
        """
        return [
            {
                "device_id": entry.get("device_id", key),
                "host": entry.get("host"),
                "name": entry.get("name"),
                "paired_at": entry.get("paired_at"),
            }
            for key, entry in self._load_all().items()
        ]

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._load_all()
