# elections/audit/audit_logger.py

import base64
import hashlib
import json
import logging
import os
import threading

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from elections.database.models import utc_now

logger = logging.getLogger(__name__)

# Append-only audit trail of election administration and voting events.
# Every entry carries the hash of the one before it and an Ed25519 signature,
# so removing or editing a line breaks verification. The signing key outlives
# the process: it comes from configuration or from a key file beside the log.

KEY_FILE_NAME = 'audit_signing_key.pem'


def load_signing_key(pem):
    """Ed25519 private key from an unencrypted PKCS#8 PEM (str or bytes)."""
    if isinstance(pem, str):
        pem = pem.encode()
    key = serialization.load_pem_private_key(pem, password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise ValueError("Audit signing key must be an Ed25519 key")
    return key


def load_or_create_key_file(path):
    if os.path.exists(path):
        with open(path, 'rb') as f:
            return load_signing_key(f.read())
    key = Ed25519PrivateKey.generate()
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, 'wb') as f:
        f.write(pem)
    logger.info("Generated audit signing key at %s", path)
    return key


class AuditLogger:
    def __init__(self, log_dir='logs', signing_key=None):
        """
        Args:
            log_dir: directory holding audit.log (and the key file)
            signing_key: Ed25519PrivateKey or PEM text; when omitted the key
                file in log_dir is loaded, or created on first use
        """
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, 'audit.log')
        self.previous_hash = None
        self._lock = threading.Lock()

        os.makedirs(log_dir, exist_ok=True)

        if signing_key is None:
            signing_key = load_or_create_key_file(os.path.join(log_dir, KEY_FILE_NAME))
        elif isinstance(signing_key, (str, bytes)):
            signing_key = load_signing_key(signing_key)
        self.signing_key = signing_key
        self._load_previous_hash()

    def _load_previous_hash(self):
        if not os.path.exists(self.log_file):
            return
        last_line = None
        with open(self.log_file, 'r') as f:
            for line in f:
                if line.strip():
                    last_line = line
        if last_line is None:
            return
        try:
            self.previous_hash = json.loads(last_line).get('hash')
        except ValueError:
            logger.warning("Audit log %s ends with an unreadable entry", self.log_file)
            self.previous_hash = None

    @staticmethod
    def _canonical(entry):
        return json.dumps(entry, sort_keys=True, default=str).encode()

    def record(self, action, actor_id=None, election_id=None, **details):
        """Append one event. Failures are logged, never raised to the caller."""
        try:
            with self._lock:
                entry = {
                    "timestamp": utc_now().isoformat() + 'Z',
                    "action": action,
                    "actor_id": actor_id,
                    "election_id": election_id,
                    "details": details,
                    "previous_hash": self.previous_hash,
                }
                body = self._canonical(entry)
                entry['hash'] = hashlib.sha256(body).hexdigest()
                entry['signature'] = base64.b64encode(self.signing_key.sign(body)).decode()

                with open(self.log_file, 'a') as f:
                    f.write(json.dumps(entry, default=str) + "\n")

                self.previous_hash = entry['hash']
                return entry
        except Exception as e:
            logger.error("Audit log write failed for %s: %s", action, e)
            return None

    def entries(self, election_id=None):
        if not os.path.exists(self.log_file):
            return []
        with open(self.log_file, 'r') as f:
            rows = [json.loads(line) for line in f if line.strip()]
        if election_id is not None:
            rows = [r for r in rows if r.get('election_id') == election_id]
        return rows

    def verify_log_integrity(self):
        if not os.path.exists(self.log_file):
            return True
        public_key = self.signing_key.public_key()
        previous_hash = None
        try:
            with open(self.log_file, 'r') as f:
                for line in f:
                    if not line.strip():
                        continue
                    entry = json.loads(line)
                    if entry.get('previous_hash') != previous_hash:
                        return False
                    signature = base64.b64decode(entry.pop('signature'))
                    recorded_hash = entry.pop('hash')
                    body = self._canonical(entry)
                    if hashlib.sha256(body).hexdigest() != recorded_hash:
                        return False
                    public_key.verify(signature, body)
                    previous_hash = recorded_hash
        except (ValueError, KeyError, InvalidSignature):
            return False
        return True
