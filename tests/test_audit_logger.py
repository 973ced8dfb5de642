import os
import json
import base64
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from elections.audit.audit_logger import KEY_FILE_NAME, AuditLogger, load_signing_key


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create a temporary directory for test logs."""
    log_dir = tmp_path / "test_logs"
    log_dir.mkdir()
    return str(log_dir)


@pytest.fixture
def audit_logger(temp_log_dir):
    """Create an AuditLogger instance with a temporary log directory."""
    return AuditLogger(log_dir=temp_log_dir)


def test_init_creates_log_directory(temp_log_dir):
    os.rmdir(temp_log_dir)
    AuditLogger(log_dir=temp_log_dir)
    assert os.path.exists(temp_log_dir)


def test_record_basic(audit_logger, temp_log_dir):
    """An entry carries action, actor, election and details."""
    audit_logger.record("election_scheduled", actor_id=1, election_id=5, note="ok")

    with open(os.path.join(temp_log_dir, 'audit.log'), 'r') as f:
        entry = json.loads(f.readline())

    assert entry['action'] == "election_scheduled"
    assert entry['actor_id'] == 1
    assert entry['election_id'] == 5
    assert entry['details'] == {"note": "ok"}
    assert entry['previous_hash'] is None  # First entry
    assert 'timestamp' in entry
    assert 'hash' in entry
    assert 'signature' in entry


def test_hash_chaining(audit_logger):
    audit_logger.record("election_created", election_id=1)
    first_hash = audit_logger.previous_hash

    audit_logger.record("election_scheduled", election_id=1)

    with open(audit_logger.log_file, 'r') as f:
        second_entry = json.loads(f.readlines()[1])

    assert second_entry['previous_hash'] == first_hash


def test_signature_verification(audit_logger):
    audit_logger.record("vote_cast", actor_id=3, election_id=2, vote_id=11)

    with open(audit_logger.log_file, 'r') as f:
        entry = json.loads(f.readline())

    signature = entry.pop('signature')
    entry.pop('hash')
    body = json.dumps(entry, sort_keys=True).encode()

    # Raises InvalidSignature if the signature does not match
    audit_logger.signing_key.public_key().verify(base64.b64decode(signature), body)


def test_verify_log_integrity_valid(audit_logger):
    audit_logger.record("roster_replaced", election_id=1, uniqueSrns=3)
    audit_logger.record("election_force_closed", election_id=1)
    assert audit_logger.verify_log_integrity() is True


def test_verify_log_integrity_appended_garbage(audit_logger):
    audit_logger.record("election_created", election_id=1)
    with open(audit_logger.log_file, 'a') as f:
        f.write('{"tampered": true}\n')
    assert audit_logger.verify_log_integrity() is False


def test_verify_log_integrity_edited_entry(audit_logger):
    audit_logger.record("results_published", election_id=4)
    with open(audit_logger.log_file, 'r') as f:
        entry = json.loads(f.readline())
    entry['election_id'] = 99
    with open(audit_logger.log_file, 'w') as f:
        f.write(json.dumps(entry) + "\n")
    assert audit_logger.verify_log_integrity() is False


def test_load_previous_hash(temp_log_dir):
    logger1 = AuditLogger(log_dir=temp_log_dir)
    logger1.record("election_created", election_id=1)

    logger2 = AuditLogger(log_dir=temp_log_dir)
    assert logger2.previous_hash == logger1.previous_hash


def test_entries_filtered_by_election(audit_logger):
    audit_logger.record("election_created", election_id=1)
    audit_logger.record("election_created", election_id=2)
    audit_logger.record("election_scheduled", election_id=1)

    actions = [e['action'] for e in audit_logger.entries(election_id=1)]
    assert actions == ["election_created", "election_scheduled"]


def test_error_handling(audit_logger, monkeypatch):
    """A failing write is logged and swallowed."""
    def mock_open(*args, **kwargs):
        raise PermissionError("Access denied")

    monkeypatch.setattr("builtins.open", mock_open)

    assert audit_logger.record("vote_cast", election_id=1) is None


def test_log_verifies_after_restart(temp_log_dir):
    first = AuditLogger(log_dir=temp_log_dir)
    first.record("election_created", election_id=1)

    restarted = AuditLogger(log_dir=temp_log_dir)
    restarted.record("election_scheduled", election_id=1)

    assert os.path.exists(os.path.join(temp_log_dir, KEY_FILE_NAME))
    assert first.verify_log_integrity() is True
    assert restarted.verify_log_integrity() is True


def test_configured_pem_key(temp_log_dir):
    key = Ed25519PrivateKey.generate()
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()

    AuditLogger(log_dir=temp_log_dir, signing_key=pem).record("vote_cast", election_id=3)
    restarted = AuditLogger(log_dir=temp_log_dir, signing_key=pem)

    assert restarted.verify_log_integrity() is True
    # No key file is written when the key comes from configuration
    assert not os.path.exists(os.path.join(temp_log_dir, KEY_FILE_NAME))


def test_foreign_key_fails_verification(temp_log_dir):
    AuditLogger(log_dir=temp_log_dir).record("election_created", election_id=1)
    other = AuditLogger(log_dir=temp_log_dir, signing_key=Ed25519PrivateKey.generate())
    assert other.verify_log_integrity() is False


def test_non_ed25519_key_rejected():
    from cryptography.hazmat.primitives.asymmetric import ec

    pem = ec.generate_private_key(ec.SECP256R1()).private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    with pytest.raises(ValueError):
        load_signing_key(pem)


def test_election_audit_route(client, auth_header, admin_user, make_election):
    election = make_election()
    headers = auth_header(admin_user)
    client.patch(f"/admin/elections/{election.id}/schedule", headers=headers)

    resp = client.get(f"/admin/elections/{election.id}/audit", headers=headers)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["verified"] is True
    assert [e["action"] for e in data["entries"]][-1] == "election_scheduled"
    assert all(e["election_id"] == election.id for e in data["entries"])


def test_election_audit_route_needs_admin(client, auth_header, make_user, make_election):
    election = make_election()
    resp = client.get(f"/admin/elections/{election.id}/audit", headers=auth_header(make_user()))
    assert resp.status_code == 403
