import os
import tempfile
from datetime import timedelta

# The app is configured from the environment at import time
_TMP_DIR = tempfile.mkdtemp(prefix="elections-tests-")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-that-is-long-enough-for-hs256"
os.environ["RATELIMIT_ENABLED"] = "false"
os.environ["AUDIT_LOG_DIR"] = os.path.join(_TMP_DIR, "audit")
os.environ["ELECTION_SCHEDULER_ENABLED"] = "false"

import pytest  # noqa: E402

from elections import app as flask_app, db  # noqa: E402
from elections.authentication import identity  # noqa: E402
from elections.database.models import (  # noqa: E402
    Candidate, Election, ElectionStatus, EligibleVoter, Vote, utc_now,
)
from elections.encryption.password_hashing import PasswordHashingService  # noqa: E402
from elections.security.token_manager import TokenManager  # noqa: E402

# Cheap argon2 parameters keep the suite fast
identity.password_service = PasswordHashingService(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture(autouse=True)
def database():
    """Fresh schema for every test, inside an application context."""
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield db
        db.session.remove()


@pytest.fixture
def app():
    return flask_app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def now():
    return utc_now().replace(microsecond=0)


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make_user(role="voter", srn=None, email=None, password="secret123", full_name=None):
        counter["n"] += 1
        n = counter["n"]
        srn = srn or f"R21AB{n:03d}"
        email = email or f"user{n}@example.com"
        return identity.register_user(
            full_name or f"User {n}", email, srn, password, role=role,
        )
    return _make_user


@pytest.fixture
def admin_user(make_user):
    return make_user(role="admin", full_name="Election Admin")


@pytest.fixture
def make_election(admin_user, now):
    """Insert an election in any state directly, bypassing transition rules."""
    def _make_election(status=ElectionStatus.DRAFT, start=None, end=None, created_by=None,
                       public_results=False, **fields):
        start = start or now + timedelta(hours=1)
        end = end or start + timedelta(hours=1)
        if created_by is None:
            created_by = admin_user.id
        election = Election(
            title=fields.pop("title", "Student Council"),
            position_name=fields.pop("position_name", "President"),
            description=fields.pop("description", ""),
            status=status,
            start_time=start,
            end_time=end,
            public_results=public_results,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            **fields,
        )
        db.session.add(election)
        db.session.commit()
        return election
    return _make_election


@pytest.fixture
def add_candidate():
    def _add_candidate(election, display_name):
        candidate = Candidate(election_id=election.id, display_name=display_name)
        db.session.add(candidate)
        db.session.commit()
        return candidate
    return _add_candidate


@pytest.fixture
def enrol():
    def _enrol(election, *srns):
        for srn in srns:
            db.session.add(EligibleVoter(election_id=election.id, srn=srn))
        db.session.commit()
    return _enrol


@pytest.fixture
def record_vote():
    """Write a vote straight into the ledger (no lifecycle checks)."""
    def _record_vote(election, candidate, voter):
        vote = Vote(
            election_id=election.id,
            position_name=election.position_name,
            candidate_id=candidate.id,
            voter_id=voter.id,
        )
        db.session.add(vote)
        db.session.commit()
        return vote
    return _record_vote


@pytest.fixture
def auth_header(app):
    token_manager = TokenManager(app)

    def _auth_header(user):
        return {"Authorization": f"Bearer {token_manager.generate_token(user.id)}"}
    return _auth_header
