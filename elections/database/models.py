# elections/database/models.py

import sqlite3
from datetime import datetime, timezone

from sqlalchemy import event, text
from sqlalchemy.engine import Engine

from elections import db


def utc_now():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores FOREIGN KEY clauses unless asked per connection
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class ElectionStatus:
    DRAFT = 'draft'
    SCHEDULED = 'scheduled'
    ONGOING = 'ongoing'
    CLOSED = 'closed'

    ORDER = (DRAFT, SCHEDULED, ONGOING, CLOSED)


_PRIVILEGED_ROLES = text("role IN ('admin', 'superadmin')")


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)
    srn = db.Column(db.String(16), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)  # argon2id
    role = db.Column(db.String(20), nullable=False, default='voter')
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    # At most one admin and one superadmin system-wide
    __table_args__ = (
        db.Index(
            'uq_users_single_privileged_role', 'role', unique=True,
            postgresql_where=_PRIVILEGED_ROLES,
            sqlite_where=_PRIVILEGED_ROLES,
        ),
    )

    votes = db.relationship('Vote', backref='voter', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'fullName': self.full_name,
            'email': self.email,
            'srn': self.srn,
            'role': self.role,
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.id} {self.srn} ({self.role})>'


class Election(db.Model):
    __tablename__ = 'elections'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    position_name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    status = db.Column(db.String(20), nullable=False, default=ElectionStatus.DRAFT, index=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)
    public_results = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        db.CheckConstraint('start_time < end_time', name='ck_elections_start_before_end'),
        db.CheckConstraint(
            "status IN (%s)" % ", ".join(f"'{s}'" for s in ElectionStatus.ORDER),
            name='ck_elections_status',
        ),
    )

    candidates = db.relationship('Candidate', backref='election', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'positionName': self.position_name,
            'description': self.description,
            'status': self.status,
            'startTime': _iso(self.start_time),
            'endTime': _iso(self.end_time),
            'startedAt': _iso(self.started_at),
            'closedAt': _iso(self.closed_at),
            'publicResults': self.public_results,
            'createdBy': self.created_by,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Election {self.id} {self.title!r} [{self.status}]>'


class Candidate(db.Model):
    __tablename__ = 'candidates'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    display_name = db.Column(db.String(120), nullable=False)
    manifesto = db.Column(db.Text, nullable=False, default='')
    photo_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'electionId': self.election_id,
            'displayName': self.display_name,
            'manifesto': self.manifesto,
            'photoUrl': self.photo_url,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class EligibleVoter(db.Model):
    __tablename__ = 'eligible_voters'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False)
    srn = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(254), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    added_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    added_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint('election_id', 'srn', name='uq_eligible_voters_election_srn'),
    )


class Vote(db.Model):
    __tablename__ = 'votes'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    position_name = db.Column(db.String(120), nullable=False)  # snapshot at cast time
    candidate_id = db.Column(db.Integer, db.ForeignKey('candidates.id'), nullable=False, index=True)
    voter_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    cast_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    # One vote per voter per election; this constraint is the real guard
    __table_args__ = (
        db.UniqueConstraint('election_id', 'voter_id', name='uq_votes_election_voter'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'electionId': self.election_id,
            'positionName': self.position_name,
            'candidateId': self.candidate_id,
            'voterId': self.voter_id,
            'castAt': _iso(self.cast_at),
        }

    def __repr__(self):
        return f'<Vote {self.id} by User {self.voter_id} in Election {self.election_id}>'


def _iso(value):
    return value.isoformat() + 'Z' if value is not None else None
