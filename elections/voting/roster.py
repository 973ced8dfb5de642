# elections/voting/roster.py

# Per-election eligibility rosters, replaced wholesale on every upload

import logging
import os
import re

from elections import db
from elections.database.models import EligibleVoter, utc_now
from elections.errors import UnexpectedError, ValidationError
from elections.voting.lifecycle import get_election

logger = logging.getLogger(__name__)

SRN_PATTERN = re.compile(r'^R\d{2}[A-Z]{2}\d{3}$')
LINE_SPLIT = re.compile(r'\r?\n')

CSV_MIMETYPES = ('text/csv', 'application/csv', 'application/vnd.ms-excel')


def read_roster_upload(file_storage):
    """Turn an uploaded CSV into raw lines; only the first column is kept."""
    if file_storage is None or not file_storage.filename:
        raise ValidationError("CSV file is required (field name: file)")
    _, ext = os.path.splitext(file_storage.filename)
    if file_storage.mimetype not in CSV_MIMETYPES and ext.lower() != '.csv':
        raise ValidationError("Invalid file type. Please upload a CSV file.")
    try:
        content = file_storage.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded")
    return [line.split(',', 1)[0] for line in LINE_SPLIT.split(content)]


def parse_roster_lines(raw_lines):
    """Normalise lines into unique SRNs. Returns (unique, valid_count, invalid_count)."""
    valid = []
    invalid = 0
    for line in raw_lines:
        raw = (line or '').strip().strip('"')
        if not raw:
            continue
        srn = raw.upper()
        if not SRN_PATTERN.match(srn):
            logger.debug("Skipping invalid SRN line: %r", raw)
            invalid += 1
            continue
        valid.append(srn)
    # dict keeps first-seen order
    unique = list(dict.fromkeys(valid))
    return unique, len(valid), invalid


def replace_roster(election_id, raw_lines, added_by=None, now=None):
    """Atomically swap the roster of `election_id` for the SRNs in `raw_lines`."""
    now = now or utc_now()
    raw_lines = list(raw_lines)
    get_election(election_id)

    unique, valid_count, invalid_count = parse_roster_lines(raw_lines)
    if not unique:
        raise ValidationError("No valid SRNs found in file")

    try:
        EligibleVoter.query.filter_by(election_id=election_id).delete(synchronize_session=False)
        db.session.add_all([
            EligibleVoter(election_id=election_id, srn=srn, added_by=added_by, added_at=now)
            for srn in unique
        ])
        db.session.commit()
    except Exception as e:
        # Nothing is applied; the previous roster is still in place
        db.session.rollback()
        logger.error("Roster replace for election %s failed: %s", election_id, e)
        raise UnexpectedError("Roster update failed; the previous roster was kept")

    summary = {
        'totalLines': len(raw_lines),
        'validSrns': valid_count,
        'uniqueSrns': len(unique),
        'duplicatesRemoved': valid_count - len(unique),
        'invalidLines': invalid_count,
    }
    logger.info("Roster for election %s replaced: %s", election_id, summary)
    return summary


def is_eligible(election_id, srn):
    return db.session.query(
        EligibleVoter.query.filter_by(election_id=election_id, srn=srn).exists()
    ).scalar()


def roster_size(election_id):
    return EligibleVoter.query.filter_by(election_id=election_id).count()


def roster_srns(election_id):
    rows = (
        db.session.query(EligibleVoter.srn)
        .filter_by(election_id=election_id)
        .order_by(EligibleVoter.srn)
        .all()
    )
    return [row.srn for row in rows]
