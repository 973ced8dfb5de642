# elections/voting/tally.py

from sqlalchemy import func

from elections import db
from elections.authentication.rbac import Permission, UserRole, rbac_service
from elections.database.models import Candidate, ElectionStatus, Vote
from elections.errors import EligibilityError, StateConflictError
from elections.voting.lifecycle import get_election


def percentage(votes, total):
    if not total:
        return 0
    return round(votes / total * 100, 2)


def tally(candidates, counts):
    """Rank `candidates` by `counts` (candidate id -> votes).

    Ties keep a stable order by display name, then id. Every candidate
    sharing the top count is a winner; with no votes cast there is none.
    """
    total = sum(counts.values())
    results = [
        {
            'candidateId': c.id,
            'displayName': c.display_name,
            'votes': counts.get(c.id, 0),
            'percentage': percentage(counts.get(c.id, 0), total),
        }
        for c in candidates
    ]
    results.sort(key=lambda r: (-r['votes'], r['displayName'], r['candidateId']))

    winners = []
    if total > 0:
        top = results[0]['votes']
        winners = [r for r in results if r['votes'] == top]
    return total, results, winners


def compute_results(election_id, viewer_role=UserRole.VOTER.value):
    """Results of a closed election as seen by `viewer_role`.

    Roles allowed to view results may look as soon as the election is
    closed; everyone else only once the results have been published.
    """
    election = get_election(election_id)
    if rbac_service.has_permission(viewer_role, Permission.VIEW_RESULTS):
        if election.status != ElectionStatus.CLOSED:
            raise StateConflictError("Results are available once the election is closed")
    elif election.status != ElectionStatus.CLOSED or not election.public_results:
        raise EligibilityError("Results not available yet")

    counts = dict(
        db.session.query(Vote.candidate_id, func.count(Vote.id))
        .filter(Vote.election_id == election_id)
        .group_by(Vote.candidate_id)
        .all()
    )
    candidates = Candidate.query.filter_by(election_id=election_id).all()
    total, results, winners = tally(candidates, counts)

    return {
        'election': {
            'id': election.id,
            'title': election.title,
            'positionName': election.position_name,
            'publicResults': election.public_results,
        },
        'totalVotes': total,
        'results': results,
        'winners': winners,
    }
