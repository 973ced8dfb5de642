# elections/routes.py

# JSON routes for the three role groups: /user (voters), /admin (admin or
# superadmin) and /superadmin. Handlers stay thin: they parse and sanitise the
# request, call the voting/identity services, write the audit trail and wrap
# the result in the {success, message, data} envelope. Domain errors raised by
# the services are turned into responses by elections.errors.

from flask import request
from flask_jwt_extended import current_user

from elections import app, limiter
from elections.audit.audit_logger import AuditLogger
from elections.authentication import identity
from elections.authentication.rbac import (
    Permission, UserRole,
    require_admin, require_login, require_permission, require_superadmin, require_voter,
)
from elections.errors import AuthError, DuplicateError, ValidationError
from elections.responses import success_response
from elections.security.input_validator import InputValidator
from elections.security.token_manager import TokenManager
from elections.voting import ballot_box, candidates, lifecycle, roster, tally

validator = InputValidator()
token_manager = TokenManager(app)
audit_logger = AuditLogger(
    log_dir=app.config['AUDIT_LOG_DIR'], signing_key=app.config['AUDIT_SIGNING_KEY'],
)


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _optional_text(body, key, max_length=255):
    value = body.get(key)
    if value is None:
        return None
    return validator.sanitize_string(value, max_length=max_length)


# ---------------------------------------------------------------- voters --

@app.route('/user/register', methods=['POST'])
@limiter.limit("3 per 10 minutes")
def register():
    fields = validator.validate_registration(_json_body())
    user = identity.register_user(**fields)
    token = token_manager.issue_for(user)
    audit_logger.record('user_registered', actor_id=user.id, srn=user.srn)
    return success_response(201, "User registered", {'user': user.to_dict(), 'token': token})


@app.route('/user/login', methods=['POST'])
@limiter.limit("5 per 5 minutes")
def login():
    email, password = validator.validate_login(_json_body())
    try:
        user = identity.authenticate(email, password)
    except AuthError:
        audit_logger.record('failed_login', email=email, ip=request.remote_addr)
        raise
    token = token_manager.issue_for(user)
    audit_logger.record('successful_login', actor_id=user.id, role=user.role)
    return success_response(200, "Login successful", {
        'token': token,
        'user': {'id': user.id, 'fullName': user.full_name, 'role': user.role},
    })


@app.route('/user/profile', methods=['GET'])
@require_login
def profile():
    return success_response(200, "Profile fetched", {
        'name': current_user.full_name,
        'email': current_user.email,
        'SRN': current_user.srn,
        'role': current_user.role,
    })


@app.route('/user/profile/resetpassword', methods=['PUT'])
@require_login
def reset_password():
    body = _json_body()
    identity.reset_password(current_user.id, body.get('currentPassword'), body.get('newPassword'))
    audit_logger.record('password_reset', actor_id=current_user.id)
    return success_response(200, "Password updated")


@app.route('/user/elections/active', methods=['GET'])
@require_login
def active_elections():
    return success_response(200, "Active elections fetched", lifecycle.active_elections())


@app.route('/user/elections/all', methods=['GET'])
@require_login
def public_elections():
    elections = lifecycle.public_elections()
    return success_response(200, "Public elections fetched", {
        'total': len(elections),
        'elections': elections,
    })


@app.route('/user/elections/<int:election_id>/ballot', methods=['GET'])
@require_login
def election_ballot(election_id):
    return success_response(200, "Ballot fetched", lifecycle.ballot(election_id))


@app.route('/user/elections/<int:election_id>/candidates', methods=['GET'])
@require_voter
def voter_candidates(election_id):
    return _candidates_payload(election_id)


@app.route('/user/elections/<int:election_id>/vote', methods=['POST'])
@require_permission(Permission.VOTE, message="Voter access required")
def cast_vote(election_id):
    candidate_id = _json_body().get('candidateId')
    try:
        vote = ballot_box.cast_vote(election_id, current_user.id, candidate_id)
    except DuplicateError:
        audit_logger.record('duplicate_vote_attempt', actor_id=current_user.id, election_id=election_id)
        raise
    # The chosen candidate stays out of the audit trail
    audit_logger.record('vote_cast', actor_id=current_user.id, election_id=election_id, vote_id=vote.id)
    return success_response(201, "Vote cast successfully", {'vote': vote.to_dict()})


@app.route('/user/elections/<int:election_id>/results', methods=['GET'])
@require_permission(Permission.VIEW_PUBLIC_RESULTS, message="Voter access required")
def voter_results(election_id):
    results = tally.compute_results(election_id, viewer_role=current_user.role)
    return success_response(200, "Results fetched", results)


# ---------------------------------------------------------------- admins --

@app.route('/admin/elections/create', methods=['POST'])
@require_admin
def create_election():
    body = _json_body()
    if not all(body.get(k) for k in ('title', 'positionName', 'startTime', 'endTime')):
        raise ValidationError("title, positionName, startTime and endTime are required")
    title = validator.sanitize_string(body['title'], max_length=200)
    position_name = validator.sanitize_string(body['positionName'], max_length=120)
    if not title or not position_name:
        raise ValidationError("title and positionName must not be blank")

    election = lifecycle.create_election(
        title=title,
        position_name=position_name,
        description=_optional_text(body, 'description', max_length=5000) or '',
        start_time=validator.parse_datetime(body['startTime'], 'startTime'),
        end_time=validator.parse_datetime(body['endTime'], 'endTime'),
        created_by=current_user.id,
    )
    audit_logger.record('election_created', actor_id=current_user.id, election_id=election.id)
    return success_response(201, "Election created", {'election': election.to_dict()})


@app.route('/admin/elections', methods=['GET'])
@require_admin
def list_elections():
    elections = lifecycle.list_elections()
    return success_response(200, "Elections fetched successfully", {
        'total': len(elections),
        'elections': elections,
    })


@app.route('/admin/elections/<int:election_id>', methods=['GET'])
@require_admin
def election_details(election_id):
    return success_response(200, "Fetched election details successfully",
                            lifecycle.election_details(election_id))


@app.route('/admin/elections/<int:election_id>', methods=['PATCH'])
@require_admin
def update_election(election_id):
    body = _json_body()
    changes = {
        'title': _optional_text(body, 'title', max_length=200) or None,
        'position_name': _optional_text(body, 'positionName', max_length=120) or None,
        'description': _optional_text(body, 'description', max_length=5000),
        'start_time': (validator.parse_datetime(body['startTime'], 'startTime')
                       if body.get('startTime') else None),
        'end_time': (validator.parse_datetime(body['endTime'], 'endTime')
                     if body.get('endTime') else None),
    }
    election = lifecycle.update_election(election_id, changes)
    audit_logger.record('election_updated', actor_id=current_user.id, election_id=election_id,
                        fields=sorted(k for k, v in changes.items() if v is not None))
    return success_response(200, "Election updated successfully", {'election': election.to_dict()})


@app.route('/admin/elections/<int:election_id>/schedule', methods=['PATCH'])
@require_admin
def schedule_election(election_id):
    election = lifecycle.schedule_election(election_id)
    audit_logger.record('election_scheduled', actor_id=current_user.id, election_id=election_id)
    return success_response(200, "Election scheduled successfully", {'election': election.to_dict()})


@app.route('/admin/elections/<int:election_id>/start', methods=['POST'])
@require_admin
def force_start_election(election_id):
    if _json_body().get('forceStart') is not True:
        raise ValidationError(
            'This endpoint only supports forceStart. Send { "forceStart": true } in body.',
            status_code=422,
        )
    election = lifecycle.force_start(election_id)
    audit_logger.record('election_force_started', actor_id=current_user.id, election_id=election_id)
    return success_response(200, "Election force-started successfully", {'election': election.to_dict()})


@app.route('/admin/elections/<int:election_id>/close', methods=['POST'])
@require_admin
def force_close_election(election_id):
    if _json_body().get('forceClose') is not True:
        raise ValidationError(
            "Election will close automatically at endTime. Use forceClose=true to close early.",
            status_code=422,
        )
    election = lifecycle.force_close(election_id)
    audit_logger.record('election_force_closed', actor_id=current_user.id, election_id=election_id)
    return success_response(200, "Election force-closed", {'election': election.to_dict()})


@app.route('/admin/elections/<int:election_id>/publish-results', methods=['PATCH'])
@require_admin
def publish_results(election_id):
    election = lifecycle.publish_results(election_id)
    audit_logger.record('results_published', actor_id=current_user.id, election_id=election_id)
    return success_response(200, "Results published successfully", {'election': election.to_dict()})


@app.route('/admin/elections/<int:election_id>/results', methods=['GET'])
@require_admin
def admin_results(election_id):
    results = tally.compute_results(election_id, viewer_role=current_user.role)
    return success_response(200, "Results fetched", results)


@app.route('/admin/elections/<int:election_id>/candidates/create', methods=['POST'])
@require_admin
def create_candidate(election_id):
    body = _json_body()
    display_name = _optional_text(body, 'displayName', max_length=120)
    if not display_name:
        raise ValidationError("displayName is required")
    photo_url = body.get('photoUrl') or None
    if photo_url is not None and not validator.validate_photo_url(photo_url):
        raise ValidationError("photoUrl must be an http(s) URL")

    candidate = candidates.create_candidate(
        election_id,
        display_name=display_name,
        manifesto=_optional_text(body, 'manifesto', max_length=5000) or '',
        photo_url=photo_url,
    )
    audit_logger.record('candidate_created', actor_id=current_user.id, election_id=election_id,
                        candidate_id=candidate.id)
    return success_response(201, "Candidate created successfully", {'candidate': candidate.to_dict()})


@app.route('/admin/elections/<int:election_id>/candidates', methods=['GET'])
@require_admin
def admin_candidates(election_id):
    return _candidates_payload(election_id)


@app.route('/admin/candidates/<int:candidate_id>', methods=['DELETE'])
@require_admin
def delete_candidate(candidate_id):
    candidates.delete_candidate(candidate_id)
    audit_logger.record('candidate_deleted', actor_id=current_user.id, candidate_id=candidate_id)
    return success_response(200, "Candidate deleted successfully", {'candidateId': candidate_id})


@app.route('/admin/elections/<int:election_id>/eligible/upload', methods=['POST'])
@require_admin
def upload_eligible_voters(election_id):
    lifecycle.get_election(election_id)
    lines = roster.read_roster_upload(request.files.get('file'))
    summary = roster.replace_roster(election_id, lines, added_by=current_user.id)
    audit_logger.record('roster_replaced', actor_id=current_user.id, election_id=election_id, **summary)
    return success_response(201, "Eligible voters uploaded successfully", {'summary': summary})


@app.route('/admin/elections/<int:election_id>/eligible', methods=['GET'])
@require_admin
def list_eligible_voters(election_id):
    lifecycle.get_election(election_id)
    return success_response(200, "Eligible voters fetched", {
        'total': roster.roster_size(election_id),
        'srns': roster.roster_srns(election_id),
    })


@app.route('/admin/elections/<int:election_id>/audit', methods=['GET'])
@require_admin
def election_audit_trail(election_id):
    lifecycle.get_election(election_id)
    return success_response(200, "Audit trail fetched", {
        'entries': audit_logger.entries(election_id=election_id),
        'verified': audit_logger.verify_log_integrity(),
    })


def _candidates_payload(election_id):
    election, listed = candidates.list_candidates(election_id)
    return success_response(200, "Candidates fetched", {
        'election': {
            'id': election.id,
            'title': election.title,
            'positionName': election.position_name,
            'status': election.status,
        },
        'totalCandidates': len(listed),
        'candidates': [c.to_dict() for c in listed],
    })


# ------------------------------------------------------------ superadmin --

@app.route('/superadmin/users', methods=['GET'])
@require_superadmin
def list_users():
    users = identity.list_users()
    return success_response(200, "Users fetched", {
        'total': len(users),
        'users': [u.to_dict() for u in users],
    })


@app.route('/superadmin/admin', methods=['GET'])
@require_superadmin
def current_admin():
    admin = identity.current_holder(UserRole.ADMIN.value)
    return success_response(200, "Admin fetched", {'admin': admin.to_dict() if admin else None})


@app.route('/superadmin/users/<int:user_id>/make-admin', methods=['POST'])
@require_superadmin
def make_admin(user_id):
    user, changed = identity.assign_admin(user_id)
    if not changed:
        return success_response(200, "User is already admin", {'admin': user.to_dict()})
    audit_logger.record('admin_assigned', actor_id=current_user.id, user_id=user.id)
    return success_response(200, "Admin updated successfully", {'admin': user.to_dict()})


@app.route('/superadmin/users/<int:user_id>/make-superadmin', methods=['POST'])
@require_superadmin
def make_superadmin(user_id):
    actor_id = current_user.id
    user, changed = identity.transfer_superadmin(user_id)
    if not changed:
        return success_response(200, "User is already superadmin", {'superadmin': user.to_dict()})
    audit_logger.record('superadmin_transferred', actor_id=actor_id, user_id=user.id)
    return success_response(200, "Superadmin transferred successfully", {'superadmin': user.to_dict()})
