# elections/authentication/rbac.py

from enum import Enum
from functools import wraps

from flask_jwt_extended import verify_jwt_in_request, current_user

from elections import jwt, db
from elections.database.models import User
from elections.errors import AuthError, EligibilityError

# Role-Based Access Control: voter-only, admin-or-superadmin, superadmin-only


class UserRole(Enum):
    VOTER = "voter"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class Permission(Enum):
    VOTE = "vote"
    VIEW_PUBLIC_RESULTS = "view_public_results"
    VIEW_OWN_PROFILE = "view_own_profile"
    MANAGE_ELECTIONS = "manage_elections"
    MANAGE_CANDIDATES = "manage_candidates"
    MANAGE_ROSTER = "manage_roster"
    VIEW_RESULTS = "view_results"
    MANAGE_USERS = "manage_users"


# Role -> Permissions mapping
ROLE_PERMISSIONS = {
    UserRole.VOTER: [
        Permission.VOTE,
        Permission.VIEW_PUBLIC_RESULTS,
        Permission.VIEW_OWN_PROFILE,
    ],
    UserRole.ADMIN: [
        Permission.MANAGE_ELECTIONS,
        Permission.MANAGE_CANDIDATES,
        Permission.MANAGE_ROSTER,
        Permission.VIEW_RESULTS,
        Permission.VIEW_OWN_PROFILE,
    ],
    UserRole.SUPERADMIN: [
        Permission.MANAGE_ELECTIONS,
        Permission.MANAGE_CANDIDATES,
        Permission.MANAGE_ROSTER,
        Permission.VIEW_RESULTS,
        Permission.VIEW_OWN_PROFILE,
        Permission.MANAGE_USERS,
    ],
}


class RBACService:
    def has_permission(self, user_role, permission):
        if isinstance(user_role, str):
            try:
                user_role = UserRole(user_role)
            except ValueError:
                return False
        if isinstance(permission, str):
            permission = Permission(permission)
        return permission in ROLE_PERMISSIONS.get(user_role, [])


rbac_service = RBACService()


@jwt.user_lookup_loader
def load_current_user(jwt_header, jwt_payload):
    # Fresh from the store so demotions take effect on the next request
    try:
        user_id = int(jwt_payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
    return db.session.get(User, user_id)


def require_login(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if current_user is None:
            raise AuthError("Unauthorized")
        return func(*args, **kwargs)
    return wrapper


def require_permission(permission, message="Access denied"):
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if current_user is None:
                raise AuthError("Unauthorized")
            if not rbac_service.has_permission(current_user.role, permission):
                raise EligibilityError(message)
            return func(*args, **kwargs)
        return wrapper
    return decorator


def require_role(*roles, message=None):
    allowed = {r.value if isinstance(r, Enum) else str(r) for r in roles}

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if current_user is None:
                raise AuthError("Unauthorized")
            if current_user.role not in allowed:
                raise EligibilityError(message or "Access denied")
            return func(*args, **kwargs)
        return wrapper
    return decorator


require_voter = require_role(UserRole.VOTER, message="Voter access required")
require_admin = require_role(UserRole.ADMIN, UserRole.SUPERADMIN, message="Admin access required")
require_superadmin = require_role(UserRole.SUPERADMIN, message="Superadmin access required")
