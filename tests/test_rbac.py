import pytest

from elections.authentication import rbac
from elections.authentication.rbac import Permission, UserRole


@pytest.mark.parametrize("role,permission,allowed", [
    ("voter", "vote", True),
    ("voter", "manage_elections", False),
    ("admin", "manage_elections", True),
    ("admin", "vote", False),
    ("admin", "manage_users", False),
    ("superadmin", "manage_users", True),
    ("superadmin", "view_results", True),
    ("stranger", "vote", False),
])
def test_has_permission(role, permission, allowed):
    assert rbac.rbac_service.has_permission(role, permission) is allowed


def test_has_permission_accepts_enums():
    assert rbac.rbac_service.has_permission(UserRole.VOTER, Permission.VOTE) is True
    assert rbac.rbac_service.has_permission(UserRole.ADMIN, Permission.VOTE) is False


def test_missing_token_is_401(client):
    resp = client.get("/user/profile")
    assert resp.status_code == 401
    assert resp.get_json() == {"success": False, "message": "Token not found", "data": None}


def test_garbage_token_is_401(client):
    resp = client.get("/user/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


def test_token_for_deleted_user_is_401(client, auth_header, make_user, database):
    user = make_user()
    headers = auth_header(user)
    database.session.delete(user)
    database.session.commit()
    assert client.get("/user/profile", headers=headers).status_code == 401


@pytest.mark.parametrize("role,path,expected", [
    ("voter", "/admin/elections", 403),
    ("admin", "/admin/elections", 200),
    ("superadmin", "/admin/elections", 200),
    ("voter", "/superadmin/users", 403),
    ("admin", "/superadmin/users", 403),
    ("superadmin", "/superadmin/users", 200),
])
def test_route_groups_gated_by_role(client, auth_header, make_user, role, path, expected):
    user = make_user(role=role)
    resp = client.get(path, headers=auth_header(user))
    assert resp.status_code == expected


def test_role_is_read_fresh_on_each_request(client, auth_header, make_user, database):
    user = make_user(role="admin")
    headers = auth_header(user)
    assert client.get("/admin/elections", headers=headers).status_code == 200

    user.role = "voter"
    database.session.commit()

    resp = client.get("/admin/elections", headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "Admin access required"


def test_admin_cannot_vote(client, auth_header, admin_user, make_election):
    election = make_election(status="ongoing")
    resp = client.post(f"/user/elections/{election.id}/vote", json={"candidateId": 1},
                       headers=auth_header(admin_user))
    assert resp.status_code == 403
