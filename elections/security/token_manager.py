# elections/security/token_manager.py
from datetime import timedelta

from flask import Flask
from flask_jwt_extended import create_access_token


# Bearer tokens for the API. Incoming tokens are checked by
# verify_jwt_in_request in the RBAC decorators; only the user id is trusted,
# the role claim is informational for clients and the role is re-read from
# the store on every request.
class TokenManager:
    def __init__(self, app: Flask = None):
        if app:
            self.init_app(app)

    def init_app(self, app: Flask):
        app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(hours=1))
        app.config.setdefault("JWT_TOKEN_LOCATION", ["headers"])

    def generate_token(self, user_id, expires_in: int = None, role: str = None) -> str:
        expires_delta = timedelta(seconds=expires_in) if expires_in else None
        claims = {"role": role} if role else None
        return create_access_token(
            identity=str(user_id), expires_delta=expires_delta, additional_claims=claims,
        )

    def issue_for(self, user) -> str:
        return self.generate_token(user.id, role=user.role)
