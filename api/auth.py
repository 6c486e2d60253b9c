"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/logout-all
- GET  /auth/me
- GET  /auth/sessions
- PUT  /auth/change-password

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived JWT access tokens and opaque refresh tokens
- Stores refresh tokens in the DB (RefreshToken model) so they can be rotated and revoked
- Protected routes expect `Authorization: Bearer <access token>`
- login, refresh and logout are rate limited per client address
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort

from models.schemas.session import LogoutRequestSchema, RefreshRequestSchema, SessionOutSchema
from models.schemas.user import (
    PasswordChangeSchema,
    UserCreateSchema,
    UserLoginSchema,
    UserOutSchema,
)
from models.token_store import PASSWORD_CHANGE, RefreshTokenStore
from models.user_store import EmailAlreadyRegistered, UserStore
from utils.decorators import SessionGuard, rate_limited
from utils.exceptions import AuthenticationFailure
from utils.issuer import TokenIssuer
from utils.rate_limiter import LOGIN, LOGOUT, REFRESH, RateLimiter

logger = logging.getLogger(__name__)

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()
user_login_schema = UserLoginSchema()
password_change_schema = PasswordChangeSchema()
refresh_schema = RefreshRequestSchema()
logout_schema = LogoutRequestSchema()
session_list_schema = SessionOutSchema(many=True)


def client_provenance():
    """(ip_address, user_agent) of the current request."""
    return request.remote_addr, request.headers.get("User-Agent")


def create_blueprint(issuer: TokenIssuer, users: UserStore, tokens: RefreshTokenStore,
                     guard: SessionGuard, limiter: RateLimiter) -> Blueprint:
    bp = Blueprint("auth", __name__, url_prefix="/auth")

    @bp.post("/register")
    def register():
        """
        Register a new user (role is always the default).
        ---
        tags:
          - Auth
        consumes:
          - application/json
        parameters:
          - in: body
            name: body
            schema:
              type: object
              properties:
                email: { type: string }
                password: { type: string }
                name: { type: string }
        responses:
          201:
            description: Created
          409:
            description: Email already registered
          422:
            description: Validation error
        """
        payload = request.get_json(silent=True) or {}
        data = user_create_schema.load(payload)
        try:
            user = users.create_user(data["email"], data["password"], name=data["name"])
        except EmailAlreadyRegistered:
            abort(409, description="Email already registered")
        logger.info("registered user %s", user.id)
        return jsonify({"data": user_out_schema.dump(user)}), 201

    @bp.post("/login")
    @rate_limited(limiter, LOGIN)
    def login():
        """
        Login: return access_token and refresh_token
        ---
        tags:
          - Auth
        consumes:
          - application/json
        parameters:
          -  in: body
             name: body
             schema:
               type: object
               properties:
                 email: { type: string }
                 password: { type: string }
        responses:
          200:
            description: OK (returns tokens and the user)
          401:
            description: Invalid credentials
          429:
            description: Too many login attempts from this address
        """
        payload = request.get_json(silent=True) or {}
        data = user_login_schema.load(payload)

        user = users.authenticate(data["email"], data["password"])
        if user is None:
            raise AuthenticationFailure("Login failed", email=data["email"].strip().lower())

        ip_address, user_agent = client_provenance()
        pair = issuer.issue(user, ip_address=ip_address, user_agent=user_agent)
        body = pair.to_dict()
        body["user"] = user_out_schema.dump(user)
        return jsonify(body), 200

    @bp.post("/refresh")
    @rate_limited(limiter, REFRESH)
    def refresh():
        """
        Exchange a refresh token for a new access/refresh pair (rotation).
        The presented refresh token is revoked; presenting it again revokes every
        session of the user.
        ---
        tags:
          - Auth
        consumes:
          - application/json
        parameters:
          -  in: body
             name: body
             schema:
               type: object
               properties:
                 refresh_token: { type: string }
        responses:
          200:
            description: OK (returns a new token pair)
          401:
            description: Invalid or expired refresh token
          429:
            description: Too many refresh attempts from this address
        """
        payload = request.get_json(silent=True) or {}
        data = refresh_schema.load(payload)
        ip_address, user_agent = client_provenance()
        pair = issuer.refresh(data["refresh_token"], ip_address=ip_address, user_agent=user_agent)
        return jsonify(pair.to_dict()), 200

    @bp.post("/logout")
    @rate_limited(limiter, LOGOUT)
    def logout():
        """
        Logout: revokes the given refresh token
        ---
        tags:
          - Auth
        consumes:
          - application/json
        parameters:
          -  in: body
             name: body
             schema:
               type: object
               properties:
                 refresh_token: { type: string }
        responses:
          204:
            description: ""
          429:
            description: Too many logout attempts from this address
        """
        payload = request.get_json(silent=True) or {}
        data = logout_schema.load(payload)
        if data.get("refresh_token"):
            issuer.logout(data["refresh_token"])
        return ("", 204)

    @bp.post("/logout-all")
    @guard.jwt_required()
    def logout_all():
        """
        Revoke every refresh token of the current user (logout everywhere).
        ---
        tags:
          - Auth
        security:
          - Bearer: []
        responses:
          200:
            description: Number of revoked sessions
          401:
            description: Unauthorized
        """
        revoked = issuer.logout_all(g.current_user.id)
        return jsonify({"revoked": revoked}), 200

    @bp.get("/me")
    @guard.jwt_required()
    def me():
        """
        Get current user info.
        ---
        tags:
          - Auth
        security:
          - Bearer: []
        responses:
          200:
            description: OK
          401:
            description: Unauthorized
        """
        return jsonify({"data": user_out_schema.dump(g.current_user)}), 200

    @bp.get("/sessions")
    @guard.jwt_required()
    def sessions():
        """
        Active sessions (refresh tokens) of the current user, newest first.
        ---
        tags:
          - Auth
        security:
          - Bearer: []
        responses:
          200:
            description: OK
        """
        rows = tokens.list_active_for_user(g.current_user.id)
        return jsonify({"data": session_list_schema.dump(rows)}), 200

    @bp.put("/change-password")
    @guard.jwt_required()
    def change_password():
        """
        Change password. Every refresh token of the user is revoked.
        ---
        tags:
          - Auth
        security:
          - Bearer: []
        consumes:
          - application/json
        parameters:
          -  in: body
             name: body
             schema:
               type: object
               properties:
                 current_password: { type: string }
                 new_password: { type: string }
        responses:
          200:
            description: Password changed
          401:
            description: Current password is incorrect
        """
        payload = request.get_json(silent=True) or {}
        data = password_change_schema.load(payload)
        user = g.current_user
        if not users.verify_password(user, data["current_password"]):
            raise AuthenticationFailure("Password change with wrong current password", user_id=user.id)
        users.set_password(user, data["new_password"])
        revoked = issuer.logout_all(user.id, reason=PASSWORD_CHANGE)
        logger.info("password changed for user %s; revoked %d session(s)", user.id, revoked)
        return jsonify({"message": "Password updated", "revoked": revoked}), 200

    return bp
