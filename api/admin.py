from __future__ import annotations

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort

from models.schemas.session import SessionOutSchema
from models.schemas.user import RoleUpdateSchema, UserOutSchema
from models.token_store import ADMIN as REVOKED_BY_ADMIN, RefreshTokenStore
from models.user_store import UserStore
from utils.decorators import SessionGuard, roles_required
from utils.roles import ADMIN, STAFF, role_in, role_is

logger = logging.getLogger(__name__)

MAX_LIMIT = 100

user_list_out_schema = UserOutSchema(many=True)
user_out_schema = UserOutSchema()
role_update_schema = RoleUpdateSchema()
session_list_schema = SessionOutSchema(many=True)

admin_only = role_is(ADMIN)
staff_or_admin = role_in(STAFF, ADMIN)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def create_blueprint(users: UserStore, tokens: RefreshTokenStore, guard: SessionGuard) -> Blueprint:
    bp = Blueprint("admin", __name__)

    def get_user_or_404(user_id: str):
        user = users.find_user_by_id(user_id)
        if user is None:
            abort(404)
        return user

    @bp.get("/admin/users")
    @guard.jwt_required()
    @roles_required(admin_only)
    def list_users():
        """
        Admin-only: list users
        ---
        tags:
          - Admin
        security:
          - Bearer: []
        parameters:
          - { in: query, name: page, type: integer }
          - { in: query, name: limit, type: integer }
        responses:
          200: { description: OK }
          401: { description: Unauthorized }
          403: { description: Forbidden }
        """
        page, limit = parse_pagination()
        rows, total = users.list_users(page=page, limit=limit)
        return jsonify(
            {
                "data": user_list_out_schema.dump(rows),
                "meta": {"page": page, "limit": limit, "total": total}
            }
        ), 200

    @bp.patch("/admin/users/<user_id>/role")
    @guard.jwt_required()
    @roles_required(admin_only)
    def set_role(user_id: str):
        """
        Admin-only: set the role of a user.
        Body: { "role": "refugee" | "volunteer" | "staff" | "admin" }
        ---
        tags:
          - Admin
        security:
          - Bearer: []
        consumes:
          - application/json
        parameters:
          -  in: path
             name: user_id
             type: string
             required: true
          -  in: body
             name: body
             schema:
               type: object
               properties:
                 role: { type: string }
        responses:
          200: { description: OK }
          404: { description: User not found }
          422: { description: Unknown role }
        """
        payload = request.get_json(silent=True) or {}
        data = role_update_schema.load(payload)
        user = get_user_or_404(user_id)
        previous = user.role
        users.set_role(user, data["role"])
        logger.info("admin %s changed role of %s: %s -> %s", g.current_user.id, user.id, previous, user.role)
        return jsonify({"data": user_out_schema.dump(user)}), 200

    @bp.post("/admin/users/<user_id>/revoke-sessions")
    @guard.jwt_required()
    @roles_required(admin_only)
    def revoke_sessions(user_id: str):
        """
        Admin-only: revoke every refresh token of a user.
        ---
        tags:
          - Admin
        security:
          - Bearer: []
        parameters:
          -  in: path
             name: user_id
             type: string
             required: true
        responses:
          200: { description: Number of revoked sessions }
          404: { description: User not found }
        """
        user = get_user_or_404(user_id)
        revoked = tokens.revoke_all_for_user(user.id, reason=REVOKED_BY_ADMIN)
        logger.info("admin %s revoked %d session(s) of %s", g.current_user.id, revoked, user.id)
        return jsonify({"revoked": revoked}), 200

    @bp.get("/staff/users/<user_id>/sessions")
    @guard.jwt_required()
    @roles_required(staff_or_admin)
    def user_sessions(user_id: str):
        """
        Staff: active sessions of a user, with provenance.
        ---
        tags:
          - Admin
        security:
          - Bearer: []
        parameters:
          -  in: path
             name: user_id
             type: string
             required: true
        responses:
          200: { description: OK }
          403: { description: Forbidden }
          404: { description: User not found }
        """
        user = get_user_or_404(user_id)
        rows = tokens.list_active_for_user(user.id)
        return jsonify({"data": session_list_schema.dump(rows)}), 200

    return bp
