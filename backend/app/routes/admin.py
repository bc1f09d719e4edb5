# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/app/routes/admin.py
"""
Admin routes for organization member management.

Provides endpoints for:
- Listing members of the caller's organization
- Creating staff users inside the caller's organization
- Changing a member's role or active flag
- Resetting a member's password

All endpoints require authentication and the owner or manager role.
A user id without a membership in the caller's organization answers 404.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..roles import USER_ADMIN_ROLES
from ..services import auth_service, permission_service
from ..services.auth_service import DuplicateLoginError, PasswordValidationError
from ..services.permission_service import PermissionDeniedError
from ..validation import NotFoundError, ValidationError
from ..decorators import require_auth, require_role

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/users")


def _audit(event_type: str, target_user_id: int, reason: str | None = None) -> None:
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type=event_type,
        success=True,
        resource=f"/users/{target_user_id}",
        action=request.method,
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        org_id=g.org_id,
    )


@admin_bp.get("")
@require_auth
@require_role(*USER_ADMIN_ROLES)
def list_users():
    """List members of the caller's organization, ordered by name."""
    members = auth_service.list_members(g.membership)
    return jsonify({"users": members, "count": len(members)})


@admin_bp.post("")
@require_auth
@require_role(*USER_ADMIN_ROLES)
def create_user():
    """
    Create a staff user in the caller's organization.

    Request body:
    {
        "name": "Jane",
        "username": "jane",
        "password": "...",     // strength-checked
        "role": "cashier"      // owner | manager | cashier
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.create_member(
            g.membership,
            name=data.get("name"),
            username=data.get("username"),
            password=data.get("password"),
            role=data.get("role"),
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DuplicateLoginError as e:
        return jsonify({"error": str(e)}), 409
    except PermissionDeniedError as e:
        return jsonify({"error": "Permission denied", "message": str(e)}), 403

    _audit("USER_CREATED", user.id, reason=f"role={data.get('role')}")
    return jsonify({"id": user.id, "user": user.to_dict()}), 201


@admin_bp.put("/<int:user_id>")
@require_auth
@require_role(*USER_ADMIN_ROLES)
def update_user(user_id: int):
    """
    Change role and/or is_active of a member.

    Takes effect on the member's next request.
    """
    data = request.get_json(silent=True) or {}
    unknown = sorted(set(data) - {"role", "is_active"})
    if unknown:
        return jsonify({"error": f"Field not allowed: {', '.join(unknown)}"}), 400

    try:
        membership = auth_service.update_member(
            g.membership,
            user_id,
            role=data.get("role"),
            is_active=data.get("is_active"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": "Permission denied", "message": str(e)}), 403

    _audit("MEMBERSHIP_UPDATED", user_id, reason=f"role={membership.role} is_active={membership.is_active}")
    return jsonify({"ok": True, "membership": membership.to_dict()}), 200


@admin_bp.post("/<int:user_id>/reset-password")
@require_auth
@require_role(*USER_ADMIN_ROLES)
def reset_password(user_id: int):
    """Set a new password for a member of the caller's organization."""
    data = request.get_json(silent=True) or {}

    try:
        auth_service.reset_password(g.membership, user_id, data.get("password"))
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500

    _audit("PASSWORD_RESET", user_id)
    return jsonify({"ok": True}), 200
