# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/app/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration
- Identical 401 for unknown login, wrong password and no active organization
- Signed, time-boxed session tokens (tenant and role re-resolved per request)
- Failed and successful logins recorded in security_events
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import tenant_service
from ..services.auth_service import (
    DuplicateLoginError,
    InvalidCredentialsError,
    PasswordValidationError,
)
from ..services.tenant_service import AmbiguousOrganizationError, TenantAccessError
from ..validation import NotFoundError, ValidationError, coerce_int
from ..decorators import require_user
from app.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _context_body(context) -> dict:
    org = tenant_service.get_organization(context.org_id)
    return {
        "organization": org.to_dict() if org else None,
        "org_id": context.org_id,
        "role": context.role.value,
    }


@auth_bp.post("/register")
def register_route():
    """
    Self-registration.

    Creates the user, a new organization named after them and an owner
    membership. Returns the new user id.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register(
            name=data.get("name"),
            username=data.get("username"),
            password=data.get("password"),
        )
        return jsonify({"id": user.id, "user": user.to_dict()}), 201

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DuplicateLoginError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a session token.

    Token must be included in Authorization header for protected routes.
    When the user belongs to several organizations and none is selected,
    the response carries organization_choices instead of a role; the client
    then calls /switch-organization.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
            return jsonify({"error": "username and password required"}), 400

        result = auth_service.login(
            username,
            password,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )

        body = {
            "user": result.user.to_dict(),
            "user_id": result.user.id,
            "token": result.token.token,
            "expires_at": to_utc_z(result.token.expires_at),
            "message": "Login successful",
        }
        if result.context is not None:
            body.update(_context_body(result.context))
        else:
            body["organization_choices"] = result.organization_choices
        return jsonify(body), 200

    except InvalidCredentialsError:
        return jsonify({"error": "Invalid credentials"}), 401
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_user
def me_route():
    """
    Current user with resolved organization and role.

    Works without a usable tenant so the client can see why (and which
    organizations it may switch into).
    """
    user = g.current_user
    body = {"user": user.to_dict()}
    try:
        context = tenant_service.resolve_membership(user.id)
    except AmbiguousOrganizationError as e:
        body["organization_choices"] = e.org_ids
        body["error"] = str(e)
        return jsonify(body), 200
    except TenantAccessError as e:
        body["error"] = str(e)
        return jsonify(body), 200

    body.update(_context_body(context))
    return jsonify(body), 200


@auth_bp.post("/switch-organization")
@require_user
def switch_organization_route():
    """Store an explicit current organization for the caller."""
    data = request.get_json(silent=True) or {}
    try:
        org_id = coerce_int(data.get("org_id"), "org_id")
        context = tenant_service.switch_organization(g.current_user.id, org_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    current_app.logger.info("User %s switched to org %s", g.current_user.id, org_id)
    return jsonify(_context_body(context)), 200
