from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth
from ..services import settings_service
from ..validation import ValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1/settings")


# Settings are private to (organization, user): the caller only ever sees
# their own values inside their current organization.

@settings_bp.get("/<path:key>")
@require_auth
def get_setting(key: str):
    try:
        return jsonify(settings_service.get_setting(g.org_id, g.current_user.id, key))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@settings_bp.put("/<path:key>")
@require_auth
def put_setting(key: str):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or "value" not in payload:
        return jsonify({"error": "value is required"}), 400

    try:
        row = settings_service.put_setting(g.org_id, g.current_user.id, key, payload["value"])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(row)
