# Overview: Flask API routes for analytics; parses input and returns JSON responses.

"""
Analytics Routes

Today's sales summary and top-selling products for the caller's organization.
"""

from flask import Blueprint, jsonify, g

from ..decorators import require_auth
from ..services import reporting_service


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/v1/analytics")


@analytics_bp.get("/today-summary")
@require_auth
def today_summary_route():
    return jsonify(reporting_service.today_summary(g.org_id))


@analytics_bp.get("/top-selling")
@require_auth
def top_selling_route():
    rows = reporting_service.top_selling(g.org_id)
    return jsonify({"items": rows, "count": len(rows)})
