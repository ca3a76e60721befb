# Overview: Flask API routes for host analytics.

from flask import Blueprint, request, jsonify, g

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..decorators import require_auth, require_permission


host_bp = Blueprint("host", __name__, url_prefix="/api/host")


@host_bp.get("/analytics")
@require_auth
@require_permission("VIEW_ANALYTICS")
def analytics_route():
    """
    Batch performance for the caller's regions (every batch for admins).

    Query params:
    - months: size of the monthly revenue window, 1-24 (default 6)
    """
    months = request.args.get("months", default=6, type=int)
    try:
        data = reporting_service.host_analytics(g.current_user, months=months)
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(data), 200
