# Overview: Flask API routes for aggregate reports.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError, ValidationError
from ..models import ROLE_OWNER
from ..services import reporting_service
from ..time_utils import parse_iso_date, utcnow


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_arg(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date", details={"field": name})


@reports_bp.get("/summary")
@require_auth
def daily_summary_route():
    """Today vs yesterday: totals, items sold, sale count and % change."""
    try:
        return jsonify({"summary": reporting_service.daily_summary(_date_arg("date"))}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/sales")
@require_auth
def sales_by_period_route():
    try:
        period = request.args.get("period", reporting_service.PERIOD_DAY)
        groups = reporting_service.sales_by_period(period, since=_date_arg("since"))
        return jsonify({"period": period, "groups": groups}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/cashflow")
@require_auth
@require_role(ROLE_OWNER)
def cashflow_route():
    """Expense and deposit totals for [start, end] (defaults to today)."""
    try:
        today = utcnow().date()
        start = _date_arg("start") or today
        end = _date_arg("end") or today
        if end < start:
            raise ValidationError("end must not be before start", details={"field": "end"})
        return jsonify({
            "start": start.isoformat(),
            "end": end.isoformat(),
            "expenses": reporting_service.expense_summary(start, end),
            "deposits": reporting_service.deposit_summary(start, end),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
