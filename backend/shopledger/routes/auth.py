# Overview: Flask API routes for phone/PIN authentication and profile approval.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_privileged
from ..errors import LedgerError, ValidationError
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
profiles_bp = Blueprint("profiles", __name__, url_prefix="/api/profiles")


@auth_bp.post("/register")
def register_route():
    """
    Sign up with phone, PIN, name and designation.

    New profiles start unapproved (except the configured admin phone).
    """
    try:
        data = request.get_json() or {}
        profile = auth_service.register_profile(
            phone=data.get("phone"),
            pin=data.get("pin"),
            name=data.get("name"),
            designation=data.get("designation") or "Store Manager",
        )
        return jsonify({"profile": profile.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register profile")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    try:
        data = request.get_json() or {}
        profile = auth_service.authenticate(data.get("phone"), data.get("pin"))
        _, token = session_service.create_session(profile.id)
        return jsonify({"token": token, "profile": profile.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to login profile")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token, reason="Logout")
        return jsonify({"success": True}), 200
    except Exception:
        current_app.logger.exception("Failed to logout profile")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"profile": g.current_user.to_dict()}), 200


@auth_bp.post("/verify-pin")
@require_auth
def verify_pin_route():
    """Re-check the current actor's PIN (e.g. before a sensitive action)."""
    data = request.get_json() or {}
    result = auth_service.verify_credential(g.current_user.id, data.get("pin") or "")
    return jsonify(result), 200


@auth_bp.post("/change-pin")
@require_auth
def change_pin_route():
    try:
        data = request.get_json() or {}
        auth_service.change_pin(g.current_user.id, data.get("current_pin") or "", data.get("new_pin") or "")
        return jsonify({"success": True}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change PIN")
        return jsonify({"error": "Internal server error"}), 500


@profiles_bp.get("/")
@require_auth
def list_profiles_route():
    """
    List profiles. Admins see everything (including pending approvals);
    everyone else sees approved profiles only (deposit depositor picker).
    """
    approved_param = request.args.get("approved")
    approved = None
    if approved_param is not None:
        approved = approved_param.lower() in ("1", "true", "yes")
    if not g.current_user.is_admin:
        approved = True

    profiles = auth_service.list_profiles(approved=approved)
    return jsonify({"profiles": [p.to_dict() for p in profiles]}), 200


@profiles_bp.post("/<int:profile_id>/verify-pin")
@require_privileged
def verify_profile_pin_route(profile_id: int):
    data = request.get_json() or {}
    return jsonify(auth_service.verify_credential(profile_id, data.get("pin") or "")), 200


@profiles_bp.post("/<int:profile_id>/approval")
@require_privileged
def set_approval_route(profile_id: int):
    """
    Approve or revoke a profile.

    Requires: admin session or X-Service-Key
    """
    try:
        data = request.get_json() or {}
        approved = data.get("approved")
        if not isinstance(approved, bool):
            raise ValidationError("approved must be true or false", details={"field": "approved"})

        result = auth_service.set_approval(profile_id, approved)
        return jsonify(result), (200 if result["success"] else 400)

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set approval")
        return jsonify({"error": "Internal server error"}), 500
