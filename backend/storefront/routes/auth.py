# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Login rate limiting per client IP ("login" preset)
- Session management with opaque bearer tokens (only hashes stored)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..services.rate_limit_service import client_ip, rate_limited


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
@rate_limited("login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400

    user = auth_service.authenticate(email, password)
    if not user:
        current_app.logger.info("Failed login for %s from %s", email, client_ip())
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(user.id, ip_address=client_ip())

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "isAdmin": auth_service.is_admin(user.id),
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers["Authorization"].split(" ", 1)[1].strip()
    session_service.revoke_session(token)
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/verify")
@require_auth
def verify_route():
    """Return the caller's AuthContext."""
    return jsonify({
        "userId": g.auth.user_id,
        "email": g.auth.email,
        "isAdmin": g.auth.is_admin,
    }), 200
