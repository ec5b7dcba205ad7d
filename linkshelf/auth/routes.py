from flask import g, jsonify, request

from linkshelf.auth import auth_bp
from linkshelf.services.registry import get_services
from linkshelf.services.security import api_auth_required, issue_token_for


def _text(value) -> str:
    return value if isinstance(value, str) else ""


def _session_payload(username: str, user_hash: str, message: str) -> dict:
    return {
        "success": True,
        "message": message,
        "user": {"username": username},
        "token": issue_token_for(username, user_hash),
    }


@auth_bp.route("/register", methods=["POST"])
def register():
    payload = request.get_json(silent=True) or {}
    credential = get_services().credentials.register(
        _text(payload.get("username")), _text(payload.get("password"))
    )
    return (
        jsonify(
            _session_payload(
                credential.username, credential.user_hash, "User created successfully"
            )
        ),
        201,
    )


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    result = get_services().credentials.authenticate(
        _text(payload.get("username")), _text(payload.get("password"))
    )
    return jsonify(_session_payload(result.username, result.user_hash, "Login successful"))


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    payload = request.get_json(silent=True) or {}
    credential = get_services().credentials.reset_password(
        _text(payload.get("username")), _text(payload.get("newPassword"))
    )
    return jsonify(
        _session_payload(
            credential.username, credential.user_hash, "Password reset successfully"
        )
    )


@auth_bp.route("/check/<username>")
def check_username(username):
    return jsonify({"exists": get_services().credentials.exists(username)})


@auth_bp.route("/verify")
@api_auth_required
def verify():
    return jsonify(
        {
            "success": True,
            "message": "Token valid",
            "user": {"username": g.api_user.username},
        }
    )


@auth_bp.route("/logout", methods=["POST"])
@api_auth_required
def logout():
    # Tokens are stateless; the client discards its copy.
    return jsonify({"success": True, "message": "Logout successful"})
