from __future__ import annotations

from flask import current_app, g, jsonify, request

from linkshelf.api import api_bp
from linkshelf.errors import LinkShelfError, ValidationError
from linkshelf.services.common import utcnow_iso
from linkshelf.services.documents import STORE_STATUS_ERROR
from linkshelf.services.registry import get_services
from linkshelf.services.security import api_auth_required


def _optional_text(value) -> str | None:
    return value if isinstance(value, str) else None


def _link_id(payload: dict) -> str:
    link_id = payload.get("linkId", payload.get("id"))
    if link_id is None or str(link_id).strip() == "":
        raise ValidationError("Link id is required")
    return str(link_id).strip()


@api_bp.route("/health")
def health():
    services = get_services()
    try:
        store_status = services.credentials.status()
    except LinkShelfError:
        store_status = STORE_STATUS_ERROR
    return jsonify(
        {
            "status": "healthy",
            "timestamp": utcnow_iso(),
            "version": current_app.config["VERSION"],
            "environment": current_app.config["ENVIRONMENT"],
            "storeBackend": services.backend,
            "storeStatus": store_status,
        }
    )


@api_bp.route("/links/categories")
def link_categories():
    return jsonify({"success": True, "categories": get_services().links.categories()})


@api_bp.route("/links", methods=["GET"])
@api_auth_required
def list_links():
    links = get_services().links.list_links(g.api_user.user_hash)
    return jsonify({"success": True, "links": links})


@api_bp.route("/links", methods=["POST"])
@api_auth_required
def add_link():
    payload = request.get_json(silent=True) or {}
    link = get_services().links.add_link(
        g.api_user.user_hash,
        g.api_user.username,
        _optional_text(payload.get("url")),
        title=_optional_text(payload.get("title")),
        category=_optional_text(payload.get("category")),
    )
    return (
        jsonify({"success": True, "message": "Link added successfully", "link": link}),
        201,
    )


@api_bp.route("/links", methods=["DELETE"])
@api_auth_required
def delete_link_by_query():
    payload = request.get_json(silent=True) or {}
    if "id" in request.args:
        payload = {"id": request.args["id"]}
    get_services().links.remove_link(g.api_user.user_hash, _link_id(payload))
    return jsonify({"success": True, "message": "Link deleted successfully"})


@api_bp.route("/links/<link_id>", methods=["DELETE"])
@api_auth_required
def delete_link(link_id):
    get_services().links.remove_link(g.api_user.user_hash, link_id)
    return jsonify({"success": True, "message": "Link deleted successfully"})


@api_bp.route("/links/<link_id>", methods=["PUT"])
@api_auth_required
def update_link(link_id):
    payload = request.get_json(silent=True) or {}
    link = get_services().links.update_link(
        g.api_user.user_hash,
        link_id,
        url=_optional_text(payload.get("url")),
        title=_optional_text(payload.get("title")),
        category=_optional_text(payload.get("category")),
    )
    return jsonify({"success": True, "message": "Link updated successfully", "link": link})


@api_bp.route("/links/mark-read", methods=["POST"])
@api_auth_required
def mark_read():
    payload = request.get_json(silent=True) or {}
    link = get_services().links.set_read_state(
        g.api_user.user_hash, _link_id(payload), payload.get("isRead", 1)
    )
    return jsonify({"success": True, "link": link})


@api_bp.route("/links/toggle-favorite", methods=["POST"])
@api_auth_required
def toggle_favorite():
    payload = request.get_json(silent=True) or {}
    link_id = _link_id(payload)
    if "isFavorite" not in payload:
        raise ValidationError("isFavorite is required")
    link = get_services().links.set_favorite(
        g.api_user.user_hash, link_id, payload["isFavorite"]
    )
    return jsonify({"success": True, "link": link})
