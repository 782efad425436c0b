from __future__ import annotations

import hmac
from typing import Optional
from urllib.parse import urljoin

from flask import Flask, jsonify, request

from .config import Settings
from .fetch import FetchError
from .log import get_logger
from .sites import InputError, SiteNotFound, SiteService
from .store import Store, StoreError, open_store

log = get_logger(__name__)

EDIT_PASSWORD_HEADER = "X-Edit-Password"


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None) -> Flask:
    cfg = settings or Settings.from_env()
    service = SiteService(store if store is not None else open_store(cfg), cfg)

    app = Flask(__name__)
    app.config["NAV_SETTINGS"] = cfg
    app.config["NAV_SERVICE"] = service

    @app.before_request
    def _edit_gate():
        if request.method in ("GET", "HEAD", "OPTIONS") or not cfg.edit_password:
            return None
        # WSGI hands header values over as latin-1 decoded text; recover the raw bytes.
        given = request.headers.get(EDIT_PASSWORD_HEADER, "").encode("latin-1", errors="replace")
        if hmac.compare_digest(given, cfg.edit_password.encode("utf-8")):
            return None
        log.warning("Rejected %s %s: bad edit password.", request.method, request.path)
        return jsonify({"error": "Edit password required"}), 403

    @app.errorhandler(InputError)
    def _input_error(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(SiteNotFound)
    def _not_found(e):
        return jsonify({"error": f"Site not found: {e.args[0] if e.args else ''}"}), 404

    @app.errorhandler(FetchError)
    def _fetch_error(e):
        return jsonify({"error": str(e)}), 502

    @app.errorhandler(StoreError)
    def _store_error(e):
        log.error("Store failure: %s", e)
        return jsonify({"error": str(e)}), 500

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return jsonify({"error": "Method Not Allowed"}), 405

    @app.route("/api/sites", methods=["GET"])
    def list_sites():
        if request.args.get("meta") == "1":
            cat = service.catalog()
            return jsonify({"sites": [s.to_dict() for s in cat["sites"]], "categories": cat["categories"]})
        return jsonify([s.to_dict() for s in service.list_sites()])

    @app.route("/api/sites", methods=["POST"])
    def add_site():
        data = _json_body()
        if isinstance(data, dict) and data.get("category") and not data.get("name") and not data.get("url"):
            categories = service.add_category(str(data["category"]))
            return jsonify({"categories": categories}), 201
        site = service.add_site(data)
        return jsonify(site.to_dict()), 201

    @app.route("/api/sites", methods=["PUT"])
    def update_site():
        sites = service.update_site(_json_body())
        return jsonify([s.to_dict() for s in sites])

    @app.route("/api/sites", methods=["DELETE"])
    def delete_sites():
        data = _json_body()
        ids = data.get("ids") if isinstance(data, dict) else None
        if not isinstance(ids, list):
            raise InputError("ids: must be a list")
        deleted = service.delete_sites(ids)
        return jsonify({"success": True, "deleted": deleted})

    @app.route("/api/import", methods=["POST"])
    def import_bookmarks():
        upload = request.files.get("file")
        if upload is not None:
            html = upload.read().decode("utf-8", errors="replace")
            result = service.import_html(html)
        else:
            data = request.get_json(silent=True) or {}
            if not isinstance(data, dict):
                raise InputError("No HTML content provided")
            html = data.get("html")
            if data.get("url") and not html:
                target = _resolve_import_url(cfg.import_url_base, str(data["url"]))
                result = service.import_url(target, follow_redirects=False)
            else:
                result = service.import_html(html if isinstance(html, str) else None)
        return jsonify(
            {
                "success": True,
                "imported": result.imported_count,
                "skipped": result.skipped_count,
            }
        )

    return app


def _resolve_import_url(base: str, url: str) -> str:
    """Resolve ``url`` against the configured base; anything outside it is refused.

    Relative paths such as ``/default-bookmarks.html`` are allowed.
    """
    if not base:
        raise InputError("URL import is disabled; set NAV_IMPORT_URL_BASE or upload the file")
    root = base if base.endswith("/") else base + "/"
    target = urljoin(root, url.strip())
    if not target.startswith(root):
        raise InputError(f"url: {url} is outside {root}")
    return target


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        raise InputError("Invalid JSON or missing Content-Type: application/json")
    return data
