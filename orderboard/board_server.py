#!/usr/bin/env python3
"""
Order Board Server
------------------
JSON API over the sync controller. The controller owns the board state; this
module only translates HTTP requests into controller intents.

Usage:
    orderboard-server --config config/orderboard.yaml
    ORDERBOARD_API_TOKEN=... orderboard-server --port 3000

API:
    GET  /api/board                       → { columns, stats, phase, is_loading, error, last_sync_time }
    GET  /api/orders/<id>                 → { order }
    POST /api/orders                      → draft JSON; 201 { order }
    PUT  /api/orders/<id>                 → field patch
    POST /api/orders/<id>/status          → { status, comment?, position? }
    POST /api/orders/<id>/comments        → { comment }
    POST /api/columns/<status>/reorder    → { order_ids }
    POST /api/reload                      → full reload from the order service
    GET  /api/notifications               → recent toasts
    GET  /health
"""

import argparse
import asyncio
import hmac
import logging
import sys
import threading
from functools import wraps
from typing import Optional

from flask import Flask, jsonify, request

from .config import BoardConfig, ConfigError
from .notifications import Notifier
from .remote import RemoteOrderService, RemoteError
from .schema import OrderDraft, Status
from .sync import SyncController

logger = logging.getLogger(__name__)

# Snake-case names accepted by PUT /api/orders/<id>, keyed by their JSON name
FIELD_NAMES = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "customer": "customer",
    "products": "products",
    "labels": "labels",
    "dueDate": "due_date",
    "assignedTo": "assigned_to",
    "paymentStatus": "payment_status",
    "paymentMethod": "payment_method",
    "status": "status",
}


def create_app(controller: SyncController, api_secret: str = "") -> Flask:
    """Build the Flask app around one controller."""
    app = Flask(__name__)
    # One writer: async controller calls run one at a time
    lock = threading.Lock()

    def run(coro):
        with lock:
            return asyncio.run(coro)

    def require_api_key(f):
        """Reject mutating requests without a valid X-API-Key when a secret is set."""
        @wraps(f)
        def decorated(*args, **kwargs):
            if api_secret:
                provided = request.headers.get("X-API-Key", "").strip()
                if not hmac.compare_digest(provided, api_secret):
                    code = 401 if not provided else 403
                    return jsonify({"error": "Unauthorized"}), code
            return f(*args, **kwargs)
        return decorated

    # ── Read ─────────────────────────────────────────────────────────────────

    @app.route("/api/board")
    def api_board():
        state = controller.state
        return jsonify({
            "columns": [c.to_dict() for c in state.columns],
            "stats": state.stats(),
            "phase": controller.phase.value,
            "is_loading": state.is_loading,
            "error": state.error,
            "last_sync_time": state.last_sync_time.isoformat() if state.last_sync_time else None,
        })

    @app.route("/api/orders/<order_id>", methods=["GET"])
    def api_get_order(order_id):
        order = controller.get_order(order_id)
        if order is None:
            return jsonify({"error": "Order not found"}), 404
        return jsonify({"order": order.to_dict()})

    @app.route("/api/notifications")
    def api_notifications():
        limit = request.args.get("limit", 20, type=int)
        return jsonify({"notifications": [n.to_dict() for n in controller.notifier.recent(limit)]})

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "phase": controller.phase.value,
            "authenticated": controller.remote.is_authenticated(),
        })

    # ── Write ────────────────────────────────────────────────────────────────

    @app.route("/api/orders", methods=["POST"])
    @require_api_key
    def api_create_order():
        data = request.get_json(force=True, silent=True) or {}
        try:
            draft = OrderDraft.from_dict(data)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        try:
            order = run(controller.create_order(draft))
        except RemoteError as e:
            return jsonify({"error": str(e)}), 502
        return jsonify({"order": order.to_dict(), "id": order.id}), 201

    @app.route("/api/orders/<order_id>", methods=["PUT"])
    @require_api_key
    def api_update_order(order_id):
        data = request.get_json(force=True, silent=True) or {}
        if controller.get_order(order_id) is None:
            return jsonify({"error": "Order not found"}), 404
        changes = {FIELD_NAMES[k]: v for k, v in data.items() if k in FIELD_NAMES}
        if not changes:
            return jsonify({"error": "no updatable fields"}), 400
        try:
            ok = run(controller.update_order(order_id, changes))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        order = controller.get_order(order_id)
        return jsonify({"ok": ok, "order": order.to_dict() if order else None})

    @app.route("/api/orders/<order_id>/status", methods=["POST"])
    @require_api_key
    def api_update_status(order_id):
        data = request.get_json(force=True, silent=True) or {}
        try:
            status = Status.parse(data.get("status", ""))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        if controller.get_order(order_id) is None:
            return jsonify({"error": "Order not found"}), 404
        position = data.get("position")
        if position is not None and not isinstance(position, int):
            return jsonify({"error": "position must be an integer"}), 400
        ok = run(controller.update_status(
            order_id, status, comment=data.get("comment") or None, position=position,
        ))
        order = controller.get_order(order_id)
        return jsonify({"ok": ok, "order": order.to_dict() if order else None})

    @app.route("/api/orders/<order_id>/comments", methods=["POST"])
    @require_api_key
    def api_add_comment(order_id):
        data = request.get_json(force=True, silent=True) or {}
        text = str(data.get("comment", "")).strip()
        if not text:
            return jsonify({"error": "comment is required"}), 400
        if controller.get_order(order_id) is None:
            return jsonify({"error": "Order not found"}), 404
        ok = run(controller.add_comment(order_id, text))
        order = controller.get_order(order_id)
        return jsonify({"ok": ok, "order": order.to_dict() if order else None})

    @app.route("/api/columns/<column_id>/reorder", methods=["POST"])
    @require_api_key
    def api_reorder_column(column_id):
        data = request.get_json(force=True, silent=True) or {}
        order_ids = data.get("order_ids")
        if not isinstance(order_ids, list):
            return jsonify({"error": "order_ids must be a list"}), 400
        try:
            status = Status.parse(column_id)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        with lock:
            ok = controller.reorder_column(status, [str(i) for i in order_ids])
        if not ok:
            return jsonify({"error": "order_ids must list exactly the column's orders"}), 409
        return jsonify({"column": controller.state.column(status).to_dict()})

    @app.route("/api/reload", methods=["POST"])
    @require_api_key
    def api_reload():
        ok = run(controller.reload())
        return jsonify({"ok": ok, "error": controller.state.error})

    return app


def build_controller(cfg: BoardConfig) -> SyncController:
    remote = RemoteOrderService(
        cfg.api_base_url, token=cfg.api_token, timeout=cfg.request_timeout,
    )
    return SyncController(remote, Notifier(), titles=cfg.titles())


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Order Board Server")
    parser.add_argument("--config", help="Path to orderboard.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    args = parser.parse_args(argv)

    try:
        cfg = BoardConfig.load(args.config)
        controller = build_controller(cfg)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s [orderboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    host = args.host or cfg.host
    port = args.port or cfg.port

    asyncio.run(controller.load())
    app = create_app(controller, api_secret=cfg.api_secret)
    logger.info(f"Serving board on http://{host}:{port} (service: {cfg.api_base_url})")
    app.run(host=host, port=port, debug=False, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
