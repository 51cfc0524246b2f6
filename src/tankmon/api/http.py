# tankmon/api/http.py
from __future__ import annotations

import threading
from typing import Any, Optional

from flask import Flask, Response, jsonify, request
from werkzeug.serving import BaseWSGIServer, make_server

from ..config import HttpConfig
from ..helpers import log
from ..unit.operator import OperatorDesk, OperatorError


def create_app(desk: OperatorDesk) -> Flask:
    app = Flask("tankmon")
    app.config["OPERATOR_DESK"] = desk

    @app.after_request
    def _cors(resp: Response) -> Response:
        # dashboard runs on another origin
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return resp

    @app.errorhandler(OperatorError)
    def _operator_error(e: OperatorError):
        return jsonify({"error": e.message}), e.status_code

    def _body_field(name: str) -> Any:
        body = request.get_json(silent=True)
        if not isinstance(body, dict) or name not in body:
            raise OperatorError(f"Invalid request: missing '{name}'", 400)
        return body[name]

    @app.route("/api/status")
    def status():
        return jsonify(desk.status())

    @app.route("/api/history")
    def history():
        return jsonify(desk.history())

    @app.route("/api/mode", methods=["POST", "OPTIONS"])
    def set_mode():
        if request.method == "OPTIONS":
            return "", 204
        mode = desk.request_mode(_body_field("mode"))
        log(f"[HTTP] mode set to {mode}")
        return jsonify({"success": True, "mode": mode})

    @app.route("/api/valve", methods=["POST", "OPTIONS"])
    def set_valve():
        if request.method == "OPTIONS":
            return "", 204
        opening = desk.set_valve(_body_field("opening"))
        return jsonify({"success": True, "opening": opening})

    return app


class OperatorApi:
    """werkzeug server for the operator panel, in its own thread."""

    def __init__(self, cfg: HttpConfig, desk: OperatorDesk):
        self.cfg = cfg
        self.app = create_app(desk)
        self._server: Optional[BaseWSGIServer] = None

    def run(self, stop_event: threading.Event) -> None:
        try:
            self._server = make_server(self.cfg.host, self.cfg.port, self.app, threaded=True)
        except OSError as e:
            log(f"[HTTP] cannot bind {self.cfg.host}:{self.cfg.port}: {e}")
            return

        log(f"[HTTP] serving http://{self.cfg.host}:{self.cfg.port}/api/status")
        watcher = threading.Thread(target=self._shutdown_on, args=(stop_event,), name="http-stop", daemon=True)
        watcher.start()
        self._server.serve_forever()
        log("[HTTP] stopped")

    def _shutdown_on(self, stop_event: threading.Event) -> None:
        stop_event.wait()
        if self._server is not None:
            self._server.shutdown()
