"""HTTP server for exported triage data."""

from __future__ import annotations

import gzip
from pathlib import Path

from flask import Flask, Response, abort, jsonify, request
from werkzeug.security import safe_join

CACHE_CONTROL = "max-age=120"


def create_app(data_dir: Path | str) -> Flask:
    data_root = Path(data_dir).resolve()

    app = Flask(__name__)
    app.config["DATA_DIR"] = data_root

    @app.get("/")
    def index():
        files = sorted(
            str(p.relative_to(data_root))
            for p in data_root.rglob("*")
            if p.is_file()
        )
        return jsonify({"data": files})

    @app.get("/data/<path:filename>")
    def data(filename: str):
        joined = safe_join(str(data_root), filename)
        if joined is None or not Path(joined).is_file():
            abort(404)

        body = Path(joined).read_bytes()
        response = Response(body, mimetype=_mimetype(filename))
        if "gzip" in request.headers.get("Accept-Encoding", ""):
            response.set_data(gzip.compress(body))
            response.headers["Content-Encoding"] = "gzip"
            response.vary.add("Accept-Encoding")
        response.headers["Cache-Control"] = CACHE_CONTROL
        return response

    return app


def _mimetype(filename: str) -> str:
    if filename.endswith(".json"):
        return "application/json"
    if filename.endswith(".jsonl"):
        return "application/x-ndjson"
    return "application/octet-stream"
