import os
import sys
import time

# Sibling modules in backend/ are imported by name.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from normalizer import TranscriptError, load_student_data
from data_loader import catalog_payload, load_data
from completion import check_program_completion
from recommender import recommend_programs

load_dotenv()

APP_VERSION = "1.0.0"

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
BUNDLED_DATA_PATH = os.path.join(PROJECT_ROOT, "data")


def _resolve_data_path(raw: str | None) -> str:
    """DATA_PATH env value -> absolute directory; relative values hang off the repo root."""
    if not raw:
        return BUNDLED_DATA_PATH
    if os.path.isabs(raw):
        return raw
    return os.path.join(PROJECT_ROOT, raw)


def _env_number(name: str, default, minimum, cast=float):
    """Numeric env setting clamped to `minimum`; unset or malformed -> default."""
    try:
        return max(minimum, cast(os.environ.get(name, "")))
    except (TypeError, ValueError):
        return default


DATA_PATH = _resolve_data_path(os.environ.get("DATA_PATH"))
SLOW_REQUEST_LOG_MS = _env_number("SLOW_REQUEST_LOG_MS", 750.0, 0.0)
RECOMMEND_WORKERS = _env_number("RECOMMEND_WORKERS", 4, 1, cast=int)
MAX_UPLOAD_MB = _env_number("MAX_UPLOAD_MB", 32, 1, cast=int)


def _load_catalog(path: str):
    """
    Load the definitions snapshot, falling back to the bundled data/ directory
    when a configured DATA_PATH does not exist. Exits the process on failure:
    the server never serves requests without a catalog.
    """
    try:
        catalog = load_data(path)
    except FileNotFoundError as exc:
        if path == BUNDLED_DATA_PATH or not os.path.isdir(BUNDLED_DATA_PATH):
            print(f"[FATAL] {exc}", file=sys.stderr)
            sys.exit(1)
        print(
            f"[WARN] Definitions not found under {path}; using bundled {BUNDLED_DATA_PATH}.",
            file=sys.stderr,
        )
        return _load_catalog(BUNDLED_DATA_PATH)
    except Exception as exc:
        print(f"[FATAL] Cannot load definitions from {path}: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"[OK] Loaded {len(catalog.programs)} programs from {path}")
    return catalog, path


app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_MB * 1024 * 1024
app.json.ensure_ascii = False

# Built once before the first request and only read afterwards.
_catalog, DATA_PATH = _load_catalog(DATA_PATH)


def _error(code: str, message: str, status: int):
    return jsonify({
        "mode": "error",
        "error": {"error_code": code, "message": message},
    }), status


# -- Request timing, CORS and security headers ------------------------------
_RESPONSE_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "same-origin",
}


@app.before_request
def _mark_request_start():
    g.request_started = time.perf_counter()


def _log_if_slow(status_code: int) -> None:
    started = g.get("request_started")
    if started is None:
        return
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    if elapsed_ms >= SLOW_REQUEST_LOG_MS:
        print(
            f"[SLOW] {request.method} {request.path} -> {status_code} "
            f"in {elapsed_ms:.1f} ms (endpoint={request.endpoint or 'unknown'})"
        )


@app.after_request
def _finish_response(response):
    response.headers.update(_RESPONSE_HEADERS)
    _log_if_slow(response.status_code)
    return response


# ── Error handlers ─────────────────────────────────────────────────────────────
@app.errorhandler(413)
def handle_payload_too_large(e):
    return _error(
        "PAYLOAD_TOO_LARGE",
        f"Uploaded transcript exceeds {MAX_UPLOAD_MB} MB.",
        413,
    )


@app.errorhandler(Exception)
def handle_error(e):
    if isinstance(e, HTTPException):
        return _error(e.name.upper().replace(" ", "_"), e.description or e.name, e.code or 500)
    print(f"[ERROR] Unhandled exception on {request.path}: {e!r}", file=sys.stderr)
    return _error("SERVER_ERROR", "An unexpected server error occurred.", 500)


# -- Input parsing ----------------------------------------------------------
def _parse_student_upload():
    """
    Returns (courses, major, None) on success,
    (None, None, error_response) on a missing or malformed transcript.
    """
    upload = request.files.get("student_json")
    if upload is None:
        return None, None, _error("INVALID_INPUT", "讀取檔案失敗: 未提供 student_json 檔案", 400)
    try:
        courses, major = load_student_data(upload.read())
    except TranscriptError as exc:
        return None, None, _error("INVALID_INPUT", str(exc), 400)
    return courses, major, None


def _parse_program_ids(raw: str | None) -> list[str]:
    return [pid.strip() for pid in str(raw or "").split(",") if pid.strip()]


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/health", methods=["GET"])
@app.route("/healthcheck", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": APP_VERSION,
        "programs": len(_catalog.programs),
    })


@app.route("/api/programs", methods=["GET"])
def get_programs():
    """Program catalog grouped by college, for the program selector."""
    return jsonify(catalog_payload(_catalog))


@app.route("/api/check", methods=["POST"])
def check_programs():
    courses, major, err = _parse_student_upload()
    if err:
        return err

    program_ids = _parse_program_ids(request.form.get("program_ids"))
    if not program_ids:
        return _error("INVALID_INPUT", "請選取至少一個學程 ID", 400)

    results = [
        check_program_completion(program_id, courses, _catalog, major)
        for program_id in program_ids
    ]
    return jsonify(results)


@app.route("/api/recommend", methods=["POST"])
def recommend():
    courses, major, err = _parse_student_upload()
    if err:
        return err
    recommendations = recommend_programs(
        courses,
        _catalog,
        major,
        max_workers=RECOMMEND_WORKERS,
    )
    return jsonify(recommendations)


if __name__ == "__main__":
    port = _env_number("PORT", 8080, 1, cast=int)
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    print(f"[OK] Server listening on port {port}")
    app.run(host="0.0.0.0", port=port, debug=debug)
