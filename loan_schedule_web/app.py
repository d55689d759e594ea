"""JSON API of the loan schedule calculator.

Calculations are returned transiently, or saved to the caller's history when
the request asks for it. Callers are told apart by a random token kept in the
Flask session.
"""

import os
from typing import Optional
from uuid import uuid4

from flask import Flask, jsonify, request, session

from loan_schedule.config import settings
from loan_schedule.engine import compute_schedule, summarize
from loan_schedule.errors import InvalidInput, ScheduleError
from loan_schedule.formatter import result_to_dict, summary_to_dict
from loan_schedule.logger import get_logger
from loan_schedule.utils import decimal_from_str, parse_date
from loan_schedule_web.history_store import HistoryFilter, create_store_from_env
from loan_schedule_web.payloads import params_from_json

log = get_logger(__name__)

app = Flask(__name__)
app.secret_key = settings.SECRET_KEY
history_store = create_store_from_env(settings.DATABASE_URL, settings.MAX_HISTORY_PER_USER)


def _ensure_user_token() -> str:
    token = session.get("user_token")
    if not token:
        token = uuid4().hex
        session["user_token"] = token
        session.modified = True
    return token


def _run_calculation(params):
    result = compute_schedule(params, settings.engine)
    payload = {"summary": summary_to_dict(summarize(params, result)), **result_to_dict(result)}
    return result, payload


def _filter_from_args(args) -> HistoryFilter:
    def opt(name: str, convert):
        raw = args.get(name, "").strip()
        if not raw:
            return None
        try:
            return convert(raw)
        except ValueError as exc:
            raise InvalidInput(f"Invalid filter {name}: {raw}") from exc

    return HistoryFilter(
        from_date=opt("from_date", parse_date),
        to_date=opt("to_date", parse_date),
        scheme=opt("scheme", str.lower),
        currency=opt("currency", str.upper),
        min_principal=opt("min_principal", decimal_from_str),
        max_principal=opt("max_principal", decimal_from_str),
        min_rate=opt("min_rate", decimal_from_str),
        max_rate=opt("max_rate", decimal_from_str),
    )


@app.errorhandler(ScheduleError)
def handle_schedule_error(exc: ScheduleError):
    body = {"error": exc.message}
    period: Optional[int] = getattr(exc, "period", None)
    if period is not None:
        body["period"] = period
        body["balance"] = f"{exc.balance:.2f}"
    return jsonify(body), exc.status_code


@app.post("/api/v1/calculations")
def create_calculation():
    user_token = _ensure_user_token()
    data = request.get_json(silent=True)
    params = params_from_json(data)
    result, payload = _run_calculation(params)
    if data.get("save_to_history"):
        payload["id"] = history_store.save(user_token, params, result)
        log.info("Calculation %s saved for %s", payload["id"], user_token)
        return jsonify(payload), 201
    return jsonify(payload)


@app.get("/api/v1/calculations")
def list_calculations():
    user_token = _ensure_user_token()
    return jsonify(history_store.list_calculations(user_token, _filter_from_args(request.args)))


@app.get("/api/v1/calculations/<calculation_id>")
def get_calculation(calculation_id: str):
    record = history_store.get(_ensure_user_token(), calculation_id)
    if record is None:
        return jsonify({"error": "Calculation not found"}), 404
    return jsonify(record)


@app.delete("/api/v1/calculations/<calculation_id>")
def delete_calculation(calculation_id: str):
    user_token = _ensure_user_token()
    if not history_store.delete(user_token, calculation_id):
        return jsonify({"error": "Calculation not found"}), 404
    log.info("Calculation %s deleted by %s", calculation_id, user_token)
    return "", 204


@app.post("/api/v1/calculations/<calculation_id>/rerun")
def rerun_calculation(calculation_id: str):
    """Recompute a saved calculation without touching the history."""
    params = history_store.get_params(_ensure_user_token(), calculation_id)
    if params is None:
        return jsonify({"error": "Calculation not found"}), 404
    _, payload = _run_calculation(params)
    return jsonify(payload)


if __name__ == "__main__":
    print("Starting loan schedule API...")
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "8710")), debug=True)
