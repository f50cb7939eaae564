import logging
import os
from datetime import date

from flask import Flask, jsonify, request

from debt_schedule.data_models import InstallmentStatus
from debt_schedule.engine import build_schedule, summarize_schedule
from debt_schedule.errors import StaleScheduleError, StatusTransitionError, ValidationError
from debt_schedule.main import contract_from_dict, installment_to_dict
from debt_schedule.reconciler import reconcile
from debt_schedule.utils import parse_date
from debt_schedule_web.installment_store import create_store_from_env

logger = logging.getLogger(__name__)


def _validation_response(exc: ValidationError):
    body = {"error": str(exc), "field": exc.field, "tier_indices": list(exc.tier_indices)}
    return jsonify(body), 422


def _stale_response(exc: StaleScheduleError):
    return jsonify({"error": str(exc), "current_version": exc.current_version}), 409


def _schedule_payload(installments, version: int) -> dict:
    return {
        "version": version,
        "installments": [installment_to_dict(i) for i in installments],
    }


def create_app(database_url=None, store=None) -> Flask:
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    app.config["INSTALLMENT_STORE"] = store or create_store_from_env(
        database_url or os.environ.get("DEBT_SCHEDULE_DATABASE_URL")
    )

    def _store():
        return app.config["INSTALLMENT_STORE"]

    @app.post("/debts/<debt_id>/schedule")
    def save_schedule(debt_id):
        """Build the schedule of a created or edited contract and store it.

        The body is the contract plus ``expected_version``, the version the
        client last read from ``GET /debts/<id>/installments`` (0 for a new
        debt).
        """
        payload = request.get_json(silent=True) or {}
        try:
            contract = contract_from_dict(payload, debt_id=debt_id)
            candidate = build_schedule(contract)
        except ValidationError as exc:
            logger.info("Rejected contract for debt %s: %s", debt_id, exc)
            return _validation_response(exc)

        if "expected_version" not in payload:
            return jsonify({"error": "expected_version is required"}), 400
        expected_version = payload["expected_version"]
        if isinstance(expected_version, bool) or not isinstance(expected_version, int):
            return jsonify({"error": "expected_version must be an integer"}), 400

        existing, current_version = _store().load(debt_id)
        if current_version != expected_version:
            # the store repeats this check atomically when writing
            return _stale_response(StaleScheduleError(debt_id, expected_version, current_version))
        merged = reconcile(candidate, existing)
        try:
            stored, version = _store().replace_schedule(debt_id, merged, expected_version)
        except StaleScheduleError as exc:
            return _stale_response(exc)

        body = _schedule_payload(stored, version)
        body["summary"] = summarize_schedule(contract, stored)
        return jsonify(body)

    @app.get("/debts/<debt_id>/installments")
    def list_installments(debt_id):
        installments, version = _store().load(debt_id)
        return jsonify(_schedule_payload(installments, version))

    @app.post("/debts/<debt_id>/installments/<int:period>/status")
    def change_status(debt_id, period):
        payload = request.get_json(silent=True) or {}
        try:
            new_status = InstallmentStatus(payload.get("status"))
        except ValueError:
            return jsonify({"error": f"Unknown status: {payload.get('status')}"}), 400
        try:
            result = _store().update_status(debt_id, period, new_status)
        except StatusTransitionError as exc:
            return jsonify({"error": str(exc)}), 409
        if result is None:
            return jsonify({"error": f"No period {period} for debt {debt_id}"}), 404
        installment, version = result
        return jsonify({"version": version, "installment": installment_to_dict(installment)})

    @app.post("/debts/<debt_id>/installments/<int:period>/notes")
    def change_notes(debt_id, period):
        payload = request.get_json(silent=True) or {}
        result = _store().update_notes(debt_id, period, payload.get("notes"))
        if result is None:
            return jsonify({"error": f"No period {period} for debt {debt_id}"}), 404
        installment, version = result
        return jsonify({"version": version, "installment": installment_to_dict(installment)})

    def _bulk_response(result, missing: str):
        if result is None:
            return jsonify({"error": missing}), 404
        installments, version = result
        return jsonify(_schedule_payload(installments, version))

    @app.post("/debts/<debt_id>/installments/<int:period>/pay-through")
    def pay_through(debt_id, period):
        """Mark periods 1..period paid, as ticking a month in the calendar does."""
        result = _store().mark_paid_through(debt_id, period)
        return _bulk_response(result, f"No period {period} for debt {debt_id}")

    @app.post("/debts/<debt_id>/installments/<int:period>/reset-from")
    def reset_from(debt_id, period):
        result = _store().reset_from(debt_id, period)
        return _bulk_response(result, f"No period {period} for debt {debt_id}")

    @app.post("/debts/<debt_id>/installments/mark-overdue")
    def mark_overdue(debt_id):
        """Flag pending installments due before ``today`` (default: the server date)."""
        payload = request.get_json(silent=True) or {}
        try:
            today = parse_date(payload["today"]) if payload.get("today") else date.today()
        except (TypeError, ValueError):
            return jsonify({"error": f"Invalid date: {payload.get('today')}"}), 400
        result = _store().mark_overdue(debt_id, today)
        return _bulk_response(result, f"No installments for debt {debt_id}")

    @app.delete("/debts/<debt_id>")
    def delete_debt(debt_id):
        _store().delete_debt(debt_id)
        return "", 204

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print("Starting debt schedule API...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
