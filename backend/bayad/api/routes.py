from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, Response, current_app, jsonify, request

from bayad.api.validators import (
    ApiValidationError,
    parse_discount,
    parse_item_update,
    parse_name,
    parse_payee,
    parse_price,
    parse_title,
    require_object,
)
from bayad.db.store import PersistenceFailure
from bayad.domain.history import HistoryStore
from bayad.domain.models import ValidationError
from bayad.domain.session import BillSession
from bayad.domain.settlement import SettlementTracker
from bayad.services.scanner import ScanFailure, scan_receipt
from bayad.services.share import render_summary_png, render_summary_text

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")


def _json_error(message: str, *, status: int = 400, code: str = "bad_request"):
    return jsonify({"error": {"code": code, "message": message}}), status


def _not_found(what: str):
    return _json_error(f"{what} not found.", status=404, code="not_found")


def _session() -> BillSession:
    return current_app.extensions["bayad.session"]


def _history() -> HistoryStore:
    return current_app.extensions["bayad.history"]


def _settlement() -> SettlementTracker:
    return current_app.extensions["bayad.settlement"]


def _body() -> Dict[str, Any]:
    return require_object(request.get_json(silent=True))


def _session_json(session: BillSession) -> Dict[str, Any]:
    results = session.results
    return {
        "people": [p.to_dict() for p in session.people],
        "items": [it.to_dict() for it in session.items],
        "discount": session.discount.to_dict(),
        "results": [r.to_dict() for r in results],
        "summary": session.summary().to_dict(),
    }


@api_bp.errorhandler(ApiValidationError)
@api_bp.errorhandler(ValidationError)
def _handle_validation(e: ValueError):
    return _json_error(str(e), status=400)


@api_bp.errorhandler(PersistenceFailure)
def _handle_persistence(e: PersistenceFailure):
    # in-memory state already reflects the change; only durability failed
    logger.error("Write-through failed: %s", e)
    return _json_error("Change applied but could not be saved.", status=503, code="persistence_failed")


@api_bp.get("/health")
def health():
    return jsonify({"status": "ok"}), 200


# --- live session ---


@api_bp.get("/session")
def get_session():
    return jsonify(_session_json(_session())), 200


@api_bp.post("/session/clear")
def clear_session():
    session = _session()
    session.clear()
    return jsonify(_session_json(session)), 200


@api_bp.post("/people")
def add_person():
    person = _session().add_person(parse_name(_body().get("name")))
    return jsonify(person.to_dict()), 201


@api_bp.delete("/people/<person_id>")
def remove_person(person_id: str):
    session = _session()
    try:
        removed = session.remove_person(person_id)
    except ValidationError as e:
        return _json_error(str(e), status=409, code="last_person")
    if not removed:
        return _not_found("Person")
    return jsonify(_session_json(session)), 200


@api_bp.post("/people/<person_id>/paid")
def toggle_person_paid(person_id: str):
    is_paid = _settlement().toggle_paid(person_id)
    if is_paid is None:
        return _not_found("Person")
    return jsonify({"person_id": person_id, "is_paid": is_paid}), 200


@api_bp.post("/items")
def add_item():
    data = _body()
    item = _session().add_item(parse_name(data.get("name")), parse_price(data.get("price")))
    return jsonify(item.to_dict()), 201


@api_bp.patch("/items/<item_id>")
def update_item(item_id: str):
    item = _session().update_item(item_id, **parse_item_update(_body()))
    if item is None:
        return _not_found("Item")
    return jsonify(item.to_dict()), 200


@api_bp.post("/items/<item_id>/people/<person_id>")
def toggle_item_assignment(item_id: str, person_id: str):
    item = _session().toggle_assignment(item_id, person_id)
    if item is None:
        return _not_found("Item or person")
    return jsonify(item.to_dict()), 200


@api_bp.delete("/items/<item_id>")
def remove_item(item_id: str):
    if not _session().remove_item(item_id):
        return _not_found("Item")
    return "", 204


@api_bp.put("/discount")
def set_discount():
    discount = _session().set_discount(**parse_discount(_body()))
    return jsonify(discount.to_dict()), 200


@api_bp.post("/scan")
def scan_endpoint():
    """
    multipart/form-data:
      - image: file (png/jpg)
    Response:
      - items: [{id, name, price, assigned_person_ids}]
    """
    if "image" not in request.files:
        return _json_error("Missing file field 'image'.", status=400)

    f = request.files["image"]
    if not f or not getattr(f, "filename", ""):
        return _json_error("No file provided in 'image'.", status=400)

    image_bytes = f.read()
    if not image_bytes:
        return _json_error("Uploaded file is empty.", status=400)

    try:
        scanned = scan_receipt(image_bytes, languages=current_app.config.get("OCR_LANGUAGES", ("en",)))
    except ScanFailure as e:
        return _json_error(str(e), status=422, code="scan_failed")

    added = _session().add_items((it.name, it.price) for it in scanned)
    return jsonify({"items": [it.to_dict() for it in added]}), 200


@api_bp.post("/export")
def export_summary():
    data = request.get_json(silent=True) or {}
    data = require_object(data)
    fmt = data.get("format", "text")
    payee = parse_payee(data.get("payee"))
    title = parse_title(data.get("title"))
    results = _session().results

    if fmt == "text":
        text = render_summary_text(
            results,
            payee=payee,
            title=title,
            currency_symbol=current_app.config.get("CURRENCY_SYMBOL", "₱"),
        )
        return Response(text, status=200, mimetype="text/plain")
    if fmt == "png":
        return Response(render_summary_png(results, payee=payee, title=title), status=200, mimetype="image/png")
    return _json_error("'format' must be 'text' or 'png'.", status=400)


# --- history ---


@api_bp.get("/history")
def list_history():
    return jsonify({"bills": [b.to_dict() for b in _history().list()]}), 200


@api_bp.post("/history")
def save_history():
    data = request.get_json(silent=True) or {}
    title = parse_title(require_object(data).get("title"))
    session = _session()
    if not session.items:
        return _json_error("Add at least one item before saving.", status=400, code="empty_bill")
    bill = session.save_to(_history(), title)
    return jsonify(bill.to_dict()), 201


@api_bp.delete("/history/<bill_id>")
def remove_history_bill(bill_id: str):
    if not _history().remove(bill_id):
        return _not_found("Bill")
    return "", 204


@api_bp.delete("/history")
def clear_history():
    _history().clear()
    return "", 204


@api_bp.post("/history/<bill_id>/people/<person_id>/paid")
def toggle_history_paid(bill_id: str, person_id: str):
    is_paid = _settlement().toggle_historical_paid(bill_id, person_id)
    if is_paid is None:
        return _not_found("Bill or person")
    return jsonify({"bill_id": bill_id, "person_id": person_id, "is_paid": is_paid}), 200
