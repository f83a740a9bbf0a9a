from flask import Blueprint, request, jsonify

from models import db
from models.machine import Machine
from utils.audit import log_event

machines_bp = Blueprint("machines", __name__, url_prefix="/machines")


def _machine_to_dict(m: Machine) -> dict:
    return {
        "id": m.id,
        "machine_number": m.machine_number,
        "name": m.name,
        "is_available": m.is_available,
    }


@machines_bp.get("")
def list_machines():
    machines = Machine.query.order_by(Machine.machine_number.asc()).all()
    return jsonify([_machine_to_dict(m) for m in machines]), 200


@machines_bp.post("/<machine_id>/availability")
def set_availability(machine_id: str):
    data = request.get_json(silent=True) or {}
    is_available = data.get("is_available")
    if not isinstance(is_available, bool):
        return jsonify(error="is_available (true/false) required"), 400

    machine = db.session.get(Machine, machine_id)
    if not machine:
        return jsonify(error="Machine not found"), 404

    machine.is_available = is_available
    log_event(
        "MACHINE_AVAILABILITY",
        entity="machine",
        entity_id=machine.id,
        metadata={"is_available": is_available},
        commit=False,
    )
    db.session.commit()
    return jsonify(_machine_to_dict(machine)), 200
