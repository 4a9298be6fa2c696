"""Message presets blueprint."""
from flask import Blueprint, jsonify, request, g
from livestage.database import get_session
from livestage.middleware import require_brand
from livestage.services.message_preset_service import (
    list_message_presets, get_message_preset, create_message_preset, delete_message_preset
)

message_presets_bp = Blueprint('message_presets', __name__, url_prefix='/b/<brand_slug>/message-presets')


@message_presets_bp.route('', methods=['GET'])
@require_brand
def list_presets():
    session = get_session()
    presets = list_message_presets(session, g.brand_id)
    return jsonify({'message_presets': [p.to_dict() for p in presets]})


@message_presets_bp.route('', methods=['POST'])
@require_brand
def create_preset():
    session = get_session()
    preset = create_message_preset(session, g.brand_id, request.get_json(silent=True) or {})
    return jsonify(preset.to_dict()), 201


@message_presets_bp.route('/<int:preset_id>', methods=['DELETE'])
@require_brand
def delete_preset(preset_id):
    session = get_session()
    preset = get_message_preset(session, g.brand_id, preset_id)
    delete_message_preset(session, preset)
    return jsonify({'status': 'ok'})
