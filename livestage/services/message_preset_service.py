"""Message preset service: canned host messages per brand."""
import logging
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from livestage.models import MessagePreset, DEFAULT_MESSAGE_COLOR
from livestage.exceptions import NotFoundError, PersistenceError
from livestage.services.product_set_state_service import (
    send_host_message, validate_message_text, _validate_color
)

logger = logging.getLogger(__name__)


def list_message_presets(session, brand_id: int) -> List[MessagePreset]:
    """Presets of a brand in display order."""
    return session.query(MessagePreset).filter(
        MessagePreset.brand_id == brand_id
    ).order_by(MessagePreset.position.asc(), MessagePreset.id.asc()).all()


def get_message_preset(session, brand_id: int, preset_id: int) -> MessagePreset:
    preset = session.query(MessagePreset).filter(
        MessagePreset.id == preset_id,
        MessagePreset.brand_id == brand_id
    ).first()
    if not preset:
        raise NotFoundError('Message preset not found.')
    return preset


def create_message_preset(session, brand_id: int, attrs: Dict[str, Any]) -> MessagePreset:
    """
    Append a preset at the end of the brand's list unless a position is given.

    Raises:
        BusinessLogicError: empty/too long text or unknown colour
    """
    message_text = validate_message_text(attrs.get('message_text'))
    color = _validate_color(attrs.get('color') or DEFAULT_MESSAGE_COLOR)

    max_position = session.query(func.max(MessagePreset.position)).filter(
        MessagePreset.brand_id == brand_id
    ).scalar()

    position = attrs.get('position')
    if position is None:
        position = (max_position or 0) + 1

    preset = MessagePreset(
        brand_id=brand_id,
        message_text=message_text,
        color=color,
        position=int(position)
    )
    try:
        session.add(preset)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[PRESETS] ✗ Could not create preset for brand={brand_id}: {e}")
        raise PersistenceError() from e
    return preset


def delete_message_preset(session, preset: MessagePreset) -> None:
    try:
        session.delete(preset)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError() from e


def send_preset_to_host(session, brand_id: int, product_set_id: int, preset_id: int):
    """Send a preset's text and colour as the host message of a product set."""
    preset = get_message_preset(session, brand_id, preset_id)
    return send_host_message(session, product_set_id, preset.message_text, preset.color)
