"""
Live product set state service - Multi-Brand.

Every transition is a transactional read-modify-write on the single state row
of a product set: the row is locked (SELECT ... FOR UPDATE, with the `version`
column as optimistic check), changed, committed, re-read and broadcast in full
on the set's state topic. Subscribers replace their copy wholesale.

Rejected transitions roll back and raise NavigationError; failed writes roll
back and raise PersistenceError. Nothing here retries.
"""
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from livestage.models import (
    ProductSet, ProductSetProduct, ProductSetState, ProductImage,
    MessageColor, DEFAULT_MESSAGE_COLOR
)
from livestage.exceptions import BusinessLogicError, NotFoundError, NavigationError, PersistenceError
from livestage.services.pubsub_service import get_pubsub, state_topic
from livestage.blueprints.metrics import state_broadcasts_total, state_transition_failures_total

logger = logging.getLogger(__name__)

IMAGE_DIRECTIONS = ('next', 'previous')
MAX_MESSAGE_LENGTH = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_message_id() -> str:
    """Opaque id for a host message, e.g. msg_Xy3...; lets views detect a new message."""
    return f"msg_{secrets.token_urlsafe(8)}"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_product_set_state(session: Session, product_set_id: int) -> Optional[ProductSetState]:
    """Get the state row of a product set, or None if it was never initialized."""
    return session.query(ProductSetState).filter(
        ProductSetState.product_set_id == product_set_id
    ).first()


def initialize_product_set_state(session: Session, product_set_id: int) -> ProductSetState:
    """
    Create the state row if absent: nothing live, image index 0.

    Idempotent: an existing row is returned unchanged. Two views connecting at
    once race on the unique product_set_id; the loser re-reads the winner's row.
    """
    state = get_product_set_state(session, product_set_id)
    if state:
        return state

    if session.get(ProductSet, product_set_id) is None:
        raise NotFoundError('Product set not found.')

    state = ProductSetState(
        product_set_id=product_set_id,
        current_product_set_product_id=None,
        current_image_index=0,
        updated_at=_utcnow()
    )
    try:
        session.add(state)
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = get_product_set_state(session, product_set_id)
        if existing is None:
            raise PersistenceError()
        logger.info(f"[STATE] product_set={product_set_id} state created concurrently, using existing row")
        return existing
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[STATE] ✗ Could not initialize state for product_set={product_set_id}: {e}")
        raise PersistenceError() from e

    logger.info(f"[STATE] Initialized state for product_set={product_set_id}")
    broadcast_state(session, state)
    return state


def get_or_initialize_state(session: Session, product_set_id: int) -> ProductSetState:
    """Load the state row, creating it on first use."""
    return get_product_set_state(session, product_set_id) or initialize_product_set_state(session, product_set_id)


def serialize_state(state: ProductSetState) -> Dict[str, Any]:
    """Full JSON-safe snapshot of a state row, including the live entry's display data."""
    entry = state.current_entry
    entries = state.product_set.entries if state.product_set else []

    host_message = None
    if state.current_host_message_text is not None:
        host_message = {
            'text': state.current_host_message_text,
            'id': state.current_host_message_id,
            'timestamp': state.current_host_message_timestamp.isoformat()
            if state.current_host_message_timestamp else None,
            'color': state.current_host_message_color,
        }

    return {
        'product_set_id': state.product_set_id,
        'version': state.version,
        'current_product_set_product_id': state.current_product_set_product_id,
        'current_position': entry.position if entry else None,
        'current_image_index': state.current_image_index,
        'current_entry': entry.to_dict() if entry else None,
        'total_products': len(entries),
        'host_message': host_message,
        'updated_at': state.updated_at.isoformat() if state.updated_at else None,
    }


def broadcast_state(session: Session, state: ProductSetState) -> Dict[str, Any]:
    """
    Publish the committed state to the product set's state topic.

    The row is re-read first, so a writer that lost a race publishes the
    persisted outcome rather than its own intent.
    """
    session.refresh(state)
    snapshot = serialize_state(state)
    # End the read so the row is not held while publishing
    session.commit()

    get_pubsub().publish(state_topic(snapshot['product_set_id']), {
        'type': 'state_changed',
        'state': snapshot,
    })
    state_broadcasts_total.labels(topic_kind='state').inc()
    return snapshot


def rebroadcast_state(session: Session, product_set_id: int) -> Optional[Dict[str, Any]]:
    """Re-send the current snapshot after the set's entries changed (positions, totals)."""
    state = get_product_set_state(session, product_set_id)
    if state is None:
        return None
    return broadcast_state(session, state)


# ---------------------------------------------------------------------------
# Transition helpers
# ---------------------------------------------------------------------------

def _lock_state(session: Session, product_set_id: int) -> ProductSetState:
    """Lock the state row for update, lazily creating it when missing."""
    query = session.query(ProductSetState).filter(
        ProductSetState.product_set_id == product_set_id
    ).with_for_update().populate_existing()

    state = query.first()
    if state is None:
        initialize_product_set_state(session, product_set_id)
        state = query.first()
        if state is None:
            raise NotFoundError('Product set state not found.')
    return state


def _current_entry(session: Session, state: ProductSetState) -> Optional[ProductSetProduct]:
    """The live entry, read fresh. An entry from another set is treated as nothing live."""
    if state.current_product_set_product_id is None:
        return None
    entry = session.query(ProductSetProduct).populate_existing().filter(
        ProductSetProduct.id == state.current_product_set_product_id
    ).first()
    if entry is not None and entry.product_set_id != state.product_set_id:
        logger.warning(
            f"[STATE] product_set={state.product_set_id} points at entry {entry.id} "
            f"of product_set={entry.product_set_id}; ignoring"
        )
        return None
    return entry


def _entry_count(session: Session, product_set_id: int) -> int:
    return session.query(func.count(ProductSetProduct.id)).filter(
        ProductSetProduct.product_set_id == product_set_id
    ).scalar() or 0


def _image_count(session: Session, product_id: int) -> int:
    return session.query(func.count(ProductImage.id)).filter(
        ProductImage.product_id == product_id
    ).scalar() or 0


def _reject(session: Session, product_set_id: int, code: str, **context) -> NavigationError:
    """Roll back (releasing the row lock) and build the error to raise."""
    session.rollback()
    state_transition_failures_total.labels(reason=code).inc()
    logger.info(f"[STATE] product_set={product_set_id} transition rejected: {code} {context or ''}")
    return NavigationError(code, **context)


def _save(session: Session, state: ProductSetState, changes: Dict[str, Any]) -> ProductSetState:
    """Apply changes to the locked row, commit and broadcast."""
    product_set_id = state.product_set_id
    for key, value in changes.items():
        setattr(state, key, value)
    state.updated_at = _utcnow()

    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[STATE] ✗ Write failed for product_set={product_set_id}: {e}")
        raise PersistenceError() from e

    broadcast_state(session, state)
    return state


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

def jump_to_product(session: Session, product_set_id: int, position: int) -> ProductSetState:
    """Make the entry at `position` (1-based) live and show its first image."""
    state = _lock_state(session, product_set_id)
    total = _entry_count(session, product_set_id)

    if not isinstance(position, int) or isinstance(position, bool) or position < 1 or position > total:
        raise _reject(session, product_set_id, 'invalid_position', position=position)

    entry = session.query(ProductSetProduct).filter(
        ProductSetProduct.product_set_id == product_set_id,
        ProductSetProduct.position == position
    ).first()
    if entry is None:
        raise _reject(session, product_set_id, 'invalid_position', position=position)

    return _save(session, state, {
        'current_product_set_product_id': entry.id,
        'current_image_index': 0,
    })


def advance_to_next_product(session: Session, product_set_id: int) -> ProductSetState:
    """Move to the following entry. Does not wrap; with nothing live, starts at the first entry."""
    state = _lock_state(session, product_set_id)
    current = _current_entry(session, state)
    current_position = current.position if current else 0

    next_entry = session.query(ProductSetProduct).filter(
        ProductSetProduct.product_set_id == product_set_id,
        ProductSetProduct.position > current_position
    ).order_by(ProductSetProduct.position.asc()).first()

    if next_entry is None:
        raise _reject(session, product_set_id, 'end_of_product_set')

    return _save(session, state, {
        'current_product_set_product_id': next_entry.id,
        'current_image_index': 0,
    })


def go_to_previous_product(session: Session, product_set_id: int) -> ProductSetState:
    """Move to the preceding entry. Does not wrap."""
    state = _lock_state(session, product_set_id)
    current = _current_entry(session, state)
    if current is None:
        raise _reject(session, product_set_id, 'start_of_product_set')

    previous_entry = session.query(ProductSetProduct).filter(
        ProductSetProduct.product_set_id == product_set_id,
        ProductSetProduct.position < current.position
    ).order_by(ProductSetProduct.position.desc()).first()

    if previous_entry is None:
        raise _reject(session, product_set_id, 'start_of_product_set')

    return _save(session, state, {
        'current_product_set_product_id': previous_entry.id,
        'current_image_index': 0,
    })


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

def cycle_product_image(session: Session, product_set_id: int, direction: str) -> ProductSetState:
    """Step through the live entry's images, wrapping at both ends."""
    direction = str(direction).lower()
    if direction not in IMAGE_DIRECTIONS:
        raise NavigationError('invalid_direction', direction=direction)

    state = _lock_state(session, product_set_id)
    entry = _current_entry(session, state)
    if entry is None:
        raise _reject(session, product_set_id, 'no_current_product')

    image_count = _image_count(session, entry.product_id)
    if image_count == 0:
        raise _reject(session, product_set_id, 'no_images')

    step = 1 if direction == 'next' else -1
    new_index = (state.current_image_index + step) % image_count
    return _save(session, state, {'current_image_index': new_index})


def set_image_index(session: Session, product_set_id: int, index: int) -> ProductSetState:
    """
    Show image `index` of the live entry.

    Out-of-range input (or nothing live) is ignored: the state is returned
    unchanged and nothing is broadcast. Unlike cycle_product_image this never
    wraps or errors, so thumbnail clicks racing a product change are harmless.
    """
    state = _lock_state(session, product_set_id)
    entry = _current_entry(session, state)
    image_count = _image_count(session, entry.product_id) if entry else 0

    if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= image_count:
        session.rollback()
        logger.debug(f"[STATE] product_set={product_set_id} ignoring image index {index} (count={image_count})")
        return state

    return _save(session, state, {'current_image_index': index})


# ---------------------------------------------------------------------------
# Host messages
# ---------------------------------------------------------------------------

def _validate_color(color) -> str:
    if isinstance(color, MessageColor):
        color = color.value
    if not MessageColor.is_valid(color):
        raise BusinessLogicError(
            f'Invalid message color "{color}". Use one of: {", ".join(MessageColor.values())}',
            payload={'error': 'invalid_color'}
        )
    return color


def validate_message_text(message_text: Optional[str]) -> str:
    if not isinstance(message_text, str) or not message_text.strip():
        raise BusinessLogicError('Message text is required.', payload={'error': 'invalid_message'})
    if len(message_text) > MAX_MESSAGE_LENGTH:
        raise BusinessLogicError(
            f'Message text must be at most {MAX_MESSAGE_LENGTH} characters.',
            payload={'error': 'invalid_message'}
        )
    return message_text


def send_host_message(
    session: Session,
    product_set_id: int,
    message_text: str,
    color=DEFAULT_MESSAGE_COLOR
) -> ProductSetState:
    """Put a message on the host screen with a fresh id and timestamp."""
    color = _validate_color(color)
    message_text = validate_message_text(message_text)

    state = _lock_state(session, product_set_id)
    return _save(session, state, {
        'current_host_message_text': message_text,
        'current_host_message_id': generate_message_id(),
        'current_host_message_timestamp': _utcnow().replace(microsecond=0),
        'current_host_message_color': color,
    })


def clear_host_message(session: Session, product_set_id: int) -> ProductSetState:
    """Remove the host message."""
    state = _lock_state(session, product_set_id)
    return _save(session, state, {
        'current_host_message_text': None,
        'current_host_message_id': None,
        'current_host_message_timestamp': None,
        'current_host_message_color': None,
    })
