"""
Live view of a product set for one connected client.

A controller drives the session from a phone or tablet; a host screen shows
the live product to the presenter. Both hold a local copy of the state row
that is only ever replaced by broadcasts, so every open view converges on the
committed state regardless of who made the change.
"""
import logging
from typing import Any, Dict, List, Optional

from livestage.models import ProductSet, DEFAULT_MESSAGE_COLOR
from livestage.exceptions import LivestageError, BusinessLogicError, NotFoundError, NavigationError
from livestage.services import product_set_state_service as state_service
from livestage.services.message_preset_service import send_preset_to_host, list_message_presets
from livestage.services.pubsub_service import get_pubsub, state_topic, ui_topic
from livestage.blueprints.metrics import live_connections

logger = logging.getLogger(__name__)

ROLES = ('controller', 'host')


class ProductSetLiveView:
    """
    Usage:
        view = ProductSetLiveView(product_set_id, 'controller', brand_id=brand.id)
        view.mount(session, connected=True)
        view.handle_event(session, 'next_product', {})
        view.poll(timeout=1.0)   # applies broadcasts to view.state
        view.disconnect()
    """

    def __init__(self, product_set_id: int, role: str, brand_id: Optional[int] = None):
        if role not in ROLES:
            raise BusinessLogicError(f'Unknown live view role "{role}".')
        self.product_set_id = int(product_set_id)
        self.role = role
        self.brand_id = brand_id

        self.product_set: Optional[Dict[str, Any]] = None
        self.message_presets: List[Dict[str, Any]] = []
        self.state: Optional[Dict[str, Any]] = None
        self.product_set_notes_visible = False
        self.notices: List[Dict[str, Any]] = []

        self.connected = False
        self.subscription = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self, session, connected: bool = False) -> 'ProductSetLiveView':
        """
        Load the product set. On the static prerender nothing is subscribed and
        no state is read; once connected the view subscribes first and then
        loads the state row, so no broadcast can fall between the two.
        """
        product_set = session.get(ProductSet, self.product_set_id)
        if product_set is None or (self.brand_id is not None and product_set.brand_id != self.brand_id):
            raise NotFoundError('Product set not found.')
        if self.brand_id is None:
            self.brand_id = product_set.brand_id

        self.product_set = product_set.to_dict(include_entries=True)
        if self.role == 'controller':
            self.message_presets = [p.to_dict() for p in list_message_presets(session, self.brand_id)]

        if connected:
            if self.subscription is None:
                self.subscription = get_pubsub().subscribe(
                    state_topic(self.product_set_id), ui_topic(self.product_set_id)
                )
                live_connections.labels(role=self.role).inc()
                logger.info(f"[LIVE] {self.role} connected to product_set={self.product_set_id}")
            state = state_service.get_or_initialize_state(session, self.product_set_id)
            self._apply_state(state_service.serialize_state(state))
            self.connected = True

        # Release the read transaction before the view goes idle
        session.commit()
        return self

    def disconnect(self) -> None:
        if self.subscription is not None:
            self.subscription.close()
            self.subscription = None
            live_connections.labels(role=self.role).dec()
            logger.info(f"[LIVE] {self.role} disconnected from product_set={self.product_set_id}")
        self.connected = False

    # ------------------------------------------------------------------
    # Client events
    # ------------------------------------------------------------------

    def handle_event(self, session, event: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a client action against the shared state.

        The local copy is left alone; the resulting broadcast updates it.
        Rejected actions come back as a notice instead of raising.
        """
        params = params or {}
        handler = getattr(self, f'_event_{event}', None)
        if handler is None:
            return self._notice(event, BusinessLogicError(f'Unknown event "{event}".', payload={'error': 'unknown_event'}))

        try:
            reply = handler(session, params) or {}
        except LivestageError as e:
            return self._notice(event, e)

        reply.update({'ok': True, 'event': event})
        return reply

    def _notice(self, event: str, error: LivestageError) -> Dict[str, Any]:
        notice = {
            'level': 'error',
            'code': (error.payload or {}).get('error'),
            'message': error.message,
        }
        self.notices.append(notice)
        return {'ok': False, 'event': event, 'notice': notice}

    def _event_jump_to_product(self, session, params):
        try:
            position = int(params.get('position'))
        except (TypeError, ValueError):
            raise NavigationError('invalid_position', position=params.get('position'))
        state_service.jump_to_product(session, self.product_set_id, position)
        return {'position': position}

    def _event_next_product(self, session, params):
        state_service.advance_to_next_product(session, self.product_set_id)

    def _event_previous_product(self, session, params):
        state_service.go_to_previous_product(session, self.product_set_id)

    def _event_cycle_image(self, session, params):
        state_service.cycle_product_image(session, self.product_set_id, params.get('direction', 'next'))

    def _event_set_image(self, session, params):
        try:
            index = int(params.get('index'))
        except (TypeError, ValueError):
            # Same as an out-of-range index: ignored
            return {}
        state_service.set_image_index(session, self.product_set_id, index)

    def _event_send_host_message(self, session, params):
        state_service.send_host_message(
            session,
            self.product_set_id,
            params.get('message'),
            params.get('color') or DEFAULT_MESSAGE_COLOR
        )

    def _event_clear_host_message(self, session, params):
        state_service.clear_host_message(session, self.product_set_id)

    def _event_select_preset(self, session, params):
        try:
            preset_id = int(params.get('id'))
        except (TypeError, ValueError):
            raise NotFoundError('Preset not found.')
        send_preset_to_host(session, self.brand_id, self.product_set_id, preset_id)

    def _event_toggle_product_set_notes(self, session, params):
        if 'visible' in params:
            visible = bool(params['visible'])
        else:
            visible = not self.product_set_notes_visible
        get_pubsub().publish(ui_topic(self.product_set_id), {
            'type': 'product_set_notes_toggle',
            'visible': visible,
        })
        return {'visible': visible}

    # ------------------------------------------------------------------
    # Broadcasts
    # ------------------------------------------------------------------

    def _apply_state(self, snapshot: Dict[str, Any]) -> bool:
        if self.state is not None and snapshot.get('version', 0) < self.state.get('version', 0):
            logger.debug(
                f"[LIVE] product_set={self.product_set_id} dropping stale state "
                f"v{snapshot.get('version')} < v{self.state.get('version')}"
            )
            return False
        self.state = snapshot
        return True

    def handle_message(self, message: Dict[str, Any]) -> Optional[str]:
        """
        Apply one broadcast. Returns 'state' or 'ui' for what changed, or None
        when the message was ignored.
        """
        kind = message.get('type')
        if kind == 'state_changed':
            snapshot = message.get('state') or {}
            if snapshot.get('product_set_id') != self.product_set_id:
                return None
            return 'state' if self._apply_state(snapshot) else None

        if kind == 'product_set_notes_toggle':
            self.product_set_notes_visible = bool(message.get('visible'))
            return 'ui'

        logger.debug(f"[LIVE] product_set={self.product_set_id} ignoring message type={kind}")
        return None

    def poll(self, timeout: float = 0.0) -> List[str]:
        """
        Wait up to `timeout` for broadcasts and apply everything pending.
        Returns what changed, in order.
        """
        if self.subscription is None:
            return []

        changes = []
        message = self.subscription.get_message(timeout=timeout)
        while message is not None:
            change = self.handle_message(message)
            if change:
                changes.append(change)
            message = self.subscription.get_message(timeout=0.0)
        return changes

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------

    @property
    def ui(self) -> Dict[str, Any]:
        return {'product_set_notes_visible': self.product_set_notes_visible}

    @property
    def current_image(self) -> Optional[Dict[str, Any]]:
        """Image the host should show, or None."""
        if not self.state or not self.state.get('current_entry'):
            return None
        images = self.state['current_entry'].get('images') or []
        index = self.state.get('current_image_index') or 0
        return images[index] if 0 <= index < len(images) else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'role': self.role,
            'product_set': self.product_set,
            'message_presets': self.message_presets,
            'state': self.state,
            'ui': self.ui,
            'connected': self.connected,
        }
