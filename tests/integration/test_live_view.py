"""
Integration tests for connected controller/host views.
"""

import pytest
from livestage.exceptions import NotFoundError, BusinessLogicError
from livestage.live.view import ProductSetLiveView
from livestage.live.stream import stream_view
from livestage.services import product_set_state_service as state_service
from livestage.services.message_preset_service import create_message_preset


@pytest.fixture
def controller(session, brand, product_set_id):
    view = ProductSetLiveView(product_set_id, 'controller', brand_id=brand.id).mount(session, connected=True)
    yield view
    view.disconnect()


@pytest.fixture
def host(session, brand, product_set_id):
    view = ProductSetLiveView(product_set_id, 'host', brand_id=brand.id).mount(session, connected=True)
    yield view
    view.disconnect()


class TestMount:

    def test_prerender_does_not_subscribe(self, session, brand, product_set_id):
        view = ProductSetLiveView(product_set_id, 'host', brand_id=brand.id).mount(session, connected=False)

        assert view.subscription is None
        assert view.state is None
        assert view.product_set['name'] == 'Friday Live'
        assert state_service.get_product_set_state(session, product_set_id) is None

    def test_connected_mount_initializes_state(self, session, host, product_set_id):
        assert host.subscription is not None
        assert host.state['product_set_id'] == product_set_id
        assert host.state['current_product_set_product_id'] is None
        assert host.state['total_products'] == 3

    def test_remount_subscribes_once(self, session, host):
        subscription = host.subscription
        host.mount(session, connected=True)

        assert host.subscription is subscription

    def test_other_brand_cannot_mount(self, session, other_brand, product_set_id):
        with pytest.raises(NotFoundError):
            ProductSetLiveView(product_set_id, 'host', brand_id=other_brand.id).mount(session, connected=False)

    def test_unknown_role(self, product_set_id):
        with pytest.raises(BusinessLogicError):
            ProductSetLiveView(product_set_id, 'audience')

    def test_controller_loads_presets(self, session, brand, product_set_id):
        create_message_preset(session, brand.id, {'message_text': 'Smile'})
        view = ProductSetLiveView(product_set_id, 'controller', brand_id=brand.id).mount(session, connected=False)

        assert [p['message_text'] for p in view.message_presets] == ['Smile']


class TestSynchronization:

    def test_controller_action_reaches_host(self, session, controller, host):
        reply = controller.handle_event(session, 'jump_to_product', {'position': '2'})

        assert reply == {'ok': True, 'event': 'jump_to_product', 'position': 2}
        assert host.poll(timeout=0.5) == ['state']
        assert host.state['current_position'] == 2
        assert host.state['current_entry']['name'] == 'Pearl Necklace'

    def test_local_state_only_changes_from_broadcast(self, session, controller):
        controller.handle_event(session, 'next_product')

        assert controller.state['current_position'] is None
        controller.poll(timeout=0.5)
        assert controller.state['current_position'] == 1

    def test_rejected_action_returns_notice(self, session, controller, host):
        reply = controller.handle_event(session, 'previous_product')

        assert reply['ok'] is False
        assert reply['notice']['code'] == 'start_of_product_set'
        assert controller.notices[-1]['code'] == 'start_of_product_set'
        assert host.poll(timeout=0.1) == []

    def test_invalid_position_notice(self, session, controller):
        reply = controller.handle_event(session, 'jump_to_product', {'position': 'abc'})

        assert reply['notice']['code'] == 'invalid_position'

    def test_unknown_event(self, session, controller):
        reply = controller.handle_event(session, 'explode')

        assert reply['ok'] is False
        assert reply['notice']['code'] == 'unknown_event'

    def test_host_message_and_clear(self, session, controller, host):
        controller.handle_event(session, 'send_host_message', {'message': 'Wave to the camera', 'color': 'green'})
        host.poll(timeout=0.5)
        assert host.state['host_message']['text'] == 'Wave to the camera'
        assert host.state['host_message']['color'] == 'green'

        controller.handle_event(session, 'clear_host_message')
        host.poll(timeout=0.5)
        assert host.state['host_message'] is None

    def test_non_text_message_is_notice(self, session, controller, host):
        reply = controller.handle_event(session, 'send_host_message', {'message': 5})

        assert reply['ok'] is False
        assert reply['notice']['code'] == 'invalid_message'
        assert host.poll(timeout=0.1) == []

    def test_select_preset(self, session, brand, controller, host):
        preset = create_message_preset(session, brand.id, {'message_text': 'Read comments', 'color': 'blue'})

        reply = controller.handle_event(session, 'select_preset', {'id': preset.id})

        assert reply['ok'] is True
        host.poll(timeout=0.5)
        assert host.state['host_message']['text'] == 'Read comments'

    def test_image_events(self, session, controller, host):
        controller.handle_event(session, 'jump_to_product', {'position': 2})
        controller.handle_event(session, 'cycle_image', {'direction': 'next'})
        host.poll(timeout=0.5)
        assert host.state['current_image_index'] == 1
        assert host.current_image['path'] == '/img/pearl-2.jpg'

        controller.handle_event(session, 'set_image', {'index': 0})
        host.poll(timeout=0.5)
        assert host.state['current_image_index'] == 0

    def test_out_of_range_set_image_is_silent(self, session, controller, host):
        controller.handle_event(session, 'jump_to_product', {'position': 2})
        host.poll(timeout=0.5)

        reply = controller.handle_event(session, 'set_image', {'index': 9})

        assert reply['ok'] is True
        assert host.poll(timeout=0.1) == []

    def test_notes_toggle_is_ephemeral(self, session, controller, host, product_set_id):
        reply = controller.handle_event(session, 'toggle_product_set_notes')

        assert reply['visible'] is True
        assert host.poll(timeout=0.5) == ['ui']
        assert host.product_set_notes_visible is True
        controller.poll(timeout=0.5)
        assert controller.product_set_notes_visible is True

        session.expire_all()
        state = state_service.get_product_set_state(session, product_set_id)
        assert state.version == 1

    def test_notes_toggle_last_message_wins(self, host, product_set_id):
        host.handle_message({'type': 'product_set_notes_toggle', 'visible': True})
        host.handle_message({'type': 'product_set_notes_toggle', 'visible': False})

        assert host.product_set_notes_visible is False


class TestStaleMessages:

    def test_older_version_is_dropped(self, host, product_set_id):
        current = dict(host.state, version=5, current_image_index=1)
        stale = dict(host.state, version=4, current_image_index=0)

        assert host.handle_message({'type': 'state_changed', 'state': current}) == 'state'
        assert host.handle_message({'type': 'state_changed', 'state': stale}) is None
        assert host.state['current_image_index'] == 1

    def test_state_is_replaced_wholesale(self, host):
        replacement = {
            'product_set_id': host.product_set_id,
            'version': host.state['version'] + 1,
            'current_product_set_product_id': None,
            'current_position': None,
            'current_image_index': 0,
            'current_entry': None,
            'total_products': 3,
            'host_message': None,
            'updated_at': None,
        }

        host.handle_message({'type': 'state_changed', 'state': replacement})

        assert host.state == replacement

    def test_other_product_set_ignored(self, host):
        before = host.state
        other = dict(before, product_set_id=before['product_set_id'] + 1, version=99)

        assert host.handle_message({'type': 'state_changed', 'state': other}) is None
        assert host.state is before


class TestStream:

    def test_stream_emits_initial_state_and_changes(self, session, controller, host):
        frames = stream_view(host, heartbeat_seconds=60, poll_timeout=0.2)

        assert next(frames).startswith('retry:')
        assert next(frames).startswith('event: state\n')
        assert next(frames).startswith('event: ui\n')

        controller.handle_event(session, 'jump_to_product', {'position': 3})
        frame = next(frames)
        assert frame.startswith('event: state\n')
        assert '"current_position": 3' in frame

        frames.close()
        assert host.subscription is None

    def test_stream_heartbeat(self, host):
        # Consume the broadcast from this view's own state initialization
        host.poll(timeout=0.2)
        ticks = iter([0.0, 0.0, 30.0, 30.0])
        frames = stream_view(host, heartbeat_seconds=15, poll_timeout=0.0, clock=lambda: next(ticks))

        for _ in range(3):
            next(frames)
        assert next(frames) == ': heartbeat\n\n'
        frames.close()
