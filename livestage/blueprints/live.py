"""
Live blueprint - controller and host screens for a running product set.

Pages render a static prerender (no subscription); the browser then opens the
SSE stream, which mounts a connected view and pushes every broadcast.
"""
from flask import Blueprint, Response, jsonify, render_template, request, g, current_app, stream_with_context, url_for
from livestage.database import get_session
from livestage.middleware import require_brand
from livestage.exceptions import NotFoundError
from livestage.live.view import ProductSetLiveView, ROLES
from livestage.live.stream import stream_view
from livestage.services.product_set_service import get_product_set
from livestage.services.product_set_state_service import get_or_initialize_state, serialize_state

live_bp = Blueprint('live', __name__, url_prefix='/b/<brand_slug>/product-sets/<int:product_set_id>')


def _check_role(role):
    if role not in ROLES:
        raise NotFoundError(f'Unknown view "{role}".')


def _render_page(product_set_id, role):
    session = get_session()
    view = ProductSetLiveView(product_set_id, role, brand_id=g.brand_id).mount(session, connected=False)
    return render_template(
        f'live/{role}.html',
        view=view,
        brand=g.brand,
        events_url=url_for('live.events', product_set_id=product_set_id, role=role),
        actions_url=url_for('live.actions', product_set_id=product_set_id),
    )


@live_bp.route('/controller')
@require_brand
def controller(product_set_id):
    return _render_page(product_set_id, 'controller')


@live_bp.route('/host')
@require_brand
def host(product_set_id):
    return _render_page(product_set_id, 'host')


@live_bp.route('/live/<role>/events')
@require_brand
def events(product_set_id, role):
    """SSE stream of state and UI changes for one connected view."""
    _check_role(role)
    session = get_session()
    view = ProductSetLiveView(product_set_id, role, brand_id=g.brand_id).mount(session, connected=True)

    response = Response(
        stream_with_context(stream_view(
            view,
            heartbeat_seconds=current_app.config.get('SSE_HEARTBEAT_SECONDS', 15),
            poll_timeout=current_app.config.get('SSE_POLL_TIMEOUT', 1.0),
        )),
        mimetype='text/event-stream'
    )
    response.headers['Cache-Control'] = 'no-cache'
    response.headers['X-Accel-Buffering'] = 'no'  # Nginx must not buffer the stream
    return response


@live_bp.route('/live/events', methods=['POST'])
@require_brand
def actions(product_set_id):
    """
    Run one view event, e.g. {"event": "jump_to_product", "params": {"position": 3}}.

    Always 200: rejected actions carry a notice instead of changing state.
    """
    data = request.get_json(silent=True) or {}
    role = data.get('role', 'controller')
    _check_role(role)

    session = get_session()
    view = ProductSetLiveView(product_set_id, role, brand_id=g.brand_id).mount(session, connected=False)
    reply = view.handle_event(session, data.get('event', ''), data.get('params') or {})
    return jsonify(reply)


@live_bp.route('/state')
@require_brand
def state(product_set_id):
    """Current state snapshot, e.g. for a client that missed broadcasts."""
    session = get_session()
    get_product_set(session, g.brand_id, product_set_id)
    snapshot = serialize_state(get_or_initialize_state(session, product_set_id))
    session.commit()
    return jsonify(snapshot)
