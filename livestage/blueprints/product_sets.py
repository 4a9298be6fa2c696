"""Product sets blueprint - curate lineups for live sessions."""
from flask import Blueprint, jsonify, request, g, url_for, current_app
from livestage.database import get_session
from livestage.middleware import require_brand
from livestage.exceptions import BusinessLogicError, NotFoundError
from livestage.services import product_set_service as service

product_sets_bp = Blueprint('product_sets', __name__, url_prefix='/b/<brand_slug>/product-sets')


def _json_body():
    return request.get_json(silent=True) or {}


@product_sets_bp.route('', methods=['GET'])
@require_brand
def list_product_sets():
    """Paginated list, most recently modified first (?q=&page=&per_page=)."""
    session = get_session()
    try:
        page = int(request.args.get('page', 1))
        per_page = int(request.args.get('per_page', current_app.config.get('PRODUCT_SETS_PER_PAGE', 20)))
    except ValueError:
        raise BusinessLogicError('page and per_page must be numbers.')

    result = service.list_product_sets_paginated(
        session, g.brand_id, page=page, per_page=per_page, search_query=request.args.get('q', '')
    )
    return jsonify({
        'product_sets': [ps.to_dict() for ps in result['product_sets']],
        'page': result['page'],
        'per_page': result['per_page'],
        'total': result['total'],
        'has_more': result['has_more'],
    })


@product_sets_bp.route('', methods=['POST'])
@require_brand
def create_product_set():
    session = get_session()
    data = _json_body()
    product_ids = data.get('product_ids')
    if product_ids:
        product_set = service.create_product_set_with_products(session, g.brand_id, data, product_ids)
    else:
        product_set = service.create_product_set(session, g.brand_id, data)
    return jsonify(product_set.to_dict(include_entries=True)), 201


@product_sets_bp.route('/name-available', methods=['GET'])
@require_brand
def name_available():
    session = get_session()
    taken = service.product_set_name_exists(session, request.args.get('name'), g.brand_id)
    return jsonify({'available': not taken})


@product_sets_bp.route('/<int:product_set_id>', methods=['GET'])
@require_brand
def show_product_set(product_set_id):
    session = get_session()
    product_set = service.get_product_set(session, g.brand_id, product_set_id)
    return jsonify(product_set.to_dict(include_entries=True))


@product_sets_bp.route('/by-slug/<slug>', methods=['GET'])
@require_brand
def show_product_set_by_slug(slug):
    session = get_session()
    product_set = service.get_product_set_by_slug(session, g.brand_id, slug)
    return jsonify(product_set.to_dict(include_entries=True))


@product_sets_bp.route('/<int:product_set_id>', methods=['PATCH', 'PUT'])
@require_brand
def update_product_set(product_set_id):
    session = get_session()
    product_set = service.get_product_set(session, g.brand_id, product_set_id)
    product_set = service.update_product_set(session, product_set, _json_body())
    return jsonify(product_set.to_dict())


@product_sets_bp.route('/<int:product_set_id>', methods=['DELETE'])
@require_brand
def delete_product_set(product_set_id):
    session = get_session()
    product_set = service.get_product_set(session, g.brand_id, product_set_id)
    service.delete_product_set(session, product_set)
    return jsonify({'status': 'ok'})


@product_sets_bp.route('/<int:product_set_id>/duplicate', methods=['POST'])
@require_brand
def duplicate_product_set(product_set_id):
    session = get_session()
    copy = service.duplicate_product_set(session, g.brand_id, product_set_id)
    return jsonify(copy.to_dict(include_entries=True)), 201


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

def _get_entry(session, product_set_id, entry_id):
    entry = service.get_product_set_product(session, entry_id, brand_id=g.brand_id)
    if entry.product_set_id != product_set_id:
        raise NotFoundError('Product not found in product set.')
    return entry


@product_sets_bp.route('/<int:product_set_id>/entries', methods=['POST'])
@require_brand
def add_entry(product_set_id):
    session = get_session()
    product_set = service.get_product_set(session, g.brand_id, product_set_id)
    data = _json_body()
    try:
        product_id = int(data.get('product_id'))
    except (TypeError, ValueError):
        raise BusinessLogicError('product_id is required.')
    entry = service.add_product_to_product_set(session, product_set, product_id, data)
    return jsonify(entry.to_dict()), 201


@product_sets_bp.route('/<int:product_set_id>/entries/<int:entry_id>', methods=['DELETE'])
@require_brand
def remove_entry(product_set_id, entry_id):
    """Remove an entry; the response carries what the client needs to undo it."""
    session = get_session()
    entry = _get_entry(session, product_set_id, entry_id)
    undo = service.get_product_set_product_for_undo(session, entry.id)
    service.remove_product_from_product_set(session, entry)
    return jsonify({'status': 'ok', 'undo': undo})


@product_sets_bp.route('/<int:product_set_id>/reorder', methods=['POST'])
@require_brand
def reorder_entries(product_set_id):
    session = get_session()
    service.get_product_set(session, g.brand_id, product_set_id)
    entry_ids = _json_body().get('entry_ids')
    if not isinstance(entry_ids, list):
        raise BusinessLogicError('entry_ids must be a list.')
    updated = service.reorder_products(session, product_set_id, entry_ids)
    return jsonify({'status': 'ok', 'updated': updated,
                    'order': service.get_current_product_order(session, product_set_id)})


@product_sets_bp.route('/<int:product_set_id>/restore', methods=['POST'])
@require_brand
def restore_entry(product_set_id):
    """Undo a removal using the `undo` payload returned by DELETE .../entries/<id>."""
    session = get_session()
    service.get_product_set(session, g.brand_id, product_set_id)
    data = dict(_json_body(), product_set_id=product_set_id)
    if not data.get('product_id') or not data.get('position'):
        raise BusinessLogicError('product_id and position are required.')
    entry = service.restore_product_to_product_set(session, data)
    return jsonify(entry.to_dict()), 201


@product_sets_bp.route('/<int:product_set_id>/renumber', methods=['POST'])
@require_brand
def renumber_entries(product_set_id):
    session = get_session()
    service.get_product_set(session, g.brand_id, product_set_id)
    updated = service.renumber_product_set_products(session, product_set_id)
    return jsonify({'status': 'ok', 'updated': updated})


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------

@product_sets_bp.route('/<int:product_set_id>/share', methods=['POST'])
@require_brand
def share_link(product_set_id):
    session = get_session()
    service.get_product_set(session, g.brand_id, product_set_id)
    token = service.generate_share_token(product_set_id)
    return jsonify({
        'token': token,
        'url': url_for('public.shared_product_set', token=token, _external=True),
    })
