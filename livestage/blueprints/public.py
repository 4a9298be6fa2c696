"""Public blueprint - read-only product sets opened through share links."""
from flask import Blueprint, jsonify
from livestage.database import get_session
from livestage.services.product_set_service import verify_share_token, get_product_set_for_public

public_bp = Blueprint('public', __name__)


@public_bp.route('/share/<token>')
def shared_product_set(token):
    """
    Show a product set to anyone holding a valid share link.

    Returns:
        200: product set with its entries
        403: invalid or expired link
        404: product set was deleted
    """
    product_set_id = verify_share_token(token)
    session = get_session()
    product_set = get_product_set_for_public(session, product_set_id)

    data = product_set.to_dict(include_entries=True)
    # Internal notes stay private
    data.pop('notes', None)
    for entry in data['entries']:
        entry.pop('notes', None)
    return jsonify(data)
