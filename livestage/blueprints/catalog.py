"""Catalog blueprint - brand products."""
from flask import Blueprint, jsonify, request, g
from livestage.database import get_session
from livestage.middleware import require_brand
from livestage.services.catalog_service import list_products, create_product

catalog_bp = Blueprint('catalog', __name__, url_prefix='/b/<brand_slug>/products')


def _product_dict(product):
    return {
        'id': product.id,
        'name': product.name,
        'sku': product.sku,
        'original_price_cents': product.original_price_cents,
        'sale_price_cents': product.sale_price_cents,
        'archived': product.archived,
        'images': [image.to_dict() for image in product.images],
    }


@catalog_bp.route('', methods=['GET'])
@require_brand
def list_products_view():
    """List the brand's products (?q= filters by name or SKU)."""
    session = get_session()
    products = list_products(
        session,
        g.brand_id,
        search=request.args.get('q'),
        include_archived=request.args.get('archived') == '1'
    )
    return jsonify({'products': [_product_dict(p) for p in products]})


@catalog_bp.route('', methods=['POST'])
@require_brand
def create_product_view():
    session = get_session()
    data = request.get_json(silent=True) or {}
    product = create_product(session, g.brand_id, data, data.get('image_paths'))
    return jsonify(_product_dict(product)), 201
