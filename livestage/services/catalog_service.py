"""
Catalog service - brands and their products.

Products are normally synced from the brand's store; these helpers cover
bootstrapping a brand and seeding products for demos and tests.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from livestage.models import Brand, Product, ProductImage
from livestage.exceptions import BusinessLogicError, NotFoundError

logger = logging.getLogger(__name__)

BRAND_SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def get_brand_by_slug(session, slug: str) -> Brand:
    brand = session.query(Brand).filter(Brand.slug == slug).first()
    if not brand:
        raise NotFoundError('Brand not found.')
    return brand


def create_brand(session, name: str, slug: str, notes: Optional[str] = None) -> Brand:
    """
    Create a brand.

    Raises:
        BusinessLogicError: invalid slug or name/slug already taken
    """
    name = (name or '').strip()
    slug = (slug or '').strip().lower()
    if not name:
        raise BusinessLogicError('Brand name is required.')
    if not BRAND_SLUG_PATTERN.match(slug):
        raise BusinessLogicError('Brand slug may only contain lowercase letters, numbers and dashes.')

    brand = Brand(name=name, slug=slug, notes=notes)
    try:
        session.add(brand)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'A brand named "{name}" or with slug "{slug}" already exists.', status_code=409)

    logger.info(f"[CATALOG] Created brand={brand.id} slug={slug}")
    return brand


def list_products(session, brand_id: int, search: Optional[str] = None, include_archived: bool = False) -> List[Product]:
    """Products of a brand by name, with images preloaded."""
    query = session.query(Product).options(selectinload(Product.images)).filter(
        Product.brand_id == brand_id
    )
    if not include_archived:
        query = query.filter(Product.archived_at.is_(None))
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    return query.order_by(Product.name.asc()).all()


def create_product(session, brand_id: int, attrs: Dict[str, Any], image_paths: Optional[List[str]] = None) -> Product:
    """Create a product and its images (in the given order)."""
    name = (attrs.get('name') or '').strip()
    if not name:
        raise BusinessLogicError('Product name is required.')

    try:
        original_price_cents = int(attrs.get('original_price_cents'))
    except (TypeError, ValueError):
        raise BusinessLogicError('Original price is required.')
    if original_price_cents <= 0:
        raise BusinessLogicError('Original price must be greater than 0.')

    sale_price_cents = attrs.get('sale_price_cents')
    if sale_price_cents is not None:
        sale_price_cents = int(sale_price_cents)
        if sale_price_cents <= 0:
            raise BusinessLogicError('Sale price must be greater than 0.')

    product = Product(
        brand_id=brand_id,
        name=name,
        description=attrs.get('description'),
        talking_points_md=attrs.get('talking_points_md'),
        original_price_cents=original_price_cents,
        sale_price_cents=sale_price_cents,
        pid=attrs.get('pid'),
        sku=attrs.get('sku')
    )
    for position, path in enumerate(image_paths or []):
        product.images.append(ProductImage(position=position, path=path, is_primary=(position == 0)))

    try:
        session.add(product)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError('A product with this external id already exists.', status_code=409)
    return product
