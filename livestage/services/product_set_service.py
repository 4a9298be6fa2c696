"""
Product set service - Multi-Brand.
Curating product sets: CRUD, entries, ordering, undo support and share links.
"""
import logging
import re
import time
from typing import Any, Dict, List, Optional

from flask import current_app
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from livestage.models import Product, ProductSet, ProductSetProduct, ProductSetState
from livestage.exceptions import BusinessLogicError, NotFoundError, UnauthorizedError, PersistenceError
from livestage.services.pubsub_service import get_pubsub, list_topic
from livestage.services.product_set_state_service import rebroadcast_state, _utcnow
from livestage.blueprints.metrics import state_broadcasts_total

logger = logging.getLogger(__name__)

# Offset used to park entries while positions are rewritten under the unique constraint
TEMP_POSITION_OFFSET = 10_000
SHARE_TOKEN_SALT = 'product_set_share'

EDITABLE_FIELDS = ('name', 'slug', 'notes', 'notes_image_url')
ENTRY_OVERRIDE_FIELDS = (
    'section', 'featured_name', 'featured_talking_points_md',
    'featured_original_price_cents', 'featured_sale_price_cents', 'notes',
)


def _entries_loader():
    return selectinload(ProductSet.entries).selectinload(ProductSetProduct.product).selectinload(Product.images)


def broadcast_product_set_list_change(brand_id: Optional[int]) -> None:
    """Tell list views of a brand to reload."""
    if brand_id is None:
        return
    get_pubsub().publish(list_topic(brand_id), {'type': 'product_set_list_changed'})
    state_broadcasts_total.labels(topic_kind='list').inc()


def _touch_product_set(session: Session, product_set_id: int) -> None:
    """Mark a product set as recently modified."""
    session.query(ProductSet).filter(ProductSet.id == product_set_id).update(
        {'updated_at': _utcnow()}, synchronize_session=False
    )


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"[PRODUCT_SETS] ✗ Constraint violation during {action}: {e.orig}")
        raise BusinessLogicError(f'Could not {action}: conflicting data.', status_code=409)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[PRODUCT_SETS] ✗ Database error during {action}: {e}")
        raise PersistenceError() from e


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

def slugify(name: str) -> str:
    """
    Convert a name into a URL-friendly slug.

    Examples:
        slugify("My Product Set Name") -> "my-product-set-name"
        slugify("@#$%") -> "product-set-1700000000"
    """
    slug = (name or '').lower()
    slug = re.sub(r'[^\w\s-]', '', slug)
    slug = re.sub(r'\s+', '-', slug)
    slug = slug.strip('-')
    if not slug:
        return f"product-set-{int(time.time())}"
    return slug


def generate_unique_slug(session: Session, name: str) -> str:
    """slugify(name), suffixed -1, -2, ... until no product set uses it."""
    base_slug = slugify(name)
    slug = base_slug
    attempt = 0
    while session.query(ProductSet.id).filter(ProductSet.slug == slug).first() is not None:
        attempt += 1
        slug = f"{base_slug}-{attempt}"
    return slug


# ---------------------------------------------------------------------------
# Product sets
# ---------------------------------------------------------------------------

def list_product_sets(session: Session, brand_id: int) -> List[ProductSet]:
    """All product sets of a brand, most recently modified first."""
    return session.query(ProductSet).filter(
        ProductSet.brand_id == brand_id
    ).order_by(ProductSet.updated_at.desc(), ProductSet.id.desc()).all()


def list_product_sets_paginated(
    session: Session,
    brand_id: int,
    page: int = 1,
    per_page: int = 20,
    search_query: str = ''
) -> Dict[str, Any]:
    """
    Paginated product sets with entries preloaded, most recently modified first.

    Returns a dict with product_sets, page, per_page, total and has_more.
    """
    page = max(int(page or 1), 1)
    per_page = max(int(per_page or 20), 1)

    query = session.query(ProductSet).filter(ProductSet.brand_id == brand_id)

    search_query = (search_query or '').strip()
    if search_query:
        pattern = f'%{search_query}%'
        query = query.filter(or_(
            ProductSet.name.ilike(pattern),
            ProductSet.notes.ilike(pattern)
        ))

    total = query.count()
    product_sets = query.options(_entries_loader()).order_by(
        ProductSet.updated_at.desc(), ProductSet.id.desc()
    ).limit(per_page).offset((page - 1) * per_page).all()

    return {
        'product_sets': product_sets,
        'page': page,
        'per_page': per_page,
        'total': total,
        'has_more': total > page * per_page,
    }


def get_product_set(session: Session, brand_id: int, product_set_id: int) -> ProductSet:
    """Get a product set of the brand with its entries, or raise NotFoundError."""
    product_set = session.query(ProductSet).options(_entries_loader()).filter(
        ProductSet.id == product_set_id,
        ProductSet.brand_id == brand_id
    ).first()
    if not product_set:
        raise NotFoundError('Product set not found.')
    return product_set


def get_product_set_by_slug(session: Session, brand_id: int, slug: str) -> ProductSet:
    product_set = session.query(ProductSet).options(_entries_loader()).filter(
        ProductSet.slug == slug,
        ProductSet.brand_id == brand_id
    ).first()
    if not product_set:
        raise NotFoundError('Product set not found.')
    return product_set


def product_set_name_exists(session: Session, name: Optional[str], brand_id: Optional[int]) -> bool:
    """True if the brand already has a product set whose slug matches this name."""
    if not name or brand_id is None:
        return False
    slug = slugify(name)
    return session.query(ProductSet.id).filter(
        ProductSet.brand_id == brand_id,
        ProductSet.slug == slug
    ).first() is not None


def _build_product_set(session: Session, brand_id: int, attrs: Dict[str, Any]) -> ProductSet:
    name = (attrs.get('name') or '').strip()
    if not name:
        raise BusinessLogicError('Product set name is required.')

    slug = (attrs.get('slug') or '').strip() or generate_unique_slug(session, name)
    product_set = ProductSet(
        brand_id=brand_id,
        name=name,
        slug=slug,
        notes=attrs.get('notes'),
        notes_image_url=attrs.get('notes_image_url')
    )
    session.add(product_set)
    session.flush()
    return product_set


def create_product_set(session: Session, brand_id: int, attrs: Dict[str, Any]) -> ProductSet:
    """Create a product set; the slug is derived from the name when not given."""
    product_set = _build_product_set(session, brand_id, attrs)
    _commit(session, 'create product set')
    logger.info(f"[PRODUCT_SETS] Created product_set={product_set.id} brand={brand_id}")
    broadcast_product_set_list_change(brand_id)
    return product_set


def create_product_set_with_products(
    session: Session,
    brand_id: int,
    attrs: Dict[str, Any],
    product_ids: Optional[List[int]] = None
) -> ProductSet:
    """Create a product set and its entries (positions 1..n) in a single transaction."""
    try:
        product_set = _build_product_set(session, brand_id, attrs)
        for position, product_id in enumerate(product_ids or [], start=1):
            _build_entry(session, product_set, product_id, {'position': position})
    except (BusinessLogicError, NotFoundError):
        session.rollback()
        raise
    _commit(session, 'create product set')
    broadcast_product_set_list_change(brand_id)
    return product_set


def duplicate_product_set(session: Session, brand_id: int, product_set_id: int) -> ProductSet:
    """Copy a product set with its lineup as "Copy of <name>" under a fresh slug."""
    original = get_product_set(session, brand_id, product_set_id)
    new_name = f"Copy of {original.name}"

    copy = ProductSet(
        brand_id=original.brand_id,
        name=new_name,
        slug=generate_unique_slug(session, new_name),
        notes=original.notes,
        notes_image_url=original.notes_image_url
    )
    session.add(copy)
    session.flush()

    for entry in original.entries:
        session.add(ProductSetProduct(product_set_id=copy.id, **entry.copy_attrs()))

    _commit(session, 'duplicate product set')
    logger.info(f"[PRODUCT_SETS] Duplicated product_set={product_set_id} -> {copy.id}")
    broadcast_product_set_list_change(brand_id)
    return copy


def update_product_set(session: Session, product_set: ProductSet, attrs: Dict[str, Any]) -> ProductSet:
    for field in EDITABLE_FIELDS:
        if field in attrs:
            value = attrs[field]
            if field in ('name', 'slug'):
                value = (value or '').strip()
                if not value:
                    raise BusinessLogicError(f'Product set {field} cannot be empty.')
            setattr(product_set, field, value)
    _commit(session, 'update product set')
    broadcast_product_set_list_change(product_set.brand_id)
    return product_set


def delete_product_set(session: Session, product_set: ProductSet) -> None:
    """Delete a product set together with its entries and state row."""
    brand_id = product_set.brand_id
    product_set_id = product_set.id
    session.delete(product_set)
    _commit(session, 'delete product set')
    logger.info(f"[PRODUCT_SETS] Deleted product_set={product_set_id}")
    broadcast_product_set_list_change(brand_id)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

def get_product_set_product(session: Session, entry_id: int, brand_id: Optional[int] = None) -> ProductSetProduct:
    query = session.query(ProductSetProduct).filter(ProductSetProduct.id == entry_id)
    if brand_id is not None:
        query = query.join(ProductSet).filter(ProductSet.brand_id == brand_id)
    entry = query.first()
    if not entry:
        raise NotFoundError('Product not found in product set.')
    return entry


def get_next_position(session: Session, product_set_id: int) -> int:
    """Next free position at the end of the lineup."""
    max_position = session.query(func.max(ProductSetProduct.position)).filter(
        ProductSetProduct.product_set_id == product_set_id
    ).scalar()
    return (max_position or 0) + 1


def _build_entry(session: Session, product_set: ProductSet, product_id: int, attrs: Dict[str, Any]) -> ProductSetProduct:
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.brand_id == product_set.brand_id
    ).first()
    if not product:
        raise NotFoundError('Product not found for this brand.')

    position = attrs.get('position') or get_next_position(session, product_set.id)
    if int(position) < 1:
        raise BusinessLogicError('Position must be greater than 0.')

    entry = ProductSetProduct(
        product_set_id=product_set.id,
        product_id=product.id,
        position=int(position),
        **{field: attrs.get(field) for field in ENTRY_OVERRIDE_FIELDS}
    )
    session.add(entry)
    session.flush()
    return entry


def add_product_to_product_set(
    session: Session,
    product_set: ProductSet,
    product_id: int,
    attrs: Optional[Dict[str, Any]] = None
) -> ProductSetProduct:
    """Add a catalog product to the lineup, at the end unless a position is given."""
    try:
        entry = _build_entry(session, product_set, product_id, attrs or {})
        _touch_product_set(session, product_set.id)
    except (BusinessLogicError, NotFoundError):
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"[PRODUCT_SETS] ✗ Duplicate entry in product_set={product_set.id}: {e.orig}")
        raise BusinessLogicError('Product is already in this product set or the position is taken.', status_code=409)
    _commit(session, 'add product')

    rebroadcast_state(session, entry.product_set_id)
    broadcast_product_set_list_change(product_set.brand_id)
    return entry


def _release_state_pointer(session: Session, entry: ProductSetProduct) -> bool:
    """Null the live pointer if it targets `entry`. Returns True when it did."""
    state = session.query(ProductSetState).filter(
        ProductSetState.product_set_id == entry.product_set_id
    ).with_for_update().populate_existing().first()
    if state is None or state.current_product_set_product_id != entry.id:
        return False
    state.current_product_set_product_id = None
    state.current_image_index = 0
    state.updated_at = _utcnow()
    return True


def _renumber(session: Session, product_set_id: int) -> int:
    """Rewrite positions to 1..n in current order, one row at a time; returns rows changed."""
    rows = session.query(ProductSetProduct.id, ProductSetProduct.position).filter(
        ProductSetProduct.product_set_id == product_set_id
    ).order_by(ProductSetProduct.position.asc()).all()

    updated = 0
    for new_position, (entry_id, position) in enumerate(rows, start=1):
        if position != new_position:
            session.query(ProductSetProduct).filter(ProductSetProduct.id == entry_id).update(
                {'position': new_position}, synchronize_session=False
            )
            updated += 1
    return updated


def _remove_entry(session: Session, entry: ProductSetProduct) -> None:
    product_set_id = entry.product_set_id
    _release_state_pointer(session, entry)
    session.delete(entry)
    session.flush()
    _renumber(session, product_set_id)
    _touch_product_set(session, product_set_id)
    session.expire_all()


def remove_product_from_product_set(session: Session, entry: ProductSetProduct) -> None:
    """
    Remove an entry and close the gap in positions.

    If the entry was live the state pointer is nulled (never cascaded) and the
    new state is broadcast.
    """
    product_set_id = entry.product_set_id
    brand_id = entry.product_set.brand_id
    _remove_entry(session, entry)
    _commit(session, 'remove product')
    logger.info(f"[PRODUCT_SETS] Removed entry from product_set={product_set_id}")

    rebroadcast_state(session, product_set_id)
    broadcast_product_set_list_change(brand_id)


def remove_product_from_product_set_silent(session: Session, entry: ProductSetProduct) -> None:
    """Remove and renumber without broadcasting; used by batch undo, which broadcasts once."""
    _remove_entry(session, entry)
    _commit(session, 'remove product')


def reorder_products(session: Session, product_set_id: int, ordered_entry_ids: List[int]) -> int:
    """
    Reorder a lineup given entry ids in their new order; returns rows updated.

    Entries are first parked at TEMP_POSITION_OFFSET + i so the unique
    (product_set_id, position) constraint holds at every step.
    """
    product_set = session.get(ProductSet, product_set_id)
    if product_set is None:
        raise NotFoundError('Product set not found.', payload={'error': 'product_set_not_found'})

    ordered_entry_ids = [int(entry_id) for entry_id in ordered_entry_ids]
    if len(ordered_entry_ids) != len(set(ordered_entry_ids)):
        raise BusinessLogicError('Duplicate products in new order.', payload={'error': 'duplicate_ids'})

    owned = {
        row[0] for row in session.query(ProductSetProduct.id).filter(
            ProductSetProduct.product_set_id == product_set_id,
            ProductSetProduct.id.in_(ordered_entry_ids)
        ).all()
    } if ordered_entry_ids else set()
    if len(owned) != len(ordered_entry_ids):
        raise BusinessLogicError(
            'Some products do not belong to this product set.',
            payload={'error': 'invalid_product_set_product_ids'}
        )
    # A partial list would collide with the positions of the entries left out
    if owned != set(get_current_product_order(session, product_set_id)):
        raise BusinessLogicError(
            'New order must list every product in the product set.',
            payload={'error': 'invalid_product_set_product_ids'}
        )

    try:
        for index, entry_id in enumerate(ordered_entry_ids, start=1):
            session.query(ProductSetProduct).filter(
                ProductSetProduct.id == entry_id,
                ProductSetProduct.product_set_id == product_set_id
            ).update({'position': TEMP_POSITION_OFFSET + index}, synchronize_session=False)

        count = 0
        for position, entry_id in enumerate(ordered_entry_ids, start=1):
            count += session.query(ProductSetProduct).filter(
                ProductSetProduct.id == entry_id,
                ProductSetProduct.product_set_id == product_set_id
            ).update({'position': position}, synchronize_session=False)

        _touch_product_set(session, product_set_id)
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"[PRODUCT_SETS] ✗ Constraint violation during reorder products: {e.orig}")
        raise BusinessLogicError('Could not reorder products: conflicting data.', status_code=409)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[PRODUCT_SETS] ✗ Database error during reorder products: {e}")
        raise PersistenceError() from e
    _commit(session, 'reorder products')
    session.expire_all()

    logger.info(f"[PRODUCT_SETS] Reordered {count} entries in product_set={product_set_id}")
    rebroadcast_state(session, product_set_id)
    broadcast_product_set_list_change(product_set.brand_id)
    return count


def renumber_product_set_products(session: Session, product_set_id: int) -> int:
    """Close gaps so positions run 1..n; returns rows changed."""
    updated = _renumber(session, product_set_id)
    _touch_product_set(session, product_set_id)
    _commit(session, 'renumber products')
    session.expire_all()
    return updated


def get_adjacent_product_set_products(
    session: Session,
    product_set_id: int,
    current_position: int,
    window: int = 2
) -> List[ProductSetProduct]:
    """Entries within +/- window of a position, for preloading neighbours' images."""
    return session.query(ProductSetProduct).options(
        selectinload(ProductSetProduct.product).selectinload(Product.images)
    ).filter(
        ProductSetProduct.product_set_id == product_set_id,
        ProductSetProduct.position >= current_position - window,
        ProductSetProduct.position <= current_position + window
    ).order_by(ProductSetProduct.position.asc()).all()


# ---------------------------------------------------------------------------
# Undo support
# ---------------------------------------------------------------------------

def get_product_set_product_for_undo(session: Session, entry_id: int) -> Optional[Dict[str, Any]]:
    """Everything needed to restore an entry after it is removed, or None."""
    entry = session.get(ProductSetProduct, entry_id)
    if entry is None:
        return None
    data = entry.copy_attrs()
    data['product_set_id'] = entry.product_set_id
    return data


def get_current_product_order(session: Session, product_set_id: int) -> List[int]:
    """Entry ids in position order."""
    rows = session.query(ProductSetProduct.id).filter(
        ProductSetProduct.product_set_id == product_set_id
    ).order_by(ProductSetProduct.position.asc()).all()
    return [row[0] for row in rows]


def _shift_for_insertion(session: Session, product_set_id: int, target_position: int) -> None:
    """Move entries at or after target_position down by one, parking them first."""
    rows = session.query(ProductSetProduct.id, ProductSetProduct.position).filter(
        ProductSetProduct.product_set_id == product_set_id,
        ProductSetProduct.position >= target_position
    ).order_by(ProductSetProduct.position.desc()).all()

    for entry_id, position in rows:
        session.query(ProductSetProduct).filter(ProductSetProduct.id == entry_id).update(
            {'position': position + TEMP_POSITION_OFFSET}, synchronize_session=False
        )
    for entry_id, position in rows:
        session.query(ProductSetProduct).filter(ProductSetProduct.id == entry_id).update(
            {'position': position + 1}, synchronize_session=False
        )


def restore_product_to_product_set(session: Session, data: Dict[str, Any]) -> ProductSetProduct:
    """Re-insert a removed entry at its original position, shifting later entries."""
    product_set_id = data['product_set_id']
    product_set = session.get(ProductSet, product_set_id)
    if product_set is None:
        raise NotFoundError('Product set not found.')
    product = session.get(Product, data.get('product_id'))
    if product is None or product.brand_id != product_set.brand_id:
        raise NotFoundError('Product not found for this brand.')

    try:
        _shift_for_insertion(session, product_set_id, int(data['position']))
        entry = ProductSetProduct(
            product_set_id=product_set_id,
            **{field: data.get(field) for field in ProductSetProduct.COPY_FIELDS}
        )
        session.add(entry)
        session.flush()
        _touch_product_set(session, product_set_id)
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"[PRODUCT_SETS] ✗ Restore failed for product_set={product_set_id}: {e}")
        raise BusinessLogicError('Could not restore product.', status_code=409)
    _commit(session, 'restore product')
    session.expire_all()

    rebroadcast_state(session, product_set_id)
    broadcast_product_set_list_change(product_set.brand_id)
    return entry


# ---------------------------------------------------------------------------
# Public sharing
# ---------------------------------------------------------------------------

def _share_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=SHARE_TOKEN_SALT)


def generate_share_token(product_set_id: int) -> str:
    """Signed token granting read access to one product set."""
    return _share_serializer().dumps(product_set_id)


def verify_share_token(token: str) -> int:
    """Return the product set id in a share token, or raise UnauthorizedError."""
    max_age = current_app.config.get('SHARE_TOKEN_MAX_AGE', 90 * 24 * 60 * 60)
    try:
        return int(_share_serializer().loads(token, max_age=max_age))
    except SignatureExpired:
        raise UnauthorizedError('This share link has expired.')
    except (BadSignature, TypeError, ValueError):
        raise UnauthorizedError('Invalid share link.')


def get_product_set_for_public(session: Session, product_set_id: int) -> ProductSet:
    product_set = session.query(ProductSet).options(_entries_loader()).filter(
        ProductSet.id == product_set_id
    ).first()
    if not product_set:
        raise NotFoundError('Product set not found.')
    return product_set
