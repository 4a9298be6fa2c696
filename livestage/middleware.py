"""Middleware for brand context."""
from functools import wraps
from flask import g, current_app
from livestage.database import db_session
from livestage.models import Brand
from livestage.exceptions import NotFoundError


def pull_brand_slug(endpoint, values):
    """
    URL value preprocessor: take <brand_slug> out of the view arguments so
    brand-scoped views receive the resolved brand through g instead.
    """
    g.brand_slug = values.pop('brand_slug', None) if values else None


def add_brand_slug(endpoint, values):
    """URL defaults: url_for() inside a brand-scoped request keeps the brand."""
    brand_slug = g.get('brand_slug')
    if brand_slug and 'brand_slug' not in values and current_app.url_map.is_endpoint_expecting(endpoint, 'brand_slug'):
        values['brand_slug'] = brand_slug


def load_brand():
    """
    Load the brand named in the URL into g (Flask's per-request global).

    Sets g.brand and g.brand_id for brand-scoped routes; both stay None elsewhere.
    """
    g.brand = None
    g.brand_id = None

    brand_slug = g.get('brand_slug')
    if not brand_slug:
        return

    brand = db_session.query(Brand).filter_by(slug=brand_slug).first()
    if brand is None:
        current_app.logger.info(f"[BRAND] Unknown brand slug '{brand_slug}'")
        raise NotFoundError('Brand not found.')

    g.brand = brand
    g.brand_id = brand.id


def require_brand(f):
    """
    Decorator: Require a resolved brand.

    Views decorated with this always run with g.brand_id set.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('brand_id') is None:
            raise NotFoundError('Brand not found.')
        return f(*args, **kwargs)
    return decorated_function


def init_brand_context(app):
    app.url_value_preprocessor(pull_brand_slug)
    app.url_defaults(add_brand_slug)
    app.before_request(load_brand)
