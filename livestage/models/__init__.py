"""Models package - exports all SQLAlchemy models."""
# Catalog
from livestage.models.brand import Brand
from livestage.models.product import Product
from livestage.models.product_image import ProductImage

# Product sets and live state
from livestage.models.message_color import MessageColor, DEFAULT_MESSAGE_COLOR
from livestage.models.product_set import ProductSet
from livestage.models.product_set_product import ProductSetProduct
from livestage.models.product_set_state import ProductSetState
from livestage.models.message_preset import MessagePreset

__all__ = [
    'Brand', 'Product', 'ProductImage',
    'MessageColor', 'DEFAULT_MESSAGE_COLOR',
    'ProductSet', 'ProductSetProduct', 'ProductSetState', 'MessagePreset',
]
