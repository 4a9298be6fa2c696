"""Product set entry model - a product's slot within a product set."""
from sqlalchemy import (
    Column, BigInteger, String, Text, Integer, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from livestage.database import Base, BigIntPK


class ProductSetProduct(Base):
    """
    A product featured in a product set at a 1-based position, with optional
    per-set overrides of name, talking points and prices.
    """

    __tablename__ = 'product_set_product'
    __table_args__ = (
        UniqueConstraint('product_set_id', 'position', name='uq_product_set_product_position'),
        UniqueConstraint('product_set_id', 'product_id', name='uq_product_set_product_product'),
        CheckConstraint('position > 0', name='ck_product_set_product_position_positive'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_set_id = Column(BigInteger, ForeignKey('product_set.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False)
    position = Column(Integer, nullable=False)
    section = Column(String(120), nullable=True)
    featured_name = Column(String, nullable=True)
    featured_talking_points_md = Column(Text, nullable=True)
    featured_original_price_cents = Column(Integer, nullable=True)
    featured_sale_price_cents = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    product_set = relationship('ProductSet', back_populates='entries')
    product = relationship('Product')

    # Columns copied when an entry is duplicated or restored
    COPY_FIELDS = (
        'product_id', 'position', 'section', 'featured_name', 'featured_talking_points_md',
        'featured_original_price_cents', 'featured_sale_price_cents', 'notes',
    )

    def __repr__(self):
        return f"<ProductSetProduct(id={self.id}, product_set_id={self.product_set_id}, position={self.position})>"

    @property
    def effective_name(self):
        """Featured override or the catalog name."""
        if self.featured_name is not None:
            return self.featured_name
        return self.product.name if self.product else None

    @property
    def effective_talking_points(self):
        if self.featured_talking_points_md is not None:
            return self.featured_talking_points_md
        return self.product.talking_points_md if self.product else None

    @property
    def effective_prices(self):
        """Featured price overrides, falling back to the product's prices."""
        product = self.product
        return {
            'original': self.featured_original_price_cents
            if self.featured_original_price_cents is not None
            else (product.original_price_cents if product else None),
            'sale': self.featured_sale_price_cents
            if self.featured_sale_price_cents is not None
            else (product.sale_price_cents if product else None),
        }

    @property
    def images(self):
        return self.product.images if self.product else []

    def copy_attrs(self):
        return {field: getattr(self, field) for field in self.COPY_FIELDS}

    def to_dict(self):
        return {
            'id': self.id,
            'product_set_id': self.product_set_id,
            'product_id': self.product_id,
            'position': self.position,
            'section': self.section,
            'name': self.effective_name,
            'talking_points_md': self.effective_talking_points,
            'prices': self.effective_prices,
            'notes': self.notes,
            'images': [image.to_dict() for image in self.images],
            'image_count': len(self.images),
        }
