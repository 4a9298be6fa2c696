"""Product model."""
from sqlalchemy import Column, BigInteger, String, Text, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from livestage.database import Base, BigIntPK


class Product(Base):
    """Catalog product. Synced from the brand's store; the live core only reads it."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('original_price_cents > 0', name='ck_product_original_price_positive'),
        CheckConstraint('sale_price_cents IS NULL OR sale_price_cents > 0', name='ck_product_sale_price_positive'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    brand_id = Column(BigInteger, ForeignKey('brand.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    talking_points_md = Column(Text, nullable=True)
    original_price_cents = Column(Integer, nullable=False)
    sale_price_cents = Column(Integer, nullable=True)
    pid = Column(String, nullable=True, unique=True)  # External store id
    sku = Column(String, nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    brand = relationship('Brand', back_populates='products')
    images = relationship(
        'ProductImage',
        back_populates='product',
        order_by='ProductImage.position',
        cascade='all, delete-orphan'
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"

    @property
    def archived(self):
        return self.archived_at is not None

    @property
    def image_count(self):
        return len(self.images)
