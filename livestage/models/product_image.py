"""Product image model."""
from sqlalchemy import Column, BigInteger, String, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from livestage.database import Base, BigIntPK


class ProductImage(Base):
    """An image of a product. Images are shown in `position` order."""

    __tablename__ = 'product_image'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0, server_default='0')
    path = Column(String(500), nullable=False)
    thumbnail_path = Column(String(500), nullable=True)
    alt_text = Column(String(255), nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False, server_default='false')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    product = relationship('Product', back_populates='images')

    def __repr__(self):
        return f"<ProductImage(id={self.id}, product_id={self.product_id}, position={self.position})>"

    def to_dict(self):
        return {
            'id': self.id,
            'position': self.position,
            'path': self.path,
            'thumbnail_path': self.thumbnail_path or self.path,
            'alt_text': self.alt_text,
        }
