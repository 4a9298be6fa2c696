"""Product set model - an ordered lineup of products for one live session."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from livestage.database import Base, BigIntPK


class ProductSet(Base):
    """Product set owned by a brand."""

    __tablename__ = 'product_set'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    brand_id = Column(BigInteger, ForeignKey('brand.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(220), nullable=False, unique=True)
    notes = Column(Text, nullable=True)
    notes_image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    brand = relationship('Brand', back_populates='product_sets')
    entries = relationship(
        'ProductSetProduct',
        back_populates='product_set',
        order_by='ProductSetProduct.position',
        cascade='all, delete-orphan',
        passive_deletes=True
    )
    state = relationship(
        'ProductSetState',
        back_populates='product_set',
        uselist=False,
        cascade='all, delete-orphan',
        passive_deletes=True
    )

    def __repr__(self):
        return f"<ProductSet(id={self.id}, slug='{self.slug}', name='{self.name}')>"

    @property
    def product_count(self):
        return len(self.entries)

    def to_dict(self, include_entries=False):
        data = {
            'id': self.id,
            'brand_id': self.brand_id,
            'name': self.name,
            'slug': self.slug,
            'notes': self.notes,
            'notes_image_url': self.notes_image_url,
            'product_count': self.product_count,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_entries:
            data['entries'] = [entry.to_dict() for entry in self.entries]
        return data
