"""Brand model - the tenant that owns products, product sets and presets."""
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from livestage.database import Base, BigIntPK


class Brand(Base):
    """Brand model - each brand runs its own live sessions."""

    __tablename__ = 'brand'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, unique=True)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier
    notes = Column(Text, nullable=True)
    primary_domain = Column(String(255), nullable=True, unique=True)
    logo_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    products = relationship('Product', back_populates='brand', cascade='all, delete-orphan')
    product_sets = relationship('ProductSet', back_populates='brand', cascade='all, delete-orphan')
    message_presets = relationship('MessagePreset', back_populates='brand', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Brand(id={self.id}, slug='{self.slug}', name='{self.name}')>"
