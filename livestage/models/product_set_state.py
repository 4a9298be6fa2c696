"""Live state of a product set - what is on screen right now."""
from sqlalchemy import Column, BigInteger, String, Text, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from livestage.database import Base, BigIntPK
from livestage.models.message_color import MessageColor


class ProductSetState(Base):
    """
    Exactly one mutable row per product set.

    Holds the entry currently live, the image shown for it and the latest
    host message. Every connected controller/host view converges to this row.
    `version` is bumped on every write and doubles as the optimistic lock.
    """

    __tablename__ = 'product_set_state'
    __table_args__ = (
        CheckConstraint('current_image_index >= 0', name='ck_product_set_state_image_index'),
        CheckConstraint(
            "current_host_message_color IS NULL OR current_host_message_color IN ({})".format(
                ', '.join(f"'{color}'" for color in MessageColor.values())
            ),
            name='ck_product_set_state_message_color'
        ),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_set_id = Column(
        BigInteger, ForeignKey('product_set.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    # Lookup key, not ownership: deleting the entry nulls the pointer
    current_product_set_product_id = Column(
        BigInteger, ForeignKey('product_set_product.id', ondelete='SET NULL'), nullable=True
    )
    current_image_index = Column(Integer, nullable=False, default=0, server_default='0')
    current_host_message_text = Column(Text, nullable=True)
    current_host_message_id = Column(String(64), nullable=True)
    current_host_message_timestamp = Column(DateTime(timezone=True), nullable=True)
    current_host_message_color = Column(String(16), nullable=True)
    version = Column(Integer, nullable=False, default=1, server_default='1')
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {'version_id_col': version}

    # Relationships
    product_set = relationship('ProductSet', back_populates='state')
    current_entry = relationship('ProductSetProduct', foreign_keys=[current_product_set_product_id])

    def __repr__(self):
        return (
            f"<ProductSetState(product_set_id={self.product_set_id}, "
            f"entry={self.current_product_set_product_id}, image={self.current_image_index}, "
            f"version={self.version})>"
        )

    @property
    def has_host_message(self):
        return self.current_host_message_text is not None
