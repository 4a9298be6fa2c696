"""Message preset model - reusable canned host messages."""
from sqlalchemy import Column, BigInteger, String, Text, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from livestage.database import Base, BigIntPK


class MessagePreset(Base):
    """Brand-scoped preset (text + colour) that can be sent to the host in one tap."""

    __tablename__ = 'message_preset'
    __table_args__ = (
        CheckConstraint('position >= 0', name='ck_message_preset_position'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    brand_id = Column(BigInteger, ForeignKey('brand.id', ondelete='CASCADE'), nullable=False, index=True)
    message_text = Column(Text, nullable=False)
    color = Column(String(16), nullable=False)
    position = Column(Integer, nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    brand = relationship('Brand', back_populates='message_presets')

    def __repr__(self):
        return f"<MessagePreset(id={self.id}, color='{self.color}', position={self.position})>"

    def to_dict(self):
        return {
            'id': self.id,
            'message_text': self.message_text,
            'color': self.color,
            'position': self.position,
        }
