"""
ConversionRate model — one aggregate row per (client_id, key_field, key_name).
"""
from sqlalchemy import Column, Integer, Float, Text, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from leadscore.database import Base


class ConversionRate(Base):
    __tablename__ = 'conversion_rates'
    __table_args__ = (
        UniqueConstraint('client_id', 'key_field', 'key_name', name='uq_conversion_rate_key'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Text, nullable=False)
    key_field = Column(Text, nullable=False)       # service / ad_set_name / ad_name / lead_date / zip
    key_name = Column(Text, nullable=False)        # the value; month name for lead_date
    conversion_rate = Column(Float, nullable=False, default=0.0)
    past_total_count = Column(Integer, nullable=False, default=0)   # decided leads
    past_total_est = Column(Integer, nullable=False, default=0)     # positive leads
    last_batch_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
