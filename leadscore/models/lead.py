"""
Lead model — one row per marketing inquiry, partitioned by client_id.

Leads are soft-deleted only (is_deleted). conversion_rates holds the snapshot
written by the last scoring run; rate_batch_id marks the aggregation batch that
counted this lead into the client's conversion rates (NULL = not yet counted).
"""
import uuid

from sqlalchemy import Column, Integer, Float, Text, Boolean, DateTime, JSON, Index
from sqlalchemy.sql import func

from leadscore.database import Base


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(Text, nullable=False)
    name = Column(Text, default='')
    email = Column(Text, default='')
    phone = Column(Text, default='')
    service = Column(Text, default='')
    ad_set_name = Column(Text, default='')
    ad_name = Column(Text, default='')
    zip = Column(Text, default='')
    lead_date = Column(Text, nullable=True)              # ISO date string as ingested
    status = Column(Text, nullable=False, default='new')
    unqualified_lead_reason = Column(Text, default='')
    proposal_amount = Column(Float, default=0.0)
    job_booked_amount = Column(Float, default=0.0)
    lead_score = Column(Integer, default=0)              # 0-100
    conversion_rates = Column(JSON, default=dict)        # {service: 0.75, zip: 0.5, ...}
    status_history = Column(JSON, default=list)          # [{status, timestamp}], unique by status
    rate_batch_id = Column(Text, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    last_manual_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_leads_client_id_is_deleted', 'client_id', 'is_deleted'),
        Index('ix_leads_client_id_rate_batch_id', 'client_id', 'rate_batch_id'),
    )
