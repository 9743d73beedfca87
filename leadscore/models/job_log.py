"""
ScoringJobLog model — one row per scoring job execution (cron or manual).
"""
import uuid

from sqlalchemy import Column, Integer, Text, DateTime, JSON, Index
from sqlalchemy.sql import func

from leadscore.database import Base


class ScoringJobLog(Base):
    __tablename__ = 'scoring_job_logs'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    job_name = Column(Text, nullable=False)         # full_recompute / fleet_sync / ...
    trigger = Column(Text, default='manual')        # manual / cron
    status = Column(Text, nullable=False, default='started')   # started / success / failure
    client_id = Column(Text, nullable=True)
    details = Column(JSON, default=dict)
    processed_count = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('ix_scoring_job_logs_job_name_started_at', 'job_name', 'started_at'),
    )
