"""
ClientSettings model — per-client integration credentials.
"""
from sqlalchemy import Column, Text, DateTime
from sqlalchemy.sql import func

from leadscore.database import Base


class ClientSettings(Base):
    __tablename__ = 'client_settings'

    client_id = Column(Text, primary_key=True)
    fb_pixel_id = Column(Text, nullable=True)
    fb_pixel_token = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
