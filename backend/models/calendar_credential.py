"""Stored OAuth credentials for the caregiver calendar."""

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func
from backend.database import Base


class CalendarCredential(Base):
    __tablename__ = "calendar_credentials"

    id = Column(Integer, primary_key=True)
    calendar_id = Column(String, unique=True, nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    token_expires_at = Column(DateTime, nullable=False)
    scope = Column(String)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
