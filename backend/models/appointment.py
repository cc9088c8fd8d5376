"""Appointment model definitions."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String, text
from sqlalchemy.sql import func
from backend.database import Base


class AppointmentStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"


class Appointment(Base):
    """Ledger row recording a booking against a caregiver calendar event.

    Rows are created at booking time and only ever move BOOKED -> CANCELLED.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_patient_start", "patient_id", "start_time"),
        Index(
            "uq_appointments_booked_event",
            "google_event_id",
            unique=True,
            sqlite_where=text("status = 'BOOKED'"),
            postgresql_where=text("status = 'BOOKED'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(
        Enum(AppointmentStatus, name="appointment_status"),
        nullable=False,
        default=AppointmentStatus.AVAILABLE,
    )
    google_event_id = Column(String)
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime, nullable=False, server_default=func.now())
