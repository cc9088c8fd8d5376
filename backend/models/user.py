"""User model definitions."""

import enum

from sqlalchemy import Column, Date, Enum, Integer, String
from backend.database import Base


class UserRole(str, enum.Enum):
    PATIENT = "PATIENT"
    ADMIN = "ADMIN"
    CAREGIVER = "CAREGIVER"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String)
    date_of_birth = Column(Date)
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.PATIENT)
