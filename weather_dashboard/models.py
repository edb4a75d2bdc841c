"""
SQLAlchemy models for the dashboard. One row per signed-in user; preferences live in a JSON document.
"""
from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UserProfileRow(Base):
    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    # {"name", "tempUnit", "windUnit", "defaultLocation", "isAuthenticated"}; JSONB on Postgres
    profile_data: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )
