from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, Index
from sqlalchemy.sql import func
from ..db import Base


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state = Column(String(100), nullable=False)
    district = Column(String(100), nullable=False)
    sub_location = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("state", "district", "sub_location", name="uniq_location_triple"),
        Index("ix_locations_state_district", "state", "district"),
    )
