from sqlalchemy import Column, Integer, String, DateTime, LargeBinary, UniqueConstraint
from sqlalchemy.sql import func
from ..db import Base


class StoredObject(Base):
    __tablename__ = "storage_objects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bucket = Column(String(100), nullable=False)
    path = Column(String(500), nullable=False)
    content_type = Column(String(100), nullable=True)
    data = Column(LargeBinary, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("bucket", "path", name="uniq_object_path"),
    )
