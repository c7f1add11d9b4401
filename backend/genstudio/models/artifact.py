import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Uuid, Index
from genstudio.database import Base


class Artifact(Base):
    __tablename__ = "ai_results"
    __table_args__ = (Index("ix_ai_results_user_kind_created", "user_id", "kind", "created_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    kind = Column(String(20), nullable=False, default="image")
    model = Column(String(20), nullable=True)  # cheap, strong
    storage_bucket = Column(String(100), nullable=False)
    storage_path = Column(String(500), nullable=False, unique=True)
    mime_type = Column(String(100), nullable=False)
    bytes = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="ready")
    created_at = Column(DateTime, default=datetime.utcnow)
    ready_at = Column(DateTime, nullable=True)
