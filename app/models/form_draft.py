from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from app.database import Base


class FormDraft(Base):
    __tablename__ = "form_drafts"

    key = Column(String, primary_key=True)  # e.g. kpi-review-draft-12
    owner_id = Column(Integer, nullable=True, index=True)  # actor who first saved it
    payload = Column(Text, nullable=False)  # JSON document
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
