from sqlalchemy import Column, Integer, String, Float, Text
from app.database import Base


class RatingOption(Base):
    __tablename__ = "rating_options"

    id = Column(Integer, primary_key=True, index=True)
    rating_type = Column(String, index=True, nullable=False)  # quarterly, yearly, qualitative
    rating_value = Column(Float, nullable=True)  # null for qualitative options
    code = Column(String, nullable=True)  # qualitative key: exceeds, meets, needs_improvement
    label = Column(String, nullable=False)
    description = Column(Text, nullable=True)
