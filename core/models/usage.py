from .base import Base, Column, String, Integer, Float, DateTime


class Usage(Base):
    __tablename__ = "usage"

    child_id = Column(String(255), primary_key=True)
    date = Column(String(10), primary_key=True)  # YYYY-MM-DD（UTC）
    turns = Column(Integer, nullable=False, default=0)
    stories = Column(Integer, nullable=False, default=0)
    seconds_tts = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
