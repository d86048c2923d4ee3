from .base import Base, Column, String, Integer, DateTime, JSON


class ChildSettings(Base):
    __tablename__ = "settings"

    child_id = Column(String(255), primary_key=True)
    daily_turn_cap = Column(Integer, nullable=False, default=20)
    bedtime_start = Column(String(5), nullable=False, default="20:00")  # HH:MM
    bedtime_end = Column(String(5), nullable=False, default="07:00")  # HH:MM
    subjects = Column(JSON)  # 允许的科目列表
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
