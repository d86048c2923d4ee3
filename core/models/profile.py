from .base import Base, Column, String, DateTime


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(255), primary_key=True)  # 认证服务的 sub
    role = Column(String(10), nullable=False, default="parent")  # parent/child
    dob = Column(String(10), nullable=True)  # YYYY-MM-DD
    tier = Column(String(10), nullable=False, default="free")  # free/premium/family
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
