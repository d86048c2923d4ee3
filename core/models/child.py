from .base import Base, Column, String, Integer, DateTime


class Child(Base):
    __tablename__ = "children"

    id = Column(String(255), primary_key=True)
    parent_id = Column(String(255), index=True, nullable=False)
    name = Column(String(100), nullable=False)
    age = Column(Integer, nullable=False)
    invite_code = Column(String(16), unique=True, index=True, nullable=True)
    profile_id = Column(String(255), index=True, nullable=True)  # 用邀请码绑定的孩子端账号
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
