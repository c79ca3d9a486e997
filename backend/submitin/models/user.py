from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from submitin.core.database import Base, new_id, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    email_verified = Column(DateTime, nullable=True, comment="メール認証日時")
    name = Column(String(255), nullable=True)
    image = Column(String(1024), nullable=True)
    password = Column(String(255), nullable=True, comment="bcryptハッシュ (パスワードログイン時のみ)")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    forms = relationship("Form", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
