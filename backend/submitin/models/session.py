from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from submitin.core.database import Base, new_id


class Session(Base):
    """ログインセッション (Cookieのsession_tokenで参照)"""

    __tablename__ = "sessions"

    id = Column(String(32), primary_key=True, default=new_id)
    session_token = Column(String(255), unique=True, nullable=False)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="sessions")
