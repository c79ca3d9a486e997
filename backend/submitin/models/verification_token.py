from sqlalchemy import Column, String, DateTime, PrimaryKeyConstraint
from submitin.core.database import Base


class VerificationToken(Base):
    """メールログイン用ワンタイムトークン"""

    __tablename__ = "verification_tokens"

    identifier = Column(String(255), nullable=False, comment="メールアドレス")
    token = Column(String(255), unique=True, nullable=False)
    expires = Column(DateTime, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("identifier", "token", name="pk_verification_token"),
    )
