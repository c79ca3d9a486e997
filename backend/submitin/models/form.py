from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from submitin.core.database import Base, new_id, utcnow


class Form(Base):
    __tablename__ = "forms"

    id = Column(String(32), primary_key=True, default=new_id)
    slug = Column(String(255), unique=True, nullable=False, index=True, comment="公開URL用")
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    published = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    user = relationship("User", back_populates="forms")
    fields = relationship(
        "Field",
        back_populates="form",
        order_by="Field.order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    responses = relationship(
        "Response",
        back_populates="form",
        order_by="Response.submitted_at.desc()",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    settings = relationship(
        "FormSettings",
        back_populates="form",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
