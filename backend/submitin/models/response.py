from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from submitin.core.database import Base, new_id, utcnow


class Response(Base):
    """フォーム送信1回分"""

    __tablename__ = "responses"

    id = Column(String(32), primary_key=True, default=new_id)
    submitted_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    form_id = Column(String(32), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)

    form = relationship("Form", back_populates="responses")
    field_values = relationship(
        "FieldValue", back_populates="response", cascade="all, delete-orphan", passive_deletes=True
    )
