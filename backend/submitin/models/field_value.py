from sqlalchemy import Column, String, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from submitin.core.database import Base, new_id


class FieldValue(Base):
    __tablename__ = "field_values"

    id = Column(String(32), primary_key=True, default=new_id)
    value = Column(Text, nullable=False)
    response_id = Column(String(32), ForeignKey("responses.id", ondelete="CASCADE"), nullable=False, index=True)
    field_id = Column(String(32), ForeignKey("fields.id", ondelete="CASCADE"), nullable=False, index=True)

    response = relationship("Response", back_populates="field_values")
    field = relationship("Field", back_populates="values")

    __table_args__ = (
        UniqueConstraint("response_id", "field_id", name="uq_response_field"),
    )
