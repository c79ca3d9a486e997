from sqlalchemy import Column, Integer, String, Boolean, JSON, ForeignKey
from sqlalchemy.orm import relationship
from submitin.core.database import Base, new_id

FIELD_TYPES = ("text", "textarea", "email", "number", "date", "select", "checkbox", "radio")


class Field(Base):
    __tablename__ = "fields"

    id = Column(String(32), primary_key=True, default=new_id)
    type = Column(String(50), nullable=False, comment="text/textarea/email/number/date/select/checkbox/radio")
    label = Column(String(255), nullable=False)
    placeholder = Column(String(255), nullable=True)
    required = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, comment="フォーム内の表示順")
    options = Column(JSON, nullable=True, comment="選択肢など (形式は任意)")
    form_id = Column(String(32), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)

    form = relationship("Form", back_populates="fields")
    values = relationship("FieldValue", back_populates="field", cascade="all, delete-orphan", passive_deletes=True)
