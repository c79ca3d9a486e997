from sqlalchemy import Boolean, Column, String, JSON, ForeignKey
from sqlalchemy.orm import relationship
from submitin.core.database import Base, new_id


class FormSettings(Base):
    __tablename__ = "form_settings"

    id = Column(String(32), primary_key=True, default=new_id)
    notify_email = Column(String(255), nullable=True, comment="通知先メール (主)")
    notify_emails = Column(JSON, nullable=True, comment="追加の通知先メール一覧")
    webhook_url = Column(String(2048), nullable=True)
    captcha_enabled = Column(Boolean, nullable=False, default=False)
    captcha_provider = Column(String(32), nullable=True, comment="turnstile / hcaptcha")
    captcha_secret_key = Column(String(255), nullable=True)
    form_id = Column(String(32), ForeignKey("forms.id", ondelete="CASCADE"), unique=True, nullable=False)

    form = relationship("Form", back_populates="settings")
