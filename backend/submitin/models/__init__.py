# 全モデルをインポート (Alembic autogenerate用)
from submitin.models.user import User
from submitin.models.account import Account
from submitin.models.session import Session
from submitin.models.verification_token import VerificationToken
from submitin.models.form import Form
from submitin.models.field import Field
from submitin.models.response import Response
from submitin.models.field_value import FieldValue
from submitin.models.form_settings import FormSettings

__all__ = [
    "User",
    "Account",
    "Session",
    "VerificationToken",
    "Form",
    "Field",
    "Response",
    "FieldValue",
    "FormSettings",
]
