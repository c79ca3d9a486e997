"""セッション単位のリポジトリ束 (Client)"""
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Sequence

from sqlalchemy.orm import Session

from submitin.core.database import transaction_scope
from submitin.models import (
    Account,
    Field,
    FieldValue,
    Form,
    FormSettings,
    Response,
    Session as SessionModel,
    User,
    VerificationToken,
)
from submitin.repositories.base import Repository
from submitin.schemas import records


class Client:
    """
    1つのDBセッションに束ねたエンティティ別アクセサ。
    client.form.find_unique(...) のように使う。
    """

    def __init__(self, db_session: Session):
        self.db_session = db_session
        self.user: Repository[User] = Repository(db_session, User, records.UserCreate, records.UserUpdate)
        self.account: Repository[Account] = Repository(
            db_session, Account, records.AccountCreate, records.AccountUpdate
        )
        self.session: Repository[SessionModel] = Repository(
            db_session, SessionModel, records.SessionCreate, records.SessionUpdate
        )
        self.verification_token: Repository[VerificationToken] = Repository(
            db_session, VerificationToken, records.VerificationTokenCreate, records.VerificationTokenUpdate
        )
        self.form: Repository[Form] = Repository(db_session, Form, records.FormCreate, records.FormUpdate)
        self.field: Repository[Field] = Repository(db_session, Field, records.FieldCreate, records.FieldUpdate)
        self.response: Repository[Response] = Repository(
            db_session, Response, records.ResponseCreate, records.ResponseUpdate
        )
        self.field_value: Repository[FieldValue] = Repository(
            db_session, FieldValue, records.FieldValueCreate, records.FieldValueUpdate
        )
        self.form_settings: Repository[FormSettings] = Repository(
            db_session, FormSettings, records.FormSettingsCreate, records.FormSettingsUpdate
        )

    @contextmanager
    def transaction(
        self,
        isolation_level: Optional[str] = None,
        timeout: Optional[float] = None,
        max_wait: Optional[float] = None,
    ) -> Iterator["Client"]:
        """このセッション上の対話的トランザクション"""
        with transaction_scope(self.db_session, isolation_level, timeout, max_wait):
            yield self

    def batch(self, operations: Sequence[Callable[["Client"], object]], **options) -> list:
        """操作列を単一トランザクションで実行 (全成功 or 全ロールバック)"""
        with self.transaction(**options):
            return [op(self) for op in operations]


__all__ = ["Client", "Repository"]
