import secrets
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional, Sequence

from sqlalchemy import create_engine, event, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.pool import QueuePool, StaticPool

from submitin.core.config import settings
from submitin.core.errors import TransactionAbortedError, ValidationError
from submitin.core.logging import get_logger

logger = get_logger(__name__)

# Session.info のキー
TX_DEPTH = "submitin.tx_depth"
TX_DEADLINE = "submitin.tx_deadline"

ISOLATION_LEVELS = {
    "ReadUncommitted": "READ UNCOMMITTED",
    "ReadCommitted": "READ COMMITTED",
    "RepeatableRead": "REPEATABLE READ",
    "Serializable": "SERIALIZABLE",
}

# 接続取得の待ち時間 (秒)。transaction_scope が呼び出し単位で上書きする
_checkout_wait: ContextVar[Optional[float]] = ContextVar("submitin_checkout_wait", default=None)


class WaitBoundedQueuePool(QueuePool):
    """接続取得の待ち時間を呼び出し単位で上書きできるQueuePool"""

    @property
    def _timeout(self) -> float:
        wait = _checkout_wait.get()
        return self._default_timeout if wait is None else wait

    @_timeout.setter
    def _timeout(self, value: float) -> None:
        self._default_timeout = value


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """UTC現在時刻 (naive)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    """文字列主キーを生成 (時刻プレフィックス付きで概ね単調増加)"""
    return f"c{int(time.time() * 1000):x}{secrets.token_hex(6)}"


def _install_sqlite_hooks(engine) -> None:
    """pysqlite の暗黙BEGINを無効化し、SAVEPOINTと外部キーを有効にする"""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url in ("sqlite://", "sqlite:///"))


def check_deadline(session: Session) -> None:
    """トランザクションのタイムアウト超過を検査"""
    deadline = session.info.get(TX_DEADLINE)
    if deadline is not None and time.monotonic() > deadline:
        raise TransactionAbortedError("トランザクションがタイムアウトしました", reason="timeout")


def in_transaction(session: Session) -> bool:
    return bool(session.info.get(TX_DEPTH))


@contextmanager
def transaction_scope(
    session: Session,
    isolation_level: Optional[str] = None,
    timeout: Optional[float] = None,
    max_wait: Optional[float] = None,
) -> Iterator[Session]:
    """
    セッション上で明示トランザクションを実行。
    成功時コミット、例外時は全体をロールバックして再送出する。
    既に明示トランザクション内ならSAVEPOINTとして入れ子にする。
    """
    depth = session.info.get(TX_DEPTH, 0)
    if depth:
        if isolation_level:
            raise ValidationError.single("isolation_level", "入れ子トランザクションでは分離レベルを指定できません")
        session.info[TX_DEPTH] = depth + 1
        try:
            with session.begin_nested():
                yield session
            check_deadline(session)
        finally:
            session.info[TX_DEPTH] = depth
        return

    level = None
    if isolation_level is not None:
        level = ISOLATION_LEVELS.get(isolation_level)
        if level is None:
            raise ValidationError.single(
                "isolation_level", f"未対応の分離レベルです: {isolation_level}"
            )

    # 読み取りで自動開始された既存トランザクションを閉じてから開始する
    if session.in_transaction():
        session.commit()

    timeout = settings.TRANSACTION_TIMEOUT_SECONDS if timeout is None else timeout
    max_wait = settings.TRANSACTION_MAX_WAIT_SECONDS if max_wait is None else max_wait

    started = time.monotonic()
    wait_token = _checkout_wait.set(max_wait)
    try:
        # SQLiteは常にSERIALIZABLE
        if level and session.get_bind().dialect.name != "sqlite":
            session.connection(execution_options={"isolation_level": level})
        else:
            session.connection()
    except sa_exc.TimeoutError as e:
        raise TransactionAbortedError("DB接続の取得がタイムアウトしました", reason="max_wait") from e
    finally:
        _checkout_wait.reset(wait_token)
    if time.monotonic() - started > max_wait:
        session.rollback()
        raise TransactionAbortedError("DB接続の取得がタイムアウトしました", reason="max_wait")

    session.info[TX_DEPTH] = 1
    session.info[TX_DEADLINE] = started + timeout
    try:
        yield session
        check_deadline(session)
        session.commit()
    except sa_exc.DBAPIError as e:
        session.rollback()
        logger.warning(f"トランザクション失敗: {e.__class__.__name__}")
        raise TransactionAbortedError(f"トランザクションが中断されました: {e.orig}", reason="database") from e
    except BaseException:
        session.rollback()
        raise
    finally:
        session.info.pop(TX_DEPTH, None)
        session.info.pop(TX_DEADLINE, None)


class Database:
    """
    DB接続ハンドル。
    connect/disconnect で明示的にライフサイクルを管理し、
    session()/transaction() でスコープ付きのセッションを払い出す。
    """

    def __init__(self, url: str, **engine_options):
        self.url = url
        self._engine_options = engine_options
        self.engine = None
        self.session_factory: Optional[sessionmaker] = None

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def connect(self) -> "Database":
        if self.engine is not None:
            return self
        options = dict(self._engine_options)
        if self.url.startswith("sqlite"):
            options.setdefault("connect_args", {"check_same_thread": False})
        if _is_memory_sqlite(self.url):
            options.setdefault("poolclass", StaticPool)
        else:
            options.setdefault("poolclass", WaitBoundedQueuePool)
        if issubclass(options["poolclass"], QueuePool):
            options.setdefault("pool_timeout", settings.TRANSACTION_MAX_WAIT_SECONDS)
            if not self.url.startswith("sqlite"):
                options.setdefault("pool_size", settings.DB_POOL_SIZE)
                options.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
                options.setdefault("pool_recycle", 3600)
                options.setdefault("pool_pre_ping", True)
        options.setdefault("echo", settings.DEBUG)

        self.engine = create_engine(self.url, **options)
        if self.engine.dialect.name == "sqlite":
            _install_sqlite_hooks(self.engine)
        self.session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )
        logger.info(f"DB接続: dialect={self.engine.dialect.name}")
        return self

    def disconnect(self) -> None:
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        self.session_factory = None
        logger.info("DB切断")

    def __enter__(self) -> "Database":
        return self.connect()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def _require_connected(self) -> sessionmaker:
        if self.session_factory is None:
            self.connect()
        return self.session_factory

    def create_all(self) -> None:
        """全テーブル作成 (テスト・開発用。本番はAlembic)"""
        import submitin.models  # noqa: F401

        self._require_connected()
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        import submitin.models  # noqa: F401

        self._require_connected()
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """スコープ付きセッション。終了時に必ずclose"""
        db = self._require_connected()()
        try:
            yield db
        finally:
            db.close()

    def client(self, db: Session):
        from submitin.repositories import Client

        return Client(db)

    @contextmanager
    def transaction(
        self,
        isolation_level: Optional[str] = None,
        timeout: Optional[float] = None,
        max_wait: Optional[float] = None,
    ):
        """新しいセッションで対話的トランザクションを実行し、Clientを渡す"""
        with self.session() as db:
            with transaction_scope(db, isolation_level, timeout, max_wait):
                yield self.client(db)

    def batch(self, operations: Sequence[Callable], **options) -> list:
        """操作列を単一トランザクションで順に実行 (全成功 or 全ロールバック)"""
        with self.transaction(**options) as client:
            return [op(client) for op in operations]

    def check_connection(self) -> bool:
        """DB接続チェック"""
        try:
            with self._require_connected()() as db:
                db.execute(text("SELECT 1"))
            return True
        except Exception:
            return False


database = Database(settings.DATABASE_URL)


def get_db():
    """FastAPI依存関数: DBセッション取得"""
    with database.session() as db:
        yield db


def check_db_connection() -> bool:
    """DB接続チェック"""
    return database.check_connection()
