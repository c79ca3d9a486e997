"""
汎用リポジトリ: エンティティごとのCRUD・集計アクセサ。
SQL生成・接続管理はSQLAlchemyに委譲し、ここでは
  - where/order_by/include 辞書の解釈
  - 書き込み前の入力検証
  - DB例外の分類 (NotFound / ConstraintViolation / TransactionAborted)
だけを行う。明示トランザクション外では各書き込みを即コミットする。
"""
import logging
import re
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Generic, Iterator, Optional, Type, TypeVar, Union

import pydantic
from sqlalchemy import and_, delete, false, func, insert, literal, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.inspection import inspect as sa_inspect
from sqlalchemy.orm import Session

from submitin.core.database import Base, check_deadline, in_transaction
from submitin.core.errors import (
    ConstraintViolationError,
    NotFoundError,
    TransactionAbortedError,
    ValidationError,
)
from submitin.core.logging import get_logger, log_event
from submitin.repositories.filters import (
    OrderBy,
    build_include,
    build_order_by,
    build_where,
    expand_unique_where,
)

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

_SQLITE_TARGET = re.compile(r"constraint failed: (.+)$")
_PG_KEY = re.compile(r"Key \(([^)]+)\)")
_MYSQL_KEY = re.compile(r"for key '(?:[^.']+\.)?([^']+)'")

SERIALIZATION_STATES = ("40001", "40P01")
MYSQL_CONFLICT_CODES = (1205, 1213)


def _sqlstate(orig) -> Optional[str]:
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_integrity_error(exc: IntegrityError, model: str) -> ConstraintViolationError:
    """IntegrityError を制約種別と対象列に分類"""
    orig = exc.orig
    message = str(orig)
    state = _sqlstate(orig)
    mysql_code = orig.args[0] if getattr(orig, "args", None) and isinstance(orig.args[0], int) else None
    lowered = message.lower()

    if state == "23505" or mysql_code == 1062 or "unique constraint" in lowered:
        kind = "unique"
    elif state == "23503" or mysql_code in (1451, 1452) or "foreign key" in lowered:
        kind = "foreign_key"
    elif state == "23502" or mysql_code == 1048 or "not null" in lowered:
        kind = "not_null"
    else:
        kind = "unknown"

    target: list[str] = []
    m = _SQLITE_TARGET.search(message)
    if m:
        target = [part.strip().split(".")[-1] for part in m.group(1).split(",")]
    elif _PG_KEY.search(message):
        target = [c.strip() for c in _PG_KEY.search(message).group(1).split(",")]
    elif _MYSQL_KEY.search(message):
        target = [_MYSQL_KEY.search(message).group(1)]
    elif getattr(getattr(orig, "diag", None), "column_name", None):
        target = [orig.diag.column_name]

    log_event(logger, logging.WARNING, "制約違反", model=model, kind=kind, target=target)
    return ConstraintViolationError(model, kind, target)


def is_conflict_error(exc: DBAPIError) -> bool:
    """シリアライズ失敗・デッドロック・ロック待ちか"""
    orig = exc.orig
    if _sqlstate(orig) in SERIALIZATION_STATES:
        return True
    args = getattr(orig, "args", None)
    if args and isinstance(args[0], int) and args[0] in MYSQL_CONFLICT_CODES:
        return True
    return "database is locked" in str(orig).lower()


class Repository(Generic[ModelT]):
    """1エンティティ分のアクセサ"""

    def __init__(
        self,
        session: Session,
        model: Type[ModelT],
        create_schema: Optional[Type[pydantic.BaseModel]] = None,
        update_schema: Optional[Type[pydantic.BaseModel]] = None,
    ):
        self.session = session
        self.model = model
        self.create_schema = create_schema
        self.update_schema = update_schema
        self.name = model.__name__

    # --- 内部ヘルパー ---
    def _validate(self, schema, data: dict) -> dict:
        if not isinstance(data, dict):
            raise ValidationError.single("data", "辞書で指定してください", model=self.name)
        if schema is None:
            columns = sa_inspect(self.model).columns
            unknown = [k for k in data if k not in columns]
            if unknown:
                raise ValidationError(
                    [{"field": k, "message": "存在しない項目です"} for k in unknown], model=self.name
                )
            return dict(data)
        try:
            validated = schema.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(
                [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ],
                model=self.name,
            ) from e
        return validated.model_dump(exclude_unset=True)

    @contextmanager
    def _write(self) -> Iterator[None]:
        """書き込みをSAVEPOINTで囲み、DB例外を分類する"""
        check_deadline(self.session)
        try:
            with self.session.begin_nested():
                yield
        except IntegrityError as e:
            raise translate_integrity_error(e, self.name) from e
        except DBAPIError as e:
            if is_conflict_error(e):
                raise TransactionAbortedError(f"{self.name}: 同時実行の競合が発生しました", reason="conflict") from e
            raise
        self._finish()

    def _finish(self) -> None:
        if not in_transaction(self.session):
            self.session.commit()

    def _unique_select(self, where: dict, include: Optional[dict] = None):
        flat = expand_unique_where(self.model, where)
        return (
            select(self.model)
            .where(*build_where(self.model, flat))
            .options(*build_include(self.model, include))
        )

    def _get_unique(self, where: dict, include: Optional[dict] = None) -> Optional[ModelT]:
        check_deadline(self.session)
        stmt = self._unique_select(where, include)
        if include:
            stmt = stmt.execution_options(populate_existing=True)
        return self.session.execute(stmt).scalars().first()

    def _pk_columns(self) -> list:
        return [getattr(self.model, c.key) for c in self.model.__table__.primary_key.columns]

    def _reload(self, row: ModelT, include: Optional[dict]) -> ModelT:
        if not include:
            return row
        pk = {c.key: getattr(row, c.key) for c in self._pk_columns()}
        return self._get_unique(pk, include)

    def _apply(self, row: ModelT, data: dict) -> None:
        for key, value in data.items():
            setattr(row, key, value)

    def _nulls_low(self) -> bool:
        """NULLを最小値として並べる方言か (SQLite/MySQLは最小、PostgreSQL/Oracleは最大)"""
        return self.session.get_bind().dialect.name not in ("postgresql", "oracle")

    @staticmethod
    def _same(column, value):
        return column.is_(None) if value is None else column == literal(value, column.type)

    def _after(self, column, value, desc: bool):
        """並び順でvalueより後ろに来る行の条件"""
        nulls_first = self._nulls_low() != desc
        if value is None:
            return column.is_not(None) if nulls_first else false()
        bound = literal(value, column.type)
        after = column < bound if desc else column > bound
        return after if nulls_first else or_(after, column.is_(None))

    def _cursor_clause(self, row, orderings: list):
        """カーソル行を含み、それ以降の行に絞り込む条件"""
        values = [getattr(row, c.key) for c, _ in orderings]
        clauses = []
        for i, (column, desc) in enumerate(orderings):
            prefix = [self._same(c, v) for (c, _), v in zip(orderings[:i], values)]
            clauses.append(and_(*prefix, self._after(column, values[i], desc)))
        clauses.append(and_(*[self._same(c, v) for (c, _), v in zip(orderings, values)]))
        return or_(*clauses)

    def _select_many(
        self,
        where: Optional[dict],
        order_by: OrderBy,
        cursor: Optional[dict],
        take: Optional[int],
        include: Optional[dict],
    ):
        orderings = build_order_by(self.model, order_by)
        ordered = {c.key for c, _ in orderings}
        orderings += [(c, False) for c in self._pk_columns() if c.key not in ordered]
        if take is not None and take < 0:
            orderings = [(c, not desc) for c, desc in orderings]

        stmt = select(self.model).where(*build_where(self.model, where))
        if cursor:
            anchor = self.session.execute(self._unique_select(cursor)).scalars().first()
            if anchor is None:
                return None
            stmt = stmt.where(self._cursor_clause(anchor, orderings))
        stmt = stmt.order_by(*[c.desc() if desc else c.asc() for c, desc in orderings])
        if include:
            stmt = stmt.execution_options(populate_existing=True)
        return stmt.options(*build_include(self.model, include))

    def _numeric(self, fields: list[str]) -> None:
        for name in fields:
            column = sa_inspect(self.model).columns.get(name)
            if column is None:
                raise ValidationError.single(name, "存在しない項目です", model=self.name)
            try:
                python_type = column.type.python_type
            except NotImplementedError:
                python_type = None
            if python_type not in (int, float, Decimal):
                raise ValidationError.single(name, "数値項目ではありません", model=self.name)

    def _column(self, name: str):
        if name not in sa_inspect(self.model).columns:
            raise ValidationError.single(name, "存在しない項目です", model=self.name)
        return getattr(self.model, name)

    def _aggregate_columns(self, count, min_fields, max_fields, avg_fields, sum_fields) -> list:
        self._numeric(avg_fields + sum_fields)
        columns = []
        if count is True:
            columns.append(func.count().label("_count"))
        elif count:
            columns += [func.count(self._column(f)).label(f"_count__{f}") for f in count]
        for prefix, fn, fields in (
            ("_min", func.min, min_fields),
            ("_max", func.max, max_fields),
            ("_avg", func.avg, avg_fields),
            ("_sum", func.sum, sum_fields),
        ):
            columns += [fn(self._column(f)).label(f"{prefix}__{f}") for f in fields]
        return columns

    @staticmethod
    def _nest(mapping) -> dict:
        """'_min__order' 形式のキーを {'_min': {'order': ...}} に畳む"""
        result: dict[str, Any] = {}
        for key, value in mapping.items():
            if "__" in key:
                group, name = key.split("__", 1)
                result.setdefault(group, {})[name] = value
            else:
                result[key] = value
        return result

    # --- 読み取り ---
    def find_unique(self, where: dict, include: Optional[dict] = None) -> Optional[ModelT]:
        return self._get_unique(where, include)

    def find_unique_or_throw(self, where: dict, include: Optional[dict] = None) -> ModelT:
        row = self._get_unique(where, include)
        if row is None:
            raise NotFoundError(self.name, where)
        return row

    def find_many(
        self,
        where: Optional[dict] = None,
        order_by: OrderBy = None,
        cursor: Optional[dict] = None,
        take: Optional[int] = None,
        skip: Optional[int] = None,
        distinct: Optional[list[str]] = None,
        include: Optional[dict] = None,
    ) -> list[ModelT]:
        check_deadline(self.session)
        if skip is not None and skip < 0:
            raise ValidationError.single("skip", "0以上を指定してください", model=self.name)
        stmt = self._select_many(where, order_by, cursor, take, include)
        if stmt is None:
            return []
        limit = abs(take) if take is not None else None

        if distinct:
            for name in distinct:
                self._column(name)
            rows, seen = [], set()
            for row in self.session.execute(stmt).scalars():
                key = tuple(getattr(row, name) for name in distinct)
                if key not in seen:
                    seen.add(key)
                    rows.append(row)
            rows = rows[skip or 0:]
            if limit is not None:
                rows = rows[:limit]
        else:
            if skip:
                stmt = stmt.offset(skip)
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = list(self.session.execute(stmt).scalars().all())

        if take is not None and take < 0:
            rows.reverse()
        return rows

    def find_first(self, where: Optional[dict] = None, order_by: OrderBy = None, **kwargs) -> Optional[ModelT]:
        take = kwargs.pop("take", None)
        rows = self.find_many(where=where, order_by=order_by, take=-1 if take is not None and take < 0 else 1, **kwargs)
        return rows[0] if rows else None

    def find_first_or_throw(self, where: Optional[dict] = None, order_by: OrderBy = None, **kwargs) -> ModelT:
        row = self.find_first(where=where, order_by=order_by, **kwargs)
        if row is None:
            raise NotFoundError(self.name, where)
        return row

    # --- 書き込み ---
    def create(self, data: dict, include: Optional[dict] = None) -> ModelT:
        values = self._validate(self.create_schema, data)
        row = self.model(**values)
        with self._write():
            self.session.add(row)
        logger.debug(f"{self.name} 作成")
        return self._reload(row, include)

    def create_many(self, data: list[dict], skip_duplicates: bool = False) -> int:
        rows = [self._validate(self.create_schema, item) for item in data]
        if not rows:
            return 0
        table = self.model.__table__
        dialect = self.session.get_bind().dialect.name

        if skip_duplicates and dialect not in ("sqlite", "postgresql", "mysql", "mariadb"):
            created = 0
            for values in rows:
                try:
                    with self._write():
                        self.session.execute(insert(table), [values])
                    created += 1
                except ConstraintViolationError as e:
                    if e.kind != "unique":
                        raise
            return created

        stmt = insert(table)
        if skip_duplicates:
            if dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert as dialect_insert

                stmt = dialect_insert(table).on_conflict_do_nothing()
            elif dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert as dialect_insert

                stmt = dialect_insert(table).on_conflict_do_nothing()
            else:
                stmt = insert(table).prefix_with("IGNORE")

        # executemany はキー集合が揃っている必要があるため、キー集合ごとに実行する
        groups: dict[frozenset, list[dict]] = {}
        for values in rows:
            groups.setdefault(frozenset(values), []).append(values)
        created = 0
        with self._write():
            for params in groups.values():
                created += self.session.execute(stmt, params).rowcount
        logger.debug(f"{self.name} 一括作成: {created}件")
        return created

    def update(self, where: dict, data: dict, include: Optional[dict] = None) -> ModelT:
        values = self._validate(self.update_schema, data)
        with self._write():
            row = self.session.execute(self._unique_select(where)).scalars().first()
            if row is None:
                raise NotFoundError(self.name, where)
            self._apply(row, values)
        return self._reload(row, include)

    def update_many(self, where: Optional[dict], data: dict) -> int:
        values = self._validate(self.update_schema, data)
        if not values:
            return 0
        stmt = (
            update(self.model)
            .where(*build_where(self.model, where))
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        with self._write():
            result = self.session.execute(stmt)
        return result.rowcount

    def upsert(self, where: dict, create: dict, update: dict, include: Optional[dict] = None) -> ModelT:
        """存在すれば更新、なければ作成。同時作成で一意制約に当たった場合は更新に切り替える"""
        create_values = self._validate(self.create_schema, create)
        update_values = self._validate(self.update_schema, update)
        try:
            with self._write():
                row = self.session.execute(self._unique_select(where).with_for_update()).scalars().first()
                if row is None:
                    row = self.model(**create_values)
                    self.session.add(row)
                else:
                    self._apply(row, update_values)
        except ConstraintViolationError as e:
            if e.kind != "unique":
                raise
            with self._write():
                row = self.session.execute(self._unique_select(where)).scalars().first()
                if row is None:
                    raise e
                self._apply(row, update_values)
        return self._reload(row, include)

    def delete(self, where: dict, include: Optional[dict] = None) -> ModelT:
        row = self._get_unique(where, include)
        if row is None:
            raise NotFoundError(self.name, where)
        with self._write():
            self.session.delete(row)
        logger.debug(f"{self.name} 削除")
        return row

    def delete_many(self, where: Optional[dict] = None) -> int:
        stmt = (
            delete(self.model)
            .where(*build_where(self.model, where))
            .execution_options(synchronize_session="fetch")
        )
        with self._write():
            result = self.session.execute(stmt)
        return result.rowcount

    # --- 集計 ---
    def count(self, where: Optional[dict] = None) -> int:
        check_deadline(self.session)
        stmt = select(func.count()).select_from(self.model).where(*build_where(self.model, where))
        return self.session.execute(stmt).scalar_one()

    def aggregate(
        self,
        where: Optional[dict] = None,
        count: Union[bool, list[str]] = False,
        min_fields: Optional[list[str]] = None,
        max_fields: Optional[list[str]] = None,
        avg_fields: Optional[list[str]] = None,
        sum_fields: Optional[list[str]] = None,
    ) -> dict:
        check_deadline(self.session)
        columns = self._aggregate_columns(
            count, min_fields or [], max_fields or [], avg_fields or [], sum_fields or []
        )
        if not columns:
            raise ValidationError.single("aggregate", "集計項目を1つ以上指定してください", model=self.name)
        stmt = select(*columns).select_from(self.model).where(*build_where(self.model, where))
        return self._nest(self.session.execute(stmt).mappings().one())

    def group_by(
        self,
        by: list[str],
        where: Optional[dict] = None,
        count: Union[bool, list[str]] = False,
        min_fields: Optional[list[str]] = None,
        max_fields: Optional[list[str]] = None,
        avg_fields: Optional[list[str]] = None,
        sum_fields: Optional[list[str]] = None,
        order_by: OrderBy = None,
    ) -> list[dict]:
        check_deadline(self.session)
        if not by:
            raise ValidationError.single("by", "グループ化する項目を指定してください", model=self.name)
        keys = [self._column(name) for name in by]
        columns = self._aggregate_columns(
            count, min_fields or [], max_fields or [], avg_fields or [], sum_fields or []
        )
        stmt = (
            select(*keys, *columns)
            .where(*build_where(self.model, where))
            .group_by(*keys)
        )
        orderings = build_order_by(self.model, order_by)
        if orderings:
            stmt = stmt.order_by(*[c.desc() if desc else c.asc() for c, desc in orderings])
        return [self._nest(row) for row in self.session.execute(stmt).mappings().all()]
