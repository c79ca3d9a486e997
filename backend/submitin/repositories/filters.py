"""where / order_by 辞書を SQLAlchemy の式に変換する"""
from typing import Any, Optional, Union

from sqlalchemy import UniqueConstraint, and_, or_, not_, true
from sqlalchemy.inspection import inspect as sa_inspect
from sqlalchemy.orm import selectinload

from submitin.core.errors import ValidationError

OrderBy = Union[dict[str, str], list[dict[str, str]], None]


def _equals(column, value):
    return column.is_(None) if value is None else column == value


def _not(column, value):
    return column.is_not(None) if value is None else or_(column != value, column.is_(None))


OPERATORS = {
    "equals": _equals,
    "not": _not,
    "in": lambda c, v: c.in_(v),
    "not_in": lambda c, v: c.not_in(v),
    "lt": lambda c, v: c < v,
    "lte": lambda c, v: c <= v,
    "gt": lambda c, v: c > v,
    "gte": lambda c, v: c >= v,
    "contains": lambda c, v: c.contains(v, autoescape=True),
    "startswith": lambda c, v: c.startswith(v, autoescape=True),
    "endswith": lambda c, v: c.endswith(v, autoescape=True),
}

TO_MANY_OPERATORS = ("some", "every", "none")


def unique_keys(model) -> dict[str, tuple[str, ...]]:
    """
    モデルの一意キーを列挙。
    単一列は列名、複合キーは列名を '_' で連結した名前で参照する。
    """
    table = model.__table__
    keys: dict[str, tuple[str, ...]] = {}
    pk = tuple(c.key for c in table.primary_key.columns)
    keys["_".join(pk)] = pk
    for column in table.columns:
        if column.unique:
            keys[column.key] = (column.key,)
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint):
            cols = tuple(c.key for c in constraint.columns)
            keys["_".join(cols)] = cols
    return keys


def expand_unique_where(model, where: dict) -> dict:
    """複合キー名をフラットな列条件に展開し、一意キーが指定されているか検証"""
    if not where:
        raise ValidationError.single("where", "一意キーの指定が必要です", model=model.__name__)
    keys = unique_keys(model)
    flat: dict[str, Any] = {}
    for key, value in where.items():
        if key in keys and len(keys[key]) > 1:
            if not isinstance(value, dict):
                raise ValidationError.single(key, "複合キーは辞書で指定してください", model=model.__name__)
            flat.update(value)
        else:
            flat[key] = value
    for cols in keys.values():
        if all(c in flat and not isinstance(flat[c], dict) and flat[c] is not None for c in cols):
            return flat
    raise ValidationError.single(
        "where",
        f"一意キー ({', '.join(keys)}) のいずれかを指定してください",
        model=model.__name__,
    )


def build_where(model, where: Optional[dict]) -> list:
    """where辞書を条件式のリストに変換"""
    if not where:
        return []
    mapper = sa_inspect(model)
    clauses = []
    for key, value in where.items():
        if key == "AND":
            clauses.append(and_(true(), *_combine(model, value)))
        elif key == "OR":
            clauses.append(or_(*[and_(true(), *build_where(model, w)) for w in _as_list(value)]))
        elif key == "NOT":
            clauses.append(not_(and_(true(), *_combine(model, value))))
        elif key in mapper.relationships:
            clauses.append(_relation_clause(model, mapper.relationships[key], value))
        elif key in mapper.columns:
            column = getattr(model, key)
            if isinstance(value, dict):
                for op, operand in value.items():
                    fn = OPERATORS.get(op)
                    if fn is None:
                        raise ValidationError.single(key, f"未対応の演算子です: {op}", model=model.__name__)
                    clauses.append(fn(column, operand))
            else:
                clauses.append(_equals(column, value))
        else:
            raise ValidationError.single(key, "存在しない項目です", model=model.__name__)
    return clauses


def _as_list(value) -> list:
    return value if isinstance(value, list) else [value]


def _combine(model, value) -> list:
    clauses = []
    for w in _as_list(value):
        clauses.extend(build_where(model, w))
    return clauses


def _relation_clause(model, rel, value):
    attr = getattr(model, rel.key)
    target = rel.mapper.class_
    if not isinstance(value, dict):
        raise ValidationError.single(rel.key, "リレーション条件は辞書で指定してください", model=model.__name__)
    if rel.uselist:
        ops = {k: v for k, v in value.items() if k in TO_MANY_OPERATORS}
        if not ops:
            raise ValidationError.single(rel.key, "some / every / none を指定してください", model=model.__name__)
        parts = []
        for op, sub in ops.items():
            inner = and_(true(), *build_where(target, sub))
            if op == "some":
                parts.append(attr.any(inner))
            elif op == "none":
                parts.append(~attr.any(inner))
            else:
                parts.append(~attr.any(not_(inner)))
        return and_(*parts)
    if "is" in value or "is_not" in value:
        parts = []
        if "is" in value:
            sub = value["is"]
            parts.append(~attr.has() if sub is None else attr.has(and_(true(), *build_where(target, sub))))
        if "is_not" in value:
            sub = value["is_not"]
            parts.append(attr.has() if sub is None else ~attr.has(and_(true(), *build_where(target, sub))))
        return and_(*parts)
    return attr.has(and_(true(), *build_where(target, value)))


def build_order_by(model, order_by: OrderBy) -> list[tuple[Any, bool]]:
    """order_by を (列, 降順フラグ) のリストに変換"""
    if not order_by:
        return []
    mapper = sa_inspect(model)
    result = []
    for item in _as_list(order_by):
        for key, direction in item.items():
            if key not in mapper.columns:
                raise ValidationError.single(key, "並び替えできない項目です", model=model.__name__)
            if direction not in ("asc", "desc"):
                raise ValidationError.single(key, "asc か desc を指定してください", model=model.__name__)
            result.append((getattr(model, key), direction == "desc"))
    return result


def build_include(model, include: Optional[dict]) -> list:
    """include辞書をselectinloadのローダーオプションに変換"""
    if not include:
        return []
    mapper = sa_inspect(model)
    options = []
    for name, option in include.items():
        if not option:
            continue
        if name not in mapper.relationships:
            raise ValidationError.single(name, "存在しないリレーションです", model=model.__name__)
        rel = mapper.relationships[name]
        loader = selectinload(getattr(model, name))
        if isinstance(option, dict):
            children = build_include(rel.mapper.class_, option.get("include"))
            if children:
                loader = loader.options(*children)
        options.append(loader)
    return options
