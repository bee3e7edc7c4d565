from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy import inspect as sa_inspect

from flash_flare.exceptions import (
    FlareError,
    InvalidArgumentError,
    RecordNotFoundError,
)
from flash_flare.expressions import Resolvable
from flash_flare.filters import AGGREGATE_FUNCTIONS, build_condition, build_order_by

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import RelationshipProperty
    from sqlalchemy.sql import Select

    from .client import FlareClient
    from .types import CallOptions

Record = dict[str, Any]


def _window(rows: list[Record], skip: int | None, take: int | None) -> list[Record]:
    start = skip or 0
    return rows[start:] if take is None else rows[start : start + take]


def _unique_by(rows: list[Record], fields: list[str]) -> list[Record]:
    seen: set[tuple[Any, ...]] = set()
    unique = []
    for row in rows:
        key = tuple(row.get(f) for f in fields)
        if key not in seen:
            seen.add(key)
            unique.append(row)
    return unique


def _and_where(where: Any, extra: Mapping[str, Any]) -> Any:
    if not where:
        return dict(extra)
    return {"AND": [where, dict(extra)]}


class ModelDelegate:
    """
    Asynchronous CRUD and aggregate operations for one mapped model.

    Every operation takes a single options dict (``where``, ``select``,
    ``include``, ``order_by``, ``skip``, ``take``, ``data``, ...) and an optional
    ``CallOptions``. Calls go through the owning client's interception chain
    before touching the database, so registered hooks observe them no matter
    whether they come from a builder or direct use.

    Records are returned as plain dicts of column values, with included
    relations nested under their relation name.

    Example:
        >>> user = await client.user.create({"data": {"email": "a@b.c"}})
        >>> await client.user.update_many(
        ...     {"where": {"status": "pending"}, "data": {"status": "active"}})
        {'count': 3}
    """

    def __init__(self, client: FlareClient, name: str, model: type[Any]):
        self._client = client
        self.name = name
        self.model = model
        self._mapper = sa_inspect(model)
        self._columns: list[str] = [attr.key for attr in self._mapper.column_attrs]
        self._relationships: dict[str, RelationshipProperty[Any]] = {
            rel.key: rel for rel in self._mapper.relationships
        }

        pk_columns = self._mapper.primary_key
        if len(pk_columns) != 1:
            msg = f"Model {model.__name__} must have a single-column primary key"
            raise FlareError(msg)
        self.primary_key: str = self._mapper.get_property_by_column(pk_columns[0]).key

    def __repr__(self) -> str:
        return f"<ModelDelegate {self.name}>"

    # --- Metadata ---

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    @property
    def relations(self) -> list[str]:
        return list(self._relationships)

    def column(self, name: str) -> Any:
        """Return the mapped attribute for a scalar field."""
        if name not in self._columns:
            msg = f"Field '{name}' not found on model {self.model.__name__}"
            raise ValueError(msg)
        return getattr(self.model, name)

    def related_model(self, relation: str) -> str | None:
        """Return the model name a relation points to, if it is one."""
        prop = self._relationships.get(relation)
        if prop is None:
            return None
        return prop.mapper.class_.__name__.lower()

    def related(self, relation: str) -> ModelDelegate | None:
        target = self.related_model(relation)
        return None if target is None else self._client.delegate(target)

    # --- Public operations (intercepted) ---

    async def _call(
        self, action: str, args: Mapping[str, Any] | None, options: CallOptions | None
    ) -> Any:
        return await self._client._dispatch(self.name, action, dict(args or {}), options)

    async def find_many(self, args=None, options=None) -> list[Record]:
        return await self._call("find_many", args, options)

    async def find_first(self, args=None, options=None) -> Record | None:
        return await self._call("find_first", args, options)

    async def find_unique(self, args=None, options=None) -> Record | None:
        return await self._call("find_unique", args, options)

    async def find_first_or_throw(self, args=None, options=None) -> Record:
        return await self._call("find_first_or_throw", args, options)

    async def find_unique_or_throw(self, args=None, options=None) -> Record:
        return await self._call("find_unique_or_throw", args, options)

    async def create(self, args=None, options=None) -> Record:
        return await self._call("create", args, options)

    async def create_many(self, args=None, options=None) -> dict[str, int]:
        return await self._call("create_many", args, options)

    async def update(self, args=None, options=None) -> Record:
        return await self._call("update", args, options)

    async def update_many(self, args=None, options=None) -> dict[str, int]:
        return await self._call("update_many", args, options)

    async def delete(self, args=None, options=None) -> Record:
        return await self._call("delete", args, options)

    async def delete_many(self, args=None, options=None) -> dict[str, int]:
        return await self._call("delete_many", args, options)

    async def upsert(self, args=None, options=None) -> Record:
        return await self._call("upsert", args, options)

    async def count(self, args=None, options=None) -> int:
        return await self._call("count", args, options)

    async def aggregate(self, args=None, options=None) -> dict[str, Any]:
        return await self._call("aggregate", args, options)

    async def group_by(self, args=None, options=None) -> list[Record]:
        return await self._call("group_by", args, options)

    # --- Execution (called by the client at the end of the chain) ---

    async def execute(self, session: AsyncSession, action: str, args: dict[str, Any]) -> Any:
        runner = getattr(self, f"_run_{action}", None)
        if runner is None:
            msg = f"Unsupported operation '{action}' on {self.name}"
            raise InvalidArgumentError(msg)
        return await runner(session, args)

    async def _run_find_many(self, session: AsyncSession, args: dict[str, Any]) -> list[Record]:
        includes = self._collect_includes(args)
        rows = await self._load(session, args, includes)
        return [self._project(row, args.get("select"), includes) for row in rows]

    async def _run_find_first(self, session: AsyncSession, args: dict[str, Any]) -> Record | None:
        rows = await self._run_find_many(session, {**args, "take": 1})
        return rows[0] if rows else None

    async def _run_find_unique(self, session: AsyncSession, args: dict[str, Any]) -> Record | None:
        if not args.get("where"):
            msg = f"find_unique on {self.name} requires a where condition"
            raise InvalidArgumentError(msg)
        return await self._run_find_first(session, args)

    async def _run_find_first_or_throw(self, session: AsyncSession, args: dict[str, Any]) -> Record:
        record = await self._run_find_first(session, args)
        if record is None:
            msg = f"No {self.model.__name__} found"
            raise RecordNotFoundError(msg)
        return record

    async def _run_find_unique_or_throw(self, session: AsyncSession, args: dict[str, Any]) -> Record:
        record = await self._run_find_unique(session, args)
        if record is None:
            msg = f"No {self.model.__name__} found"
            raise RecordNotFoundError(msg)
        return record

    async def _run_create(self, session: AsyncSession, args: dict[str, Any]) -> Record:
        data = self._require_data(args, "create")
        instance = self.model(**self._check_fields(data))
        session.add(instance)
        await session.flush()
        return await self._reload(session, getattr(instance, self.primary_key), args)

    async def _run_create_many(self, session: AsyncSession, args: dict[str, Any]) -> dict[str, int]:
        data = args.get("data") or []
        if isinstance(data, Mapping):
            data = [data]
        rows = [self._check_fields(row) for row in data]
        if rows:
            await session.execute(insert(self.model), rows)
        return {"count": len(rows)}

    async def _run_update(self, session: AsyncSession, args: dict[str, Any]) -> Record:
        data = self._require_data(args, "update")
        pk = await self._locate(session, args.get("where"), "update")
        await self._update_by_pk(session, pk, data)
        return await self._reload(session, pk, args)

    async def _run_update_many(self, session: AsyncSession, args: dict[str, Any]) -> dict[str, int]:
        data = self._require_data(args, "update_many")
        stmt = update(self.model).values(self._resolve_values(data))
        condition = self._condition(args.get("where"))
        if condition is not None:
            stmt = stmt.where(condition)
        result = await session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        return {"count": getattr(result, "rowcount", 0)}

    async def _run_delete(self, session: AsyncSession, args: dict[str, Any]) -> Record:
        pk = await self._locate(session, args.get("where"), "delete")
        record = await self._reload(session, pk, args)
        await session.execute(
            delete(self.model)
            .where(self.column(self.primary_key) == pk)
            .execution_options(synchronize_session=False)
        )
        return record

    async def _run_delete_many(self, session: AsyncSession, args: dict[str, Any]) -> dict[str, int]:
        stmt = delete(self.model)
        condition = self._condition(args.get("where"))
        if condition is not None:
            stmt = stmt.where(condition)
        result = await session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        return {"count": getattr(result, "rowcount", 0)}

    async def _run_upsert(self, session: AsyncSession, args: dict[str, Any]) -> Record:
        if not args.get("where"):
            msg = f"upsert on {self.name} requires a where condition"
            raise InvalidArgumentError(msg)
        pk = await self._first_pk(session, args["where"])
        if pk is None:
            return await self._run_create(session, {**args, "data": args.get("create") or {}})
        update_data = args.get("update") or {}
        if update_data:
            await self._update_by_pk(session, pk, update_data)
        return await self._reload(session, pk, args)

    async def _run_count(self, session: AsyncSession, args: dict[str, Any]) -> int:
        inner = self._select([self.primary_key], args)
        stmt = select(func.count()).select_from(inner.subquery())
        return int((await session.execute(stmt)).scalar_one())

    async def _run_aggregate(self, session: AsyncSession, args: dict[str, Any]) -> dict[str, Any]:
        specs = self._aggregate_specs(args)
        if not specs:
            msg = f"aggregate on {self.name} requires at least one of {', '.join(AGGREGATE_FUNCTIONS)}"
            raise InvalidArgumentError(msg)

        source = self._select(self._columns, args).subquery()
        labels = [
            self._aggregate_expr(key, field, source.c).label(f"agg_{i}")
            for i, (key, field) in enumerate(specs)
        ]
        row = (await session.execute(select(*labels).select_from(source))).one()
        return self._aggregate_result(specs, row, offset=0)

    async def _run_group_by(self, session: AsyncSession, args: dict[str, Any]) -> list[Record]:
        by = args.get("by")
        if isinstance(by, str):
            by = [by]
        if not by:
            msg = f"group_by on {self.name} requires 'by' fields"
            raise InvalidArgumentError(msg)

        group_cols = [self.column(f) for f in by]
        specs = self._aggregate_specs(args)
        labels = [
            self._aggregate_expr(key, field, None).label(f"agg_{i}")
            for i, (key, field) in enumerate(specs)
        ]
        stmt = select(*[col.label(f) for f, col in zip(by, group_cols)], *labels)
        condition = self._condition(args.get("where"))
        if condition is not None:
            stmt = stmt.where(condition)
        stmt = stmt.group_by(*group_cols)

        having = build_condition(args.get("having"), self.column, allow_aggregates=True)
        if having is not None:
            stmt = stmt.having(having)
        stmt = stmt.order_by(*build_order_by(args.get("order_by"), self.column))
        if args.get("skip"):
            stmt = stmt.offset(args["skip"])
        if args.get("take") is not None:
            stmt = stmt.limit(args["take"])

        groups = []
        for row in (await session.execute(stmt)).all():
            record = {f: row[i] for i, f in enumerate(by)}
            record.update(self._aggregate_result(specs, row, offset=len(by)))
            groups.append(record)
        return groups

    # --- Helpers ---

    def _condition(self, where: Any) -> Any:
        return build_condition(where, self.column)

    def _select(self, fields: list[str], args: Mapping[str, Any], *, window: bool = True) -> Select:
        stmt = select(*[self.column(f).label(f) for f in fields])
        condition = self._condition(args.get("where"))
        if condition is not None:
            stmt = stmt.where(condition)
        stmt = stmt.order_by(*build_order_by(args.get("order_by"), self.column))
        if window:
            if args.get("skip"):
                stmt = stmt.offset(args["skip"])
            if args.get("take") is not None:
                stmt = stmt.limit(args["take"])
        return stmt

    async def _load(
        self, session: AsyncSession, args: Mapping[str, Any], includes: dict[str, Any]
    ) -> list[Record]:
        """Fetch full rows for ``args`` and attach the requested relations."""
        distinct = args.get("distinct")
        if isinstance(distinct, str):
            distinct = [distinct]

        stmt = self._select(self._columns, args, window=not distinct)
        rows = [row._asdict() for row in (await session.execute(stmt)).all()]

        if distinct:
            for field in distinct:
                self.column(field)
            rows = _window(_unique_by(rows, distinct), args.get("skip"), args.get("take"))

        if includes and rows:
            for relation, sub_args in includes.items():
                await self._attach(session, rows, relation, sub_args)
        return rows

    def _collect_includes(self, args: Mapping[str, Any]) -> dict[str, Any]:
        """Merge ``include`` with relation keys found in ``select``."""
        includes: dict[str, Any] = {}
        for relation, value in (args.get("include") or {}).items():
            if relation not in self._relationships:
                msg = f"Relation '{relation}' not found on model {self.model.__name__}"
                raise ValueError(msg)
            if value:
                includes[relation] = value
        for field, value in (args.get("select") or {}).items():
            if field in self._relationships:
                if value:
                    includes.setdefault(field, value)
            else:
                self.column(field)
        return includes

    def _project(self, row: Record, select_spec: Mapping[str, Any] | None, includes: Mapping[str, Any]) -> Record:
        if not select_spec:
            return row
        keep = {k for k, v in select_spec.items() if v} | set(includes)
        return {k: v for k, v in row.items() if k in keep}

    async def _attach(
        self, session: AsyncSession, rows: list[Record], relation: str, spec: Any
    ) -> None:
        prop = self._relationships[relation]
        if prop.secondary is not None:
            msg = f"Including many-to-many relation '{relation}' is not supported"
            raise FlareError(msg)

        pairs = list(prop.local_remote_pairs)
        if len(pairs) != 1:
            msg = f"Relation '{relation}' must join on a single column"
            raise FlareError(msg)

        target = self._client.delegate(prop.mapper.class_.__name__)
        local_col, remote_col = pairs[0]
        local_key = self._mapper.get_property_by_column(local_col).key
        remote_key = target._mapper.get_property_by_column(remote_col).key

        sub_args: dict[str, Any] = {} if spec is True else dict(spec)
        keys = list(dict.fromkeys(r[local_key] for r in rows if r[local_key] is not None))

        children: list[Record] = []
        if keys:
            child_args = {
                k: v for k, v in sub_args.items() if k not in ("skip", "take")
            }
            child_args["where"] = _and_where(sub_args.get("where"), {remote_key: {"in": keys}})
            child_includes = target._collect_includes(child_args)
            children = await target._load(session, child_args, child_includes)
        else:
            child_includes = target._collect_includes(sub_args)

        grouped: dict[Any, list[Record]] = {}
        for child in children:
            grouped.setdefault(child[remote_key], []).append(child)

        for row in rows:
            matches = _window(
                grouped.get(row[local_key], []), sub_args.get("skip"), sub_args.get("take")
            )
            projected = [
                target._project(m, sub_args.get("select"), child_includes) for m in matches
            ]
            if prop.uselist:
                row[relation] = projected
            else:
                row[relation] = projected[0] if projected else None

    def _check_fields(self, data: Mapping[str, Any]) -> dict[str, Any]:
        for field in data:
            if field in self._relationships:
                msg = f"Nested writes through '{field}' are not supported"
                raise InvalidArgumentError(msg)
            self.column(field)
        return dict(data)

    def _require_data(self, args: Mapping[str, Any], action: str) -> dict[str, Any]:
        data = args.get("data")
        if not isinstance(data, Mapping):
            msg = f"{action} on {self.name} requires a data mapping"
            raise InvalidArgumentError(msg)
        return self._check_fields(data)

    def _resolve_values(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            k: v.resolve(self.model) if isinstance(v, Resolvable) else v
            for k, v in self._check_fields(data).items()
        }

    async def _first_pk(self, session: AsyncSession, where: Any) -> Any:
        stmt = select(self.column(self.primary_key))
        condition = self._condition(where)
        if condition is not None:
            stmt = stmt.where(condition)
        return (await session.execute(stmt.limit(1))).scalar_one_or_none()

    async def _locate(self, session: AsyncSession, where: Any, action: str) -> Any:
        if not where:
            msg = f"{action} on {self.name} requires a where condition"
            raise InvalidArgumentError(msg)
        pk = await self._first_pk(session, where)
        if pk is None:
            msg = f"{self.model.__name__} matching {where!r} does not exist"
            raise RecordNotFoundError(msg)
        return pk

    async def _update_by_pk(self, session: AsyncSession, pk: Any, data: Mapping[str, Any]) -> None:
        await session.execute(
            update(self.model)
            .where(self.column(self.primary_key) == pk)
            .values(self._resolve_values(data))
            .execution_options(synchronize_session=False)
        )

    async def _reload(self, session: AsyncSession, pk: Any, args: Mapping[str, Any]) -> Record:
        reload_args = {
            "where": {self.primary_key: pk},
            "select": args.get("select"),
            "include": args.get("include"),
        }
        rows = await self._run_find_many(session, reload_args)
        if not rows:
            msg = f"{self.model.__name__} with {self.primary_key} {pk} not found"
            raise RecordNotFoundError(msg)
        return rows[0]

    def _aggregate_specs(self, args: Mapping[str, Any]) -> list[tuple[str, str | None]]:
        specs: list[tuple[str, str | None]] = []
        for key in AGGREGATE_FUNCTIONS:
            spec = args.get(key)
            if not spec:
                continue
            if spec is True:
                if key != "_count":
                    msg = f"'{key}' requires a mapping of field names"
                    raise InvalidArgumentError(msg)
                specs.append((key, None))
                continue
            for field, enabled in spec.items():
                if enabled:
                    specs.append((key, field))
        return specs

    def _aggregate_expr(self, key: str, field: str | None, source_columns: Any) -> Any:
        """``field`` None (``_count: True``) or ``"_all"`` counts rows."""
        if field is None or field == "_all":
            if key != "_count":
                msg = "'_all' is only supported by _count"
                raise InvalidArgumentError(msg)
            return func.count()
        col = self.column(field)
        if source_columns is not None:
            col = source_columns[field]
        return AGGREGATE_FUNCTIONS[key](col)

    def _aggregate_result(self, specs: list[tuple[str, str | None]], row: Any, *, offset: int) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for i, (key, field) in enumerate(specs):
            value = row[offset + i]
            if field is None:
                result[key] = value
            else:
                result.setdefault(key, {})[field] = value
        return result
