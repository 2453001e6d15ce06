"""Generic repository base for SQLAlchemy 2.x.

Repositories are persistence-only: they never commit or roll back, and they
never decide policy. The Unit of Work owns the transaction; session stores and
services own the rules.

Sorting and equality filtering are opt-in per aggregate through whitelist
mappings, so a caller can never reach an arbitrary column.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Generic, TypeVar, cast

from sqlalchemy import Select, and_, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from silentauth.core.extensions import db

E = TypeVar("E")  # SQLAlchemy mapped entity type


def _apply_sorting(
    stmt: Select[Any],
    sortable_fields: Mapping[str, InstrumentedAttribute[Any]],
    tokens: Iterable[str],
    *,
    pk_attr: InstrumentedAttribute[Any] | None,
) -> Select[Any]:
    """Apply ``ORDER BY`` clauses for whitelisted ``field`` / ``-field`` tokens.

    Unknown tokens are ignored. The primary key is appended as an ascending
    tiebreaker so listings are deterministic.
    """
    orders: list[Any] = []
    for token in tokens:
        is_desc = token.startswith("-")
        col = sortable_fields.get(token.lstrip("-").strip())
        if isinstance(col, InstrumentedAttribute):
            orders.append(col.desc() if is_desc else col.asc())

    if orders:
        stmt = stmt.order_by(*orders)
    if pk_attr is not None:
        stmt = stmt.order_by(pk_attr.asc())
    return stmt


class BaseRepository(Generic[E]):
    """Persistence-only repository for a single aggregate.

    Subclasses MUST define ``model``. They MAY override ``_pk_attr`` when the
    primary key is not called ``id``, and ``_sortable_fields`` /
    ``_filterable_fields`` to expose :meth:`list_by`.
    """

    #: SQLAlchemy mapped model (must be set by subclasses)
    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        """
        :param session: Session shared across the Unit of Work scope. Falls
            back to the Flask-scoped ``db.session`` when omitted.
        """
        self._session: Session | None = session

    @property
    def session(self) -> Session:
        if self._session is not None:
            return self._session
        return cast(Session, db.session)

    # ------------------------------ Extensibility ----------------------------

    def _pk_attr(self) -> InstrumentedAttribute[Any] | None:
        return getattr(self.model, "id", None)

    def _sortable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        return {}

    def _filterable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        return {}

    def _require_pk(self) -> InstrumentedAttribute[Any]:
        pk_attr = self._pk_attr()
        if pk_attr is None:
            raise RuntimeError(f"{type(self).__name__} requires a detectable PK attribute.")
        return pk_attr

    # --------------------------------- CRUD ----------------------------------

    def add(self, instance: E) -> E:
        """Stage a new entity and flush to materialize its primary key."""
        self.session.add(instance)
        self.flush()
        return instance

    def get(self, entity_id: Any) -> E | None:
        """Retrieve a single entity by primary key, or ``None``."""
        stmt = select(self.model).where(self._require_pk() == entity_id)
        return cast(E | None, self.session.execute(stmt).scalars().first())

    def get_for_update(self, entity_id: Any) -> E | None:
        """Retrieve an entity by PK with a ``FOR UPDATE`` lock (when supported).

        Always reloads column values so a retry sees the latest committed row.
        """
        stmt = (
            select(self.model)
            .where(self._require_pk() == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return cast(E | None, self.session.execute(stmt).scalars().first())

    def list_by(self, *, sort: Iterable[str] | None = None, **filters: Any) -> list[E]:
        """List entities matching whitelisted equality filters.

        :param sort: Sort tokens honoring ``_sortable_fields``.
        :param filters: Field=value pairs; keys outside ``_filterable_fields``
            are ignored.
        """
        allowed = self._filterable_fields()
        clauses = [allowed[k] == v for k, v in filters.items() if k in allowed]
        stmt: Select[Any] = select(self.model)
        if clauses:
            stmt = stmt.where(and_(*clauses))
        stmt = _apply_sorting(stmt, self._sortable_fields(), sort or [], pk_attr=self._pk_attr())
        return list(self.session.execute(stmt).scalars().all())

    def flush(self) -> None:
        """Flush pending changes to the database without committing."""
        self.session.flush()
