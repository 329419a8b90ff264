"""Query execution helpers used by the tool layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from sqlglot import exp

from .errors import NotConnected, QueryFailed
from .models import ConnectionHandle

if TYPE_CHECKING:
    from .connections import ConnectionManager

LOG = logging.getLogger(__name__)

Row = dict[str, Any]

PING_STATEMENT = "SELECT CURRENT_DATE AS today"


@dataclass(frozen=True, slots=True)
class PingResult:
    """Outcome of a connectivity probe."""

    ok: bool
    reason: str | None = None
    rows: tuple[Row, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"ok": self.ok}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.rows:
            payload["rows"] = [
                {key: value.isoformat() if isinstance(value, date) else value for key, value in row.items()}
                for row in self.rows
            ]
        return payload


async def execute(
    handle: ConnectionHandle | None,
    statement: str,
    parameters: Sequence[Any] = (),
) -> list[Row]:
    """Run ``statement`` with positionally bound ``parameters`` and return row dicts."""

    if handle is None:
        raise NotConnected("Database not connected.")
    params = tuple(parameters)
    try:
        result = await handle.pool.fetch(statement, *params)
    except Exception as exc:
        LOG.error("SQL FAIL: %s %r: %s", statement, params, exc)
        raise QueryFailed(statement, params, str(exc)) from exc
    rows = normalize_rows(result)
    LOG.debug("SQL OK: %s %r -> %d row(s)", statement, params, len(rows))
    return rows


async def run_query(
    manager: "ConnectionManager",
    statement: str,
    parameters: Sequence[Any] = (),
) -> list[Row]:
    """Acquire the shared handle and execute; an offline database raises NotConnected."""

    handle = await manager.get_connection()
    return await execute(handle, statement, parameters)


async def ping(manager: "ConnectionManager") -> PingResult:
    handle = await manager.get_connection()
    if handle is None:
        return PingResult(ok=False, reason="db_unavailable")
    try:
        rows = await execute(handle, PING_STATEMENT)
    except QueryFailed as exc:
        return PingResult(ok=False, reason=str(exc))
    return PingResult(ok=True, rows=tuple(rows))


def normalize_rows(result: Any) -> list[Row]:
    """Coerce the driver's result shapes into a list of row dicts."""

    if result is None:
        return []
    for attr in ("data", "rows"):
        inner = getattr(result, attr, None)
        if inner is not None and not callable(inner):
            return normalize_rows(inner)
    if isinstance(result, Mapping):
        for key in ("data", "rows"):
            if key in result:
                return normalize_rows(result[key])
        return [dict(result)]
    return [_row_to_dict(row) for row in _iter_rows(result)]


def qualify_table(name: str, schema: str | None = None) -> str:
    """Render a quoted, optionally schema-qualified table reference."""

    table = exp.Table(
        this=exp.to_identifier(name, quoted=True),
        db=exp.to_identifier(schema, quoted=True) if schema else None,
    )
    return table.sql(dialect="postgres")


def _iter_rows(result: Any) -> Iterable[Any]:
    if isinstance(result, (str, bytes)):
        raise TypeError(f"Unexpected query result: {result!r}")
    return iter(result)


def _row_to_dict(row: Any) -> Row:
    if isinstance(row, Mapping):
        return dict(row)
    keys = getattr(row, "keys", None)
    if callable(keys):
        return {str(key): row[key] for key in keys()}
    return {str(idx): value for idx, value in enumerate(row)}


__all__ = [
    "PING_STATEMENT",
    "PingResult",
    "Row",
    "execute",
    "normalize_rows",
    "ping",
    "qualify_table",
    "run_query",
]
