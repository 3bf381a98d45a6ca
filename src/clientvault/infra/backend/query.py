"""Row query builder for the backend's REST interface.

Filters compose fluently and a terminal coroutine (``select``,
``select_one``, ``update``, ``delete``, ``insert``) issues the request.
Filters are encoded in the REST dialect's ``column=operator.value`` query
syntax.

Usage:
    rows = await (
        backend.table("files")
        .eq("client_id", client_id)
        .is_("deleted_at", None)
        .order("created_at", descending=True)
        .select("id, bucket, path")
    )
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from clientvault.infra.backend.errors import BackendError

if TYPE_CHECKING:
    from clientvault.infra.backend.client import BackendClient

# Characters that carry meaning inside the ``or=(...)`` filter syntax.
_SEARCH_RESERVED = re.compile(r"[,()*\"\\%]")
_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)$")
_RANGE_NOT_SATISFIABLE = 416


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Rows returned by a select, plus the exact total when requested."""

    rows: list[dict[str, Any]]
    total: int | None = None


def _encode(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(value: Any) -> str:
    text = _encode(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _parse_total(content_range: str | None) -> int | None:
    if not content_range:
        return None
    match = _CONTENT_RANGE_TOTAL.search(content_range.strip())
    return int(match.group(1)) if match else None


class TableQuery:
    """Filter builder bound to one table of one backend client."""

    def __init__(self, client: BackendClient, table: str) -> None:
        self._client = client
        self._table = table
        self._filters: list[tuple[str, str]] = []
        self._order: list[str] = []

    @property
    def table(self) -> str:
        return self._table

    # -- Filters --------------------------------------------------------------

    def eq(self, column: str, value: Any) -> TableQuery:
        self._filters.append((column, f"eq.{_encode(value)}"))
        return self

    def neq(self, column: str, value: Any) -> TableQuery:
        self._filters.append((column, f"neq.{_encode(value)}"))
        return self

    def is_(self, column: str, value: bool | None) -> TableQuery:
        """Match ``IS NULL`` / ``IS TRUE`` / ``IS FALSE``."""
        self._filters.append((column, f"is.{_encode(value)}"))
        return self

    def in_(self, column: str, values: list[Any]) -> TableQuery:
        joined = ",".join(_quote(v) for v in values)
        self._filters.append((column, f"in.({joined})"))
        return self

    def search(self, columns: list[str], term: str) -> TableQuery:
        """Case-insensitive substring match on any of ``columns``.

        Characters reserved by the filter grammar are dropped from ``term``.
        A term that is empty after cleaning adds no filter.
        """
        cleaned = _SEARCH_RESERVED.sub("", term).strip()
        if not cleaned:
            return self
        clauses = ",".join(f"{column}.ilike.*{cleaned}*" for column in columns)
        self._filters.append(("or", f"({clauses})"))
        return self

    def order(
        self,
        column: str,
        *,
        descending: bool = False,
        nulls_last: bool = False,
    ) -> TableQuery:
        clause = f"{column}.{'desc' if descending else 'asc'}"
        if nulls_last:
            clause += ".nullslast"
        self._order.append(clause)
        return self

    # -- Terminal operations ---------------------------------------------------

    async def select(
        self,
        columns: str = "*",
        *,
        count: bool = False,
        offset: int | None = None,
        limit: int | None = None,
    ) -> QueryResult:
        """Fetch matching rows.

        Args:
            columns: Projection in the REST select syntax (joins allowed).
            count: Request the exact total of matching rows.
            offset: Zero-based index of the first row to return.
            limit: Maximum number of rows to return.
        """
        params = [("select", _compact(columns)), *self._filters]
        if self._order:
            params.append(("order", ",".join(self._order)))
        headers: dict[str, str] = {}
        if count:
            headers["Prefer"] = "count=exact"
        if limit is not None:
            start = offset or 0
            headers["Range-Unit"] = "items"
            headers["Range"] = f"{start}-{start + limit - 1}"
        elif offset:
            params.append(("offset", str(offset)))

        # A range starting past the last row is answered with 416, not an empty list.
        response = await self._client.rest(
            "GET",
            self._table,
            params=params,
            headers=headers,
            allow_status=(_RANGE_NOT_SATISFIABLE,) if limit is not None else (),
        )
        rows = [] if response.status_code == _RANGE_NOT_SATISFIABLE else response.json()
        total = _parse_total(response.headers.get("content-range")) if count else None
        return QueryResult(rows=rows if isinstance(rows, list) else [], total=total)

    async def select_one(self, columns: str = "*") -> dict[str, Any] | None:
        """Fetch at most one row; None if no row matches.

        Raises:
            BackendError: If more than one row matches.
        """
        result = await self.select(columns, limit=2)
        if len(result.rows) > 1:
            raise BackendError(
                f"Expected at most one row from {self._table}, got several",
                status_code=406,
            )
        return result.rows[0] if result.rows else None

    async def update(self, values: dict[str, Any]) -> None:
        self._require_filters("update")
        await self._client.rest(
            "PATCH",
            self._table,
            params=self._filters,
            json=values,
            headers={"Prefer": "return=minimal"},
        )

    async def update_returning(self, values: dict[str, Any], columns: str = "*") -> dict[str, Any] | None:
        self._require_filters("update")
        response = await self._client.rest(
            "PATCH",
            self._table,
            params=[("select", _compact(columns)), *self._filters],
            json=values,
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        return rows[0] if isinstance(rows, list) and rows else None

    async def delete(self) -> None:
        self._require_filters("delete")
        await self._client.rest(
            "DELETE",
            self._table,
            params=self._filters,
            headers={"Prefer": "return=minimal"},
        )

    async def insert(self, values: dict[str, Any], columns: str = "*") -> dict[str, Any]:
        response = await self._client.rest(
            "POST",
            self._table,
            params=[("select", _compact(columns))],
            json=values,
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        if isinstance(rows, list) and rows:
            return rows[0]
        if isinstance(rows, dict):
            return rows
        raise BackendError(f"Insert into {self._table} returned no row")

    def _require_filters(self, operation: str) -> None:
        # An unfiltered write would touch every row of the table.
        if not self._filters:
            raise ValueError(f"Refusing unfiltered {operation} on {self._table}")


def _compact(columns: str) -> str:
    return "".join(columns.split())
