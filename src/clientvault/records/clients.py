"""Client records: paged search, detail, creation and profile edits.

Normal reads exclude soft-deleted rows. Detail reads try the extended
profile columns first and fall back to the basic columns when the database
has not been migrated yet, flagging the result as ``schema_outdated``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from clientvault.domain.exceptions import InternalError, NotFoundError, ValidationError
from clientvault.domain.records import as_number, normalize_full_name
from clientvault.infra.backend.errors import BackendError
from clientvault.infra.observability import get_logger

if TYPE_CHECKING:
    from clientvault.infra.auth.privilege import PrivilegedBackend
    from clientvault.infra.backend.query import TableQuery

logger = get_logger(__name__)

PAGE_SIZE = 10

LIST_COLUMNS = "id, full_name, phone"
EXTENDED_COLUMNS = (
    "id, full_name, phone, ci, birth_date, email, address, notes, total_amount, created_at"
)
BASIC_COLUMNS = "id, full_name, phone, created_at"
EXTENDED_ONLY_FIELDS = ("ci", "birth_date", "email", "address", "notes", "total_amount")

_PHONE_PATTERN = re.compile(r"^\d{8}$")


def _is_missing_column(error: BackendError) -> bool:
    message = error.message.lower()
    return "column" in message and "does not exist" in message


def _db_error(exc: BackendError) -> InternalError:
    return InternalError("DB error", context={"details": exc.message}, error_code="DB_ERROR")


def validate_full_name(value: str) -> str:
    """Normalise a client name.

    Raises:
        ValidationError: If the name is blank.
    """
    name = normalize_full_name(value)
    if not name:
        raise ValidationError("full_name", "Name is required")
    return name


def validate_phone(value: str) -> str:
    """Trim and check a local phone number (eight digits, no country prefix).

    Raises:
        ValidationError: If the number is not exactly eight digits.
    """
    phone = value.strip()
    if not _PHONE_PATTERN.match(phone):
        raise ValidationError("phone", "Phone must have 8 digits (without country code)")
    return phone


@dataclass
class ClientPage:
    """One page of the client list."""

    items: list[dict[str, Any]]
    total: int
    page: int
    page_size: int = PAGE_SIZE

    @property
    def page_count(self) -> int:
        return max(1, math.ceil(self.total / self.page_size))


@dataclass
class ClientDetail:
    """Client profile, possibly read through the basic-columns fallback."""

    row: dict[str, Any]
    schema_outdated: bool = False
    missing_fields: list[str] = field(default_factory=list)


def _with_number(row: dict[str, Any]) -> dict[str, Any]:
    if "total_amount" in row:
        row = {**row, "total_amount": as_number(row["total_amount"])}
    return row


class ClientRepository:
    """Reads and writes live client rows with the caller's privilege."""

    def __init__(self, backend: PrivilegedBackend) -> None:
        self._client = backend.client

    async def list_page(self, query: str = "", page: int = 1) -> ClientPage:
        """Return one page of live clients ordered by name.

        ``query`` matches name or phone, case-insensitively.
        """
        page = max(1, page)
        builder = self._client.table("clients").is_("deleted_at", None)
        if query.strip():
            builder = builder.search(["full_name", "phone"], query.strip())
        try:
            result = await builder.order("full_name").select(
                LIST_COLUMNS,
                count=True,
                offset=(page - 1) * PAGE_SIZE,
                limit=PAGE_SIZE,
            )
        except BackendError as exc:
            raise _db_error(exc) from exc
        total = result.total if result.total is not None else len(result.rows)
        return ClientPage(items=result.rows, total=total, page=page)

    async def get(self, client_id: str) -> ClientDetail:
        """Load a live client's profile.

        Raises:
            NotFoundError: No live client with this id.
        """
        try:
            row = await self._live(client_id).select_one(EXTENDED_COLUMNS)
        except BackendError as exc:
            if not _is_missing_column(exc):
                raise _db_error(exc) from exc
            logger.warning(
                "client_extended_columns_missing", client_id=client_id, error=exc.message
            )
            return await self._get_basic(client_id)

        if row is None:
            raise NotFoundError("Client", client_id)
        return ClientDetail(row=_with_number(row))

    async def create(self, full_name: str, phone: str) -> dict[str, Any]:
        values = {"full_name": validate_full_name(full_name), "phone": validate_phone(phone)}
        try:
            return await self._client.table("clients").insert(values, LIST_COLUMNS)
        except BackendError as exc:
            raise _db_error(exc) from exc

    async def update(self, client_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Apply profile changes to a live client.

        Raises:
            NotFoundError: No live client with this id.
            ValidationError: Invalid name, phone or negative total amount.
        """
        values = dict(changes)
        if "full_name" in values:
            values["full_name"] = validate_full_name(values["full_name"] or "")
        if "phone" in values:
            values["phone"] = validate_phone(values["phone"] or "")
        amount = values.get("total_amount")
        if amount is not None and amount < 0:
            raise ValidationError("total_amount", "Total amount cannot be negative")
        if not values:
            return (await self.get(client_id)).row

        try:
            row = await self._live(client_id).update_returning(values, EXTENDED_COLUMNS)
        except BackendError as exc:
            raise _db_error(exc) from exc
        if row is None:
            raise NotFoundError("Client", client_id)
        return _with_number(row)

    async def _get_basic(self, client_id: str) -> ClientDetail:
        try:
            row = await self._live(client_id).select_one(BASIC_COLUMNS)
        except BackendError as exc:
            raise _db_error(exc) from exc
        if row is None:
            raise NotFoundError("Client", client_id)
        padded = {**row, **dict.fromkeys(EXTENDED_ONLY_FIELDS)}
        return ClientDetail(
            row=padded,
            schema_outdated=True,
            missing_fields=list(EXTENDED_ONLY_FIELDS),
        )

    def _live(self, client_id: str) -> TableQuery:
        return self._client.table("clients").eq("id", client_id).is_("deleted_at", None)
