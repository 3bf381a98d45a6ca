"""Payment and ownership history of a client.

Removing a history entry is always a soft delete (``deleted_at = now``);
normal reads skip such rows. At most one live ownership is current:
marking one current first clears the flag on the client's others.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from clientvault.domain.exceptions import InternalError, NotFoundError, ValidationError
from clientvault.domain.records import as_number, collapse_spaces
from clientvault.infra.backend.errors import BackendError

if TYPE_CHECKING:
    from collections.abc import Callable

    from clientvault.infra.auth.privilege import PrivilegedBackend
    from clientvault.infra.backend.query import TableQuery

PAYMENT_COLUMNS = "id, client_id, amount, paid_at, notes, created_at"
OWNERSHIP_COLUMNS = (
    "id, client_id, owner_name, start_year, end_year, is_current, notes, created_at"
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _db_error(exc: BackendError) -> InternalError:
    return InternalError("DB error", context={"details": exc.message}, error_code="DB_ERROR")


def _clean_notes(notes: str | None) -> str | None:
    return (notes or "").strip() or None


def _payment(row: dict[str, Any]) -> dict[str, Any]:
    return {**row, "amount": as_number(row.get("amount"))}


def _positive_amount(amount: float) -> float:
    if amount <= 0:
        raise ValidationError("amount", "Amount must be greater than zero")
    return amount


class _HistoryTable:
    table: str

    def __init__(
        self,
        backend: PrivilegedBackend,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = backend.client
        self._clock = clock

    def _live(self, client_id: str, row_id: str) -> TableQuery:
        return (
            self._client.table(self.table)
            .eq("id", row_id)
            .eq("client_id", client_id)
            .is_("deleted_at", None)
        )

    async def _update_live(
        self, client_id: str, row_id: str, values: dict[str, Any], columns: str
    ) -> dict[str, Any] | None:
        try:
            return await self._live(client_id, row_id).update_returning(values, columns)
        except BackendError as exc:
            raise _db_error(exc) from exc


class PaymentRepository(_HistoryTable):
    table = "client_payments"

    async def list_for_client(self, client_id: str) -> list[dict[str, Any]]:
        """Live payments, most recent first."""
        try:
            result = await (
                self._client.table(self.table)
                .eq("client_id", client_id)
                .is_("deleted_at", None)
                .order("paid_at", descending=True)
                .order("created_at", descending=True)
                .select(PAYMENT_COLUMNS)
            )
        except BackendError as exc:
            raise _db_error(exc) from exc
        return [_payment(row) for row in result.rows]

    async def record(
        self,
        client_id: str,
        amount: float,
        paid_at: date | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Record a payment; ``paid_at`` defaults to today.

        Raises:
            ValidationError: If the amount is not positive.
        """
        values = {
            "client_id": client_id,
            "amount": _positive_amount(amount),
            "paid_at": (paid_at or date.today()).isoformat(),
            "notes": _clean_notes(notes),
        }
        try:
            row = await self._client.table(self.table).insert(values, PAYMENT_COLUMNS)
        except BackendError as exc:
            raise _db_error(exc) from exc
        return _payment(row)

    async def update(
        self,
        client_id: str,
        payment_id: str,
        amount: float,
        paid_at: date,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Replace amount, date and notes of a live payment.

        Raises:
            ValidationError: If the amount is not positive.
            NotFoundError: No live payment with this id for the client.
        """
        values = {
            "amount": _positive_amount(amount),
            "paid_at": paid_at.isoformat(),
            "notes": _clean_notes(notes),
        }
        row = await self._update_live(client_id, payment_id, values, PAYMENT_COLUMNS)
        if row is None:
            raise NotFoundError("Payment", payment_id, client_id=client_id)
        return _payment(row)

    async def soft_delete(self, client_id: str, payment_id: str) -> None:
        values = {"deleted_at": self._clock().isoformat()}
        if await self._update_live(client_id, payment_id, values, "id") is None:
            raise NotFoundError("Payment", payment_id, client_id=client_id)


@dataclass(frozen=True, slots=True)
class OwnershipEntry:
    """Owner details as entered; :meth:`values` validates and normalises them."""

    owner_name: str
    start_year: int | None = None
    end_year: int | None = None
    is_current: bool = False
    notes: str | None = None

    def values(self) -> dict[str, Any]:
        """Row values for insert or update.

        Raises:
            ValidationError: Blank owner name, or an end year before the start year.
        """
        name = collapse_spaces(self.owner_name)
        if not name:
            raise ValidationError("owner_name", "Owner name is required")
        if (
            self.start_year is not None
            and self.end_year is not None
            and self.end_year < self.start_year
        ):
            raise ValidationError("end_year", "End year cannot be before start year")
        return {
            "owner_name": name,
            "start_year": self.start_year,
            "end_year": self.end_year,
            "is_current": self.is_current,
            "notes": _clean_notes(self.notes),
        }


class OwnershipRepository(_HistoryTable):
    table = "client_ownerships"

    async def list_for_client(self, client_id: str) -> list[dict[str, Any]]:
        """Live ownership records: current first, then newest start year."""
        try:
            result = await (
                self._client.table(self.table)
                .eq("client_id", client_id)
                .is_("deleted_at", None)
                .order("is_current", descending=True)
                .order("start_year", descending=True, nulls_last=True)
                .order("created_at", descending=True)
                .select(OWNERSHIP_COLUMNS)
            )
        except BackendError as exc:
            raise _db_error(exc) from exc
        return result.rows

    async def create(self, client_id: str, entry: OwnershipEntry) -> dict[str, Any]:
        values = entry.values()
        if entry.is_current:
            await self._clear_current(client_id)
        try:
            return await self._client.table(self.table).insert(
                {"client_id": client_id, **values}, OWNERSHIP_COLUMNS
            )
        except BackendError as exc:
            raise _db_error(exc) from exc

    async def update(
        self, client_id: str, ownership_id: str, entry: OwnershipEntry
    ) -> dict[str, Any]:
        """Replace every field of a live ownership record.

        Raises:
            ValidationError: See :meth:`OwnershipEntry.values`.
            NotFoundError: No live record with this id for the client.
        """
        values = entry.values()
        try:
            existing = await self._live(client_id, ownership_id).select_one("id")
        except BackendError as exc:
            raise _db_error(exc) from exc
        if existing is None:
            raise NotFoundError("Ownership", ownership_id, client_id=client_id)

        if entry.is_current:
            await self._clear_current(client_id, keep=ownership_id)
        row = await self._update_live(client_id, ownership_id, values, OWNERSHIP_COLUMNS)
        if row is None:
            raise NotFoundError("Ownership", ownership_id, client_id=client_id)
        return row

    async def soft_delete(self, client_id: str, ownership_id: str) -> None:
        """Mark the record deleted; a deleted owner is never current."""
        values = {"deleted_at": self._clock().isoformat(), "is_current": False}
        if await self._update_live(client_id, ownership_id, values, "id") is None:
            raise NotFoundError("Ownership", ownership_id, client_id=client_id)

    async def _clear_current(self, client_id: str, keep: str | None = None) -> None:
        query = self._client.table(self.table).eq("client_id", client_id).is_("deleted_at", None)
        if keep is not None:
            query = query.neq("id", keep)
        try:
            await query.update({"is_current": False})
        except BackendError as exc:
            raise _db_error(exc) from exc
