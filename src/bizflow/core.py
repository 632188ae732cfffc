"""Workspace: the hub every user action goes through.

Responsibilities:
1. Session: establish the actor, subscribe all four collections
2. Snapshots: keep the last known snapshot per collection
3. Write lanes: serialize writes per collection
4. Lifecycle: check transitions against committed state inside the lane
5. Notices: turn store failures into user-visible messages, never raise them
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Literal, Mapping, TypeVar

from bizflow import lifecycle
from bizflow.booking import AlwaysAvailable, Availability, AppointmentForm
from bizflow.errors import InvalidTransition, NotReady, SyncFailure, ValidationFailure
from bizflow.export import export_filename, to_csv
from bizflow.models import (
    COLLECTIONS,
    Appointment,
    Invoice,
    Quotation,
    Receipt,
    Record,
    normalize_patch,
    record_type,
)
from bizflow.reminders import Reminder, due_reminders
from bizflow.store.entity_store import EntityStore, Snapshot, Subscription

if TYPE_CHECKING:
    from bizflow.booking import AvailabilityChecker
    from bizflow.session import IdentityProvider, Session

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_NOTICES = 50


def _singular(collection: str) -> str:
    return collection[:-1]


def _short(doc_id: str) -> str:
    return f"{doc_id[:4]}..."


def _require_confirmed_slot(record: Any) -> None:
    """Reject an online appointment whose slot was not confirmed available."""
    if isinstance(record, AppointmentForm):
        form = record
    elif isinstance(record, Appointment):
        form = AppointmentForm(appointment=record)
    elif isinstance(record, Mapping):
        form = AppointmentForm(
            appointment=Appointment.from_dict(record),
            is_confirmed=bool(record.get("isConfirmed")),
        )
    else:
        return
    if not form.can_save:
        raise ValidationFailure("Check availability before saving an online appointment")


@dataclass
class Notice:
    """Transient user-visible status message."""

    message: str
    level: Literal["success", "error"] = "success"
    created: datetime = field(default_factory=datetime.now)


class Workspace:
    """Owns the session context, entity stores and last-known snapshots."""

    def __init__(self, session: Session, checker: AvailabilityChecker | None = None) -> None:
        self.session = session
        self.checker = checker or AlwaysAvailable()
        self.stores: dict[str, EntityStore] = {
            name: EntityStore(session, name) for name in COLLECTIONS
        }
        self.snapshots: dict[str, Snapshot] = {name: Snapshot.empty(name) for name in COLLECTIONS}
        self.notices: deque[Notice] = deque(maxlen=MAX_NOTICES)
        self._subscriptions: dict[str, Subscription] = {}
        self._pumps: dict[str, asyncio.Task] = {}
        self._loaded: dict[str, asyncio.Event] = {name: asyncio.Event() for name in COLLECTIONS}
        self._lane_locks: dict[str, asyncio.Lock] = {}
        session.coordinator.on_teardown(self._reset_snapshots)

    # ── Notices ──────────────────────────────────────────────

    def notify(self, message: str, level: Literal["success", "error"] = "success") -> Notice:
        notice = Notice(message, level)
        self.notices.append(notice)
        if level == "error":
            logger.error(message)
        else:
            logger.info(message)
        return notice

    # ── Session + subscriptions ──────────────────────────────

    async def start(self, identity: IdentityProvider | None = None) -> bool:
        """Sign in and subscribe to every collection. False if sign-in failed."""
        try:
            await self.session.coordinator.establish(identity)
        except NotReady as e:
            self.notify(str(e), "error")
            return False
        for name, store in self.stores.items():
            if name in self._subscriptions:
                continue
            try:
                subscription = store.subscribe(on_error=self._on_sync_failure)
            except SyncFailure as e:
                self._on_sync_failure(e)
                continue
            self._subscriptions[name] = subscription
            self._pumps[name] = asyncio.create_task(self._pump(name, subscription))
        return True

    async def switch_actor(self, identity: IdentityProvider) -> bool:
        """Drop the current actor's subscriptions and sign in as another."""
        await self._stop_pumps()
        return await self.start(identity)

    async def _pump(self, name: str, subscription: Subscription) -> None:
        async for snapshot in subscription:
            self.snapshots[name] = snapshot
            self._loaded[name].set()
            logger.debug("%s: %d records (v%d)", name, len(snapshot), snapshot.version)

    def _on_sync_failure(self, failure: SyncFailure) -> None:
        self._loaded[failure.collection].set()
        self.notify(f"Failed to load {failure.collection}.", "error")

    def _reset_snapshots(self) -> None:
        for name in COLLECTIONS:
            self.snapshots[name] = Snapshot.empty(name)
            self._loaded[name].clear()
        for subscription in self._subscriptions.values():
            subscription.cancel()
        self._subscriptions.clear()

    async def synced(self) -> None:
        """Wait until every collection delivered its first snapshot (or failed)."""
        await asyncio.gather(*(event.wait() for event in self._loaded.values()))

    async def _stop_pumps(self) -> None:
        for subscription in list(self._subscriptions.values()):
            subscription.cancel()
        self._subscriptions.clear()
        pumps = list(self._pumps.values())
        self._pumps.clear()
        if pumps:
            await asyncio.gather(*pumps, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel all subscriptions and close the session."""
        await self._stop_pumps()
        await self.session.close()

    # ── Write lanes (per-collection serialization) ───────────

    def _get_lane_lock(self, collection: str) -> asyncio.Lock:
        if collection not in self._lane_locks:
            self._lane_locks[collection] = asyncio.Lock()
        return self._lane_locks[collection]

    async def _write(
        self, collection: str, op: Callable[[], Awaitable[T]], failure: str
    ) -> tuple[bool, T | None]:
        """Run a store call in the collection's lane; failures become notices."""
        async with self._get_lane_lock(collection):
            return await self._guarded(collection, op, failure)

    async def _guarded(
        self, collection: str, op: Callable[[], Awaitable[T]], failure: str
    ) -> tuple[bool, T | None]:
        """Run a store call, turning store failures into notices. Caller holds the lane."""
        try:
            return True, await op()
        except NotReady as e:
            self.notify(str(e), "error")
        except SyncFailure as e:
            logger.error("Store error on %s: %s", collection, e)
            self.notify(failure, "error")
        return False, None

    def _remember(self, record: Record) -> None:
        """Fold a committed write into the snapshot until the listener catches up."""
        current = self.snapshots[record.collection]
        records = dict(current.items())
        records[record.id] = record
        self.snapshots[record.collection] = Snapshot(record.collection, records, current.version)

    # ── CRUD ─────────────────────────────────────────────────

    def get(self, collection: str, doc_id: str | None) -> Record | None:
        """Resolve an id against the last known snapshot; unknown ids give None."""
        record_type(collection)
        if not doc_id:
            return None
        return self.snapshots[collection].get(doc_id)

    async def create(self, collection: str, record: Record | Mapping[str, Any]) -> str | None:
        """Create a record. Online appointments must carry a confirmed slot."""
        store = self.stores[record_type(collection).collection]
        if collection == "appointments":
            _require_confirmed_slot(record)
        ok, doc_id = await self._write(
            collection, lambda: store.create(record), f"Failed to save {_singular(collection)}."
        )
        if ok:
            self.notify(f"{_singular(collection)} added successfully!")
        return doc_id

    async def create_appointment(self, form: AppointmentForm) -> str | None:
        return await self.create("appointments", form)

    async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> bool:
        normalize_patch(record_type(collection), patch)
        store = self.stores[collection]
        ok, _ = await self._write(
            collection,
            lambda: store.update(doc_id, patch),
            f"Failed to save {_singular(collection)}.",
        )
        if ok:
            self.notify(f"{_singular(collection)} updated successfully!")
        return ok

    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete one record. Records elsewhere that point at it are untouched."""
        store = self.stores[record_type(collection).collection]
        ok, _ = await self._write(
            collection, lambda: store.delete(doc_id), f"Failed to delete {_singular(collection)}."
        )
        if ok:
            self.notify(f"{_singular(collection)} deleted successfully!")
        return ok

    # ── Lifecycle actions ────────────────────────────────────
    #
    # Status changes read the committed record inside the collection's lane,
    # so two actions in a row (or in parallel) never both pass the same check.

    def _require(self, collection: str, doc_id: str) -> Record:
        record = self.get(collection, doc_id)
        if record is None:
            raise InvalidTransition(f"{_singular(collection).title()} {doc_id} not found")
        return record

    async def _committed(self, collection: str, doc_id: str) -> tuple[bool, Record | None]:
        """Read one record from the store. Caller holds the lane."""
        ok, snapshot = await self._guarded(
            collection, self.stores[collection].fetch, f"Failed to load {collection}."
        )
        if not ok:
            return False, None
        return True, snapshot.get(doc_id)

    async def set_status(self, collection: str, doc_id: str, status: str) -> bool:
        if collection == "invoices":
            raise InvalidTransition("Invoices are marked Paid only by recording a receipt")
        store = self.stores[record_type(collection).collection]
        async with self._get_lane_lock(collection):
            ok, record = await self._committed(collection, doc_id)
            if not ok:
                return False
            if record is None:
                raise InvalidTransition(f"{_singular(collection).title()} {doc_id} not found")
            updated = lifecycle.transition(record, status)
            new_status = updated.status.value
            ok, _ = await self._guarded(
                collection,
                lambda: store.update(doc_id, {"status": new_status}),
                "Failed to update status.",
            )
            if not ok:
                return False
            self._remember(updated)
        self.notify(f"Status of {_singular(collection)} {_short(doc_id)} updated to {new_status}.")
        return True

    def draft_quotation(self, appointment_id: str, today: date | None = None) -> Quotation:
        appointment = self._require("appointments", appointment_id)
        draft = lifecycle.quotation_from_appointment(appointment, today)
        self.notify(
            f"Drafting Quotation for {appointment.client_name} "
            f"based on Appointment {_short(appointment_id)}"
        )
        return draft

    def draft_invoice(self, quotation_id: str, today: date | None = None) -> Invoice:
        quotation = self._require("quotations", quotation_id)
        draft = lifecycle.invoice_from_quotation(quotation, today)
        self.notify(
            f"Drafting Invoice for {quotation.client_name} based on Quote {_short(quotation_id)}"
        )
        return draft

    async def record_payment(self, invoice_id: str, today: date | None = None) -> Receipt | None:
        """Mark the invoice Paid and return the receipt draft to confirm.

        Returns None when the invoice cannot be read or written; no draft is
        produced then. An invoice that is already Paid raises InvalidTransition.
        """
        store = self.stores["invoices"]
        async with self._get_lane_lock("invoices"):
            ok, invoice = await self._committed("invoices", invoice_id)
            if not ok:
                return None
            intent = lifecycle.record_payment(invoice, self.snapshots["quotations"], today)
            ok, _ = await self._guarded(
                "invoices",
                lambda: store.update(invoice_id, {"status": intent.invoice.status.value}),
                "Failed to update status.",
            )
            if not ok:
                return None
            self._remember(intent.invoice)
        self.notify(f"Recording payment for Invoice {_short(invoice_id)}")
        return intent.receipt

    # ── Booking ──────────────────────────────────────────────

    async def check_slot(self, form: AppointmentForm) -> AppointmentForm:
        checked, result = await form.check_slot(self.checker)
        if result == Availability.AVAILABLE:
            self.notify(
                f"Time slot {form.appointment.date} @ {form.appointment.time} is available."
            )
        else:
            self.notify("This time slot is busy. Please select an alternative time.", "error")
        return checked

    # ── Read-side views ──────────────────────────────────────

    def reminders(self, today: date | None = None) -> list[Reminder]:
        return due_reminders(
            self.snapshots["appointments"].values(),
            self.snapshots["invoices"].values(),
            today or date.today(),
        )

    def export(self, collection: str) -> tuple[str, str]:
        """Return (filename, csv text) for the current snapshot."""
        record_type(collection)
        content = to_csv(self.snapshots[collection].values(), collection)
        self.notify(f"Generated CSV data for {collection}.")
        return export_filename(collection), content
