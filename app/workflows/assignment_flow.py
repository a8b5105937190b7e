"""
Assignment flow: the operator-facing submit / confirm / cancel cycle.

    IDLE ──submit()──▶ CHECKING ──no conflict──▶ SUBMITTING ──▶ IDLE
                          │
                          ├─locked / error──▶ IDLE
                          │
                          └─conflict──▶ AWAITING_CHOICE ──confirm(mode)──▶ SUBMITTING ──▶ IDLE
                                              │
                                              └──cancel()──▶ IDLE

The flow owns the form, the pending confirmation and the notices shown
to the operator.  It talks to the data layer only through an
`AssignmentBackend`, so the same flow drives the HTTP client, a CLI or
the tests.  Nothing is retried: after an error the operator starts
again from IDLE.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Protocol

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.identity import User
from app.schemas import AssignItemRequest, AssignmentMode, ConflictReport, ItemLocationOut
from app.services import assignment_service, conflict_service

logger = logging.getLogger(__name__)


class FlowState(str, enum.Enum):
    IDLE = "idle"
    CHECKING = "checking"
    AWAITING_CHOICE = "awaiting_choice"
    SUBMITTING = "submitting"


class Confirmation(str, enum.Enum):
    MOVE_PRODUCT = "move_product"
    MIX_AT_LOCATION = "mix_at_location"
    MOVE_AND_MIX = "move_and_mix"


# Modes the operator may pick from each confirmation.
OFFERED_MODES: dict[Confirmation, frozenset[AssignmentMode]] = {
    Confirmation.MOVE_PRODUCT: frozenset({AssignmentMode.MOVE, AssignmentMode.ADD}),
    Confirmation.MIX_AT_LOCATION: frozenset({AssignmentMode.ADD_AND_MIX}),
    Confirmation.MOVE_AND_MIX: frozenset({AssignmentMode.MOVE_AND_MIX, AssignmentMode.ADD_AND_MIX}),
}


class FlowError(Exception):
    """Raised when an action is not valid in the current state."""


@dataclass
class AssignmentForm:
    item_id: str | None = None
    location_id: int | None = None
    client_id: str | None = None
    is_exclusive: bool = False
    requires_certificate: bool = False
    # set when editing an existing row
    assignment_id: int | None = None


@dataclass
class Notice:
    level: str
    title: str
    detail: str = ""


class AssignmentBackend(Protocol):
    async def check(self, item_id: str, location_id: int) -> ConflictReport: ...

    async def assign(self, payload: AssignItemRequest) -> ItemLocationOut: ...

    async def list_assignments(self) -> list[ItemLocationOut]: ...


class ServiceBackend:
    """Backend calling the services directly, one transaction per action."""

    def __init__(self, db: AsyncSession, user: User):
        self.db = db
        self.user_id = user.id
        self.user_name = user.full_name

    async def check(self, item_id: str, location_id: int) -> ConflictReport:
        return await conflict_service.check_assignment_conflict(item_id, location_id, self.user_id, self.db)

    async def assign(self, payload: AssignItemRequest) -> ItemLocationOut:
        try:
            row = await assignment_service.assign_item(payload, self.user_name, self.user_id, self.db)
            out = ItemLocationOut.model_validate(row)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return out

    async def list_assignments(self) -> list[ItemLocationOut]:
        _, rows = await assignment_service.list_assignments(self.db, limit=10_000)
        return [ItemLocationOut.model_validate(r) for r in rows]


@dataclass
class AssignmentFlow:
    backend: AssignmentBackend
    state: FlowState = FlowState.IDLE
    form: AssignmentForm = field(default_factory=AssignmentForm)
    pending: Confirmation | None = None
    report: ConflictReport | None = None
    assignments: list[ItemLocationOut] = field(default_factory=list)
    notices: list[Notice] = field(default_factory=list)

    # ── Helpers ──────────────────────────────────────────────────────
    def _notify(self, level: str, title: str, detail: str = "") -> None:
        self.notices.append(Notice(level=level, title=title, detail=detail))

    def _to_idle(self) -> None:
        self.state = FlowState.IDLE
        self.pending = None

    def reset_form(self) -> None:
        self.form = AssignmentForm()

    def edit(self, row: ItemLocationOut) -> None:
        self.form = AssignmentForm(
            item_id=row.item_id,
            location_id=row.location_id,
            client_id=row.client_id,
            is_exclusive=row.is_exclusive,
            requires_certificate=row.requires_certificate,
            assignment_id=row.id,
        )

    async def refresh(self) -> None:
        self.assignments = await self.backend.list_assignments()

    # ── Actions ──────────────────────────────────────────────────────
    async def submit(self, mode: AssignmentMode | None = None) -> FlowState:
        if self.state is not FlowState.IDLE:
            raise FlowError(f"Cannot submit while {self.state.value}")

        if not self.form.item_id or not self.form.location_id:
            self._notify("error", "Incomplete data", "Select a product and a location.")
            return self.state

        if mode is not None:
            return await self._write(mode)

        self.state = FlowState.CHECKING
        try:
            report = await self.backend.check(self.form.item_id, self.form.location_id)
        except (HTTPException, SQLAlchemyError) as exc:
            logger.error("Conflict check failed: %s", exc)
            self._notify("error", "Check failed", _describe(exc))
            self._to_idle()
            return self.state

        self.report = report
        if report.is_locked:
            self._notify(
                "error",
                "Location locked",
                f"This location is being edited by {report.locked_by or 'another user'}. Try again later.",
            )
            self._to_idle()
            return self.state

        # edits keep their location, so only the lock matters
        if self.form.assignment_id is not None:
            return await self._write(AssignmentMode.ADD)

        if report.product_has_other_locations and report.location_has_other_products:
            self.pending = Confirmation.MOVE_AND_MIX
        elif report.product_has_other_locations:
            self.pending = Confirmation.MOVE_PRODUCT
        elif report.location_has_other_products:
            self.pending = Confirmation.MIX_AT_LOCATION
        else:
            return await self._write(AssignmentMode.ADD)

        self.state = FlowState.AWAITING_CHOICE
        return self.state

    async def confirm(self, mode: AssignmentMode) -> FlowState:
        if self.state is not FlowState.AWAITING_CHOICE or self.pending is None:
            raise FlowError("Nothing to confirm")
        if mode not in OFFERED_MODES[self.pending]:
            raise FlowError(f"Mode {mode.value} is not offered for {self.pending.value}")
        return await self._write(mode)

    def cancel(self) -> FlowState:
        if self.state is FlowState.AWAITING_CHOICE:
            self.report = None
        self._to_idle()
        return self.state

    async def _write(self, mode: AssignmentMode) -> FlowState:
        self.state = FlowState.SUBMITTING
        editing = self.form.assignment_id is not None
        payload = AssignItemRequest(
            id=self.form.assignment_id,
            item_id=self.form.item_id,
            location_id=self.form.location_id,
            client_id=self.form.client_id,
            is_exclusive=self.form.is_exclusive,
            requires_certificate=self.form.requires_certificate,
            mode=mode,
        )
        try:
            await self.backend.assign(payload)
        except (HTTPException, SQLAlchemyError) as exc:
            logger.error("Failed to save item assignment: %s", exc)
            self._notify("error", "Could not save the assignment", _describe(exc))
            self._to_idle()
            return self.state

        self._notify("success", "Assignment updated" if editing else "Assignment created")
        self.reset_form()
        self.report = None
        self._to_idle()
        try:
            await self.refresh()
        except (HTTPException, SQLAlchemyError) as exc:
            logger.error("Failed to reload item assignments: %s", exc)
            self._notify("warning", "Could not reload the assignments", _describe(exc))
        return self.state


def _describe(exc: Exception) -> str:
    if isinstance(exc, HTTPException):
        detail = exc.detail
        if isinstance(detail, dict):
            return str(detail.get("message", detail))
        return str(detail)
    return "Unexpected database error"
