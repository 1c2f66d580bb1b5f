"""Appointment cards with role and status dependent actions.

Each card runs its own small state machine, kept in :class:`CardStates`:

* ``Viewing`` is the default and shows the record as fetched.
* ``Editing`` (students, pending only) holds a draft of the editable fields.
* ``UpdatingStatus`` (reviewers, pending only) holds an approve/reject draft.

Every successful mutation calls ``on_update`` so the owning dashboard can
re-fetch the whole collection; the list never patches records locally.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable

from pydantic import BaseModel

from portal.api.client import RequestError
from portal.models.appointment import (
    APPROVED,
    CANCELLED,
    COMPLETED,
    PENDING,
    REJECTED,
    REVIEW_STATUS_OPTIONS,
    Appointment,
    AppointmentDraft,
    StatusDraft,
)

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    PENDING: 'amber',
    APPROVED: 'green',
    REJECTED: 'red',
    COMPLETED: 'blue',
    CANCELLED: 'gray',
}
DEFAULT_STATUS_COLOR = 'gray'

EMPTY_LIST_MESSAGE = 'No appointments found'
DELETE_CONFIRMATION = 'Are you sure you want to delete this appointment?'

ACTION_EDIT = 'edit'
ACTION_DELETE = 'delete'
ACTION_UPDATE_STATUS = 'update_status'


class ActionNotAllowedError(Exception):
    """Raised when an action is not offered for a card's role or status."""


def get_status_color(status: str) -> str:
    return STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)


def format_date(value: date) -> str:
    return f'{value:%A}, {value:%B} {value.day}, {value.year}'


@dataclass(frozen=True)
class Viewing:
    mode = 'viewing'


@dataclass(frozen=True)
class Editing:
    draft: AppointmentDraft
    mode = 'editing'


@dataclass(frozen=True)
class UpdatingStatus:
    draft: StatusDraft
    mode = 'updating_status'


CardState = Viewing | Editing | UpdatingStatus

VIEWING = Viewing()

# Action a card must still offer for its non-default state to survive a refresh.
STATE_ACTIONS = {
    Editing: ACTION_EDIT,
    UpdatingStatus: ACTION_UPDATE_STATUS,
}


class CardStates:
    """Per-card state keyed by appointment id. Missing ids are ``Viewing``."""

    def __init__(self) -> None:
        self._states: dict[str, CardState] = {}

    def get(self, appointment_id: str) -> CardState:
        return self._states.get(appointment_id, VIEWING)

    def set(self, appointment_id: str, state: CardState) -> None:
        if isinstance(state, Viewing):
            self._states.pop(appointment_id, None)
        else:
            self._states[appointment_id] = state

    def reset(self, appointment_id: str) -> None:
        self._states.pop(appointment_id, None)

    def retain(self, appointment_ids: Iterable[str]) -> None:
        keep = set(appointment_ids)
        for appointment_id in list(self._states):
            if appointment_id not in keep:
                del self._states[appointment_id]

    def __contains__(self, appointment_id: str) -> bool:
        return appointment_id in self._states


class CardView(BaseModel):
    id: str
    title: str
    student_id: str | None = None
    student_email: str | None = None
    status: str
    status_label: str
    status_color: str
    date_label: str
    time: str
    purpose: str
    notes: str | None = None
    hod_notes: str | None = None
    mode: str
    actions: set[str] = set()
    edit_draft: AppointmentDraft | None = None
    edit_min_date: str | None = None
    status_draft: StatusDraft | None = None
    status_options: dict[str, str] = {}
    can_submit_status: bool = False


class ListView(BaseModel):
    cards: list[CardView] = []
    empty_message: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.empty_message is not None


class AppointmentList:
    def __init__(
        self,
        api,
        on_update: Callable[[], None],
        is_student: bool = False,
        confirm: Callable[[str], bool] | None = None,
        alert: Callable[[str], None] | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.api = api
        self.on_update = on_update
        self.is_student = is_student
        self.confirm = confirm or (lambda _message: False)
        self.alert = alert or (lambda message: logger.error(message))
        self.today = today
        self.states = CardStates()
        self._appointments: list[Appointment] = []

    @property
    def appointments(self) -> list[Appointment]:
        return list(self._appointments)

    def set_appointments(self, appointments: Iterable[Appointment]) -> None:
        self._appointments = list(appointments)
        self.states.retain(appointment.id for appointment in self._appointments)
        # A refresh can show a record that is no longer pending; its draft goes with it.
        for appointment in self._appointments:
            required = STATE_ACTIONS.get(type(self.states.get(appointment.id)))
            if required is not None and required not in self.actions_for(appointment):
                self.states.reset(appointment.id)

    def _find(self, appointment_id: str) -> Appointment:
        for appointment in self._appointments:
            if appointment.id == appointment_id:
                return appointment
        raise KeyError(appointment_id)

    def actions_for(self, appointment: Appointment) -> set[str]:
        if not appointment.is_pending:
            return set()
        if self.is_student:
            return {ACTION_EDIT, ACTION_DELETE}
        return {ACTION_UPDATE_STATUS}

    def _require(self, appointment_id: str, action: str) -> Appointment:
        appointment = self._find(appointment_id)
        if action not in self.actions_for(appointment):
            raise ActionNotAllowedError(
                f'{action} is not available for a {appointment.status} appointment.'
            )
        return appointment

    # Student editing

    def start_edit(self, appointment_id: str) -> AppointmentDraft:
        appointment = self._require(appointment_id, ACTION_EDIT)
        draft = AppointmentDraft.from_appointment(appointment)
        self.states.set(appointment_id, Editing(draft))
        return draft

    def change_edit(self, appointment_id: str, field: str, value: str) -> AppointmentDraft:
        state = self.states.get(appointment_id)
        if not isinstance(state, Editing):
            raise ActionNotAllowedError('Appointment is not being edited.')
        if field not in AppointmentDraft.model_fields:
            raise ValueError(f'Unknown appointment field: {field}')
        draft = state.draft.model_copy(update={field: value})
        self.states.set(appointment_id, Editing(draft))
        return draft

    def save_edit(self, appointment_id: str) -> bool:
        self._require(appointment_id, ACTION_EDIT)
        state = self.states.get(appointment_id)
        if not isinstance(state, Editing):
            raise ActionNotAllowedError('Appointment is not being edited.')

        try:
            self.api.update_appointment(appointment_id, state.draft.to_payload())
        except RequestError as exc:
            self.alert(exc.message or 'Failed to update appointment')
            return False

        logger.info('Updated appointment %s', appointment_id)
        self.states.reset(appointment_id)
        self.on_update()
        return True

    def cancel_edit(self, appointment_id: str) -> None:
        if isinstance(self.states.get(appointment_id), Editing):
            self.states.reset(appointment_id)

    # Student delete

    def delete(self, appointment_id: str) -> bool:
        self._require(appointment_id, ACTION_DELETE)
        if not self.confirm(DELETE_CONFIRMATION):
            return False

        try:
            self.api.delete_appointment(appointment_id)
        except RequestError as exc:
            self.alert(exc.message or 'Failed to delete appointment')
            return False

        logger.info('Deleted appointment %s', appointment_id)
        self.on_update()
        return True

    # Reviewer status update

    def start_status_update(self, appointment_id: str) -> StatusDraft:
        self._require(appointment_id, ACTION_UPDATE_STATUS)
        state = self.states.get(appointment_id)
        if isinstance(state, UpdatingStatus):
            return state.draft
        draft = StatusDraft()
        self.states.set(appointment_id, UpdatingStatus(draft))
        return draft

    def change_status_form(self, appointment_id: str, field: str, value: str) -> StatusDraft:
        state = self.states.get(appointment_id)
        if not isinstance(state, UpdatingStatus):
            raise ActionNotAllowedError('Status update has not been started.')
        if field not in StatusDraft.model_fields:
            raise ValueError(f'Unknown status field: {field}')
        draft = StatusDraft(**{**state.draft.model_dump(), field: value})
        self.states.set(appointment_id, UpdatingStatus(draft))
        return draft

    def can_submit_status(self, appointment_id: str) -> bool:
        state = self.states.get(appointment_id)
        if not isinstance(state, UpdatingStatus) or state.draft.status == '':
            return False
        return ACTION_UPDATE_STATUS in self.actions_for(self._find(appointment_id))

    def submit_status_update(self, appointment_id: str) -> bool:
        self._require(appointment_id, ACTION_UPDATE_STATUS)
        if not self.can_submit_status(appointment_id):
            return False
        draft = self.states.get(appointment_id).draft

        try:
            self.api.update_status(appointment_id, draft.to_payload())
        except RequestError as exc:
            self.alert(exc.message or 'Failed to update status')
            return False

        logger.info('Set appointment %s to %s', appointment_id, draft.status)
        self.states.reset(appointment_id)
        self.on_update()
        return True

    def cancel_status_update(self, appointment_id: str) -> None:
        if isinstance(self.states.get(appointment_id), UpdatingStatus):
            self.states.reset(appointment_id)

    # Rendering

    def _render_card(self, appointment: Appointment) -> CardView:
        state = self.states.get(appointment.id)
        card = CardView(
            id=appointment.id,
            title='My Appointment' if self.is_student else appointment.student_name or 'Student',
            student_id=None if self.is_student else appointment.student_id or 'N/A',
            student_email=appointment.student_email,
            status=appointment.status,
            status_label=appointment.status.upper(),
            status_color=get_status_color(appointment.status),
            date_label=format_date(appointment.date),
            time=appointment.time,
            purpose=appointment.purpose,
            notes=appointment.notes or None,
            hod_notes=appointment.hod_notes or None,
            mode=state.mode,
            actions=self.actions_for(appointment),
        )

        if isinstance(state, Editing):
            card.edit_draft = state.draft
            card.edit_min_date = self.today().isoformat()
        elif isinstance(state, UpdatingStatus):
            card.status_draft = state.draft
            card.status_options = dict(REVIEW_STATUS_OPTIONS)
            card.can_submit_status = state.draft.status != ''
        return card

    def render(self, visible: Iterable[Appointment] | None = None) -> ListView:
        """Render all held appointments, or only ``visible`` when a caller filters.

        Card states stay keyed on the full collection, so a filtered-out card
        keeps its draft until it is shown again.
        """
        appointments = self._appointments if visible is None else list(visible)
        if not appointments:
            return ListView(empty_message=EMPTY_LIST_MESSAGE)
        return ListView(cards=[self._render_card(appointment) for appointment in appointments])
