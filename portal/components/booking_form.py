import logging
from datetime import date
from itertools import count
from typing import Callable

from pydantic import BaseModel

from portal.api.client import RequestError
from portal.models.appointment import AppointmentDraft, AvailabilitySlot

logger = logging.getLogger(__name__)

SLOTS_ERROR_MESSAGE = 'Failed to load available time slots'
BOOKING_ERROR_MESSAGE = 'Failed to book appointment'
NO_SLOTS_WARNING = 'No available time slots for this date. Please choose another date.'


class SlotOption(BaseModel):
    value: str
    label: str
    disabled: bool


class BookingFormView(BaseModel):
    date: str
    time: str
    purpose: str
    notes: str
    min_date: str
    time_disabled: bool
    time_placeholder: str
    time_options: list[SlotOption]
    available_count_label: str | None = None
    no_slots_warning: str | None = None
    error: str | None = None
    submit_disabled: bool
    submit_label: str


class BookingForm:
    """State for the new-appointment form.

    Availability is fetched whenever the date changes. Each fetch takes a
    token from a counter and its result is only applied while that token is
    still the latest, so a slow response for an old date cannot replace the
    slots of the date currently selected.
    """

    def __init__(self, api, on_success: Callable[[], None], today: Callable[[], date] = date.today):
        self.api = api
        self.on_success = on_success
        self.today = today
        self.fields = AppointmentDraft()
        self.slots: list[AvailabilitySlot] = []
        self.loading_slots = False
        self.submitting = False
        self.error = ''
        self._tokens = count(1)
        self._latest_token = 0

    @property
    def available_count(self) -> int:
        return sum(1 for slot in self.slots if slot.available)

    def set_field(self, field: str, value: str) -> None:
        if field == 'date':
            self.select_date(value)
        elif field == 'time':
            self.select_time(value)
        elif field in ('purpose', 'notes'):
            self.fields = self.fields.model_copy(update={field: value})
        else:
            raise ValueError(f'Unknown booking field: {field}')

    def select_date(self, value: date | str) -> None:
        if isinstance(value, date):
            value = value.isoformat()
        self.fields = self.fields.model_copy(update={'date': value, 'time': ''})
        self.slots = []

        if not value:
            # Drop any fetch still in flight for the previous date.
            self._latest_token = next(self._tokens)
            self.loading_slots = False
            return

        token = self.begin_slot_fetch()
        try:
            slots = self.api.get_availability(value)
        except RequestError:
            logger.exception('Error fetching available slots for %s', value)
            self.fail_slot_fetch(token)
            return
        self.finish_slot_fetch(token, slots)

    def begin_slot_fetch(self) -> int:
        self._latest_token = next(self._tokens)
        self.loading_slots = True
        return self._latest_token

    def finish_slot_fetch(self, token: int, slots: list[AvailabilitySlot]) -> bool:
        if token != self._latest_token:
            logger.debug('Discarding stale availability response %s', token)
            return False
        self.slots = list(slots)
        self.loading_slots = False
        return True

    def fail_slot_fetch(self, token: int) -> bool:
        if token != self._latest_token:
            return False
        self.error = SLOTS_ERROR_MESSAGE
        self.loading_slots = False
        return True

    def select_time(self, value: str) -> None:
        if value:
            slot = next((slot for slot in self.slots if slot.time == value), None)
            if slot is None:
                raise ValueError(f'{value} is not an offered time for {self.fields.date}.')
            if not slot.available:
                raise ValueError(f'{value} is not available.')
        self.fields = self.fields.model_copy(update={'time': value})

    def _date_in_range(self) -> bool:
        try:
            selected = date.fromisoformat(self.fields.date)
        except ValueError:
            return False
        return selected >= self.today()

    @property
    def can_submit(self) -> bool:
        return bool(
            not self.submitting
            and self.fields.date
            and self.fields.time
            and self.fields.purpose
            and self._date_in_range()
        )

    def reset(self) -> None:
        self.fields = AppointmentDraft()
        self.slots = []
        self._latest_token = next(self._tokens)
        self.loading_slots = False

    def submit(self) -> bool:
        if not self.can_submit:
            return False

        self.error = ''
        self.submitting = True
        try:
            self.api.create_appointment(self.fields.to_payload())
        except RequestError as exc:
            self.error = exc.message or BOOKING_ERROR_MESSAGE
            return False
        finally:
            self.submitting = False

        logger.info('Booked appointment on %s at %s', self.fields.date, self.fields.time)
        self.reset()
        self.on_success()
        return True

    def render(self) -> BookingFormView:
        has_date = bool(self.fields.date)
        available = self.available_count

        if self.loading_slots:
            placeholder = 'Loading slots...'
        elif has_date:
            placeholder = 'Select a time'
        else:
            placeholder = 'Select date first'

        return BookingFormView(
            date=self.fields.date,
            time=self.fields.time,
            purpose=self.fields.purpose,
            notes=self.fields.notes,
            min_date=self.today().isoformat(),
            time_disabled=not has_date or self.loading_slots,
            time_placeholder=placeholder,
            time_options=[
                SlotOption(
                    value=slot.time,
                    label=slot.time if slot.available else f'{slot.time} (Unavailable)',
                    disabled=not slot.available,
                )
                for slot in self.slots
            ],
            available_count_label=f'({available} available)' if has_date and available > 0 else None,
            no_slots_warning=(
                NO_SLOTS_WARNING if has_date and available == 0 and not self.loading_slots else None
            ),
            error=self.error or None,
            submit_disabled=not self.can_submit,
            submit_label='Booking...' if self.submitting else 'Book Appointment',
        )
