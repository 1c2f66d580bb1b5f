import logging
from typing import Callable

from pydantic import BaseModel

from portal.api.client import RequestError
from portal.auth.session import SessionContext
from portal.components.appointment_list import AppointmentList, ListView
from portal.components.booking_form import BookingForm, BookingFormView
from portal.models.appointment import APPROVED, COMPLETED, PENDING, REJECTED, Appointment

logger = logging.getLogger(__name__)

FILTER_ALL = 'all'
HOD_FILTERS = (FILTER_ALL, PENDING, APPROVED, REJECTED)


class AppointmentStats(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    completed: int = 0


def summarize(appointments: list[Appointment]) -> AppointmentStats:
    def count(status: str) -> int:
        return sum(1 for appointment in appointments if appointment.status == status)

    return AppointmentStats(
        total=len(appointments),
        pending=count(PENDING),
        approved=count(APPROVED),
        rejected=count(REJECTED),
        completed=count(COMPLETED),
    )


class AppointmentFeed:
    """The full appointment collection, re-fetched as a whole on every refresh."""

    def __init__(self, api):
        self.api = api
        self.appointments: list[Appointment] = []
        self.loading = True
        self.error: str | None = None

    def refresh(self) -> list[Appointment]:
        self.loading = True
        try:
            self.appointments = self.api.list_appointments()
            self.error = None
        except RequestError as exc:
            logger.exception('Error fetching appointments')
            self.error = exc.message or 'Failed to load appointments'
        finally:
            self.loading = False
        return self.appointments


class DashboardView(BaseModel):
    user_name: str | None = None
    user_email: str | None = None
    stats: AppointmentStats
    loading: bool
    error: str | None = None
    appointment_list: ListView | None = None
    status_filter: str | None = None
    filter_counts: dict[str, int] = {}
    show_book_form: bool = False
    booking_form: BookingFormView | None = None


class _Dashboard:
    is_student = False

    def __init__(
        self,
        api,
        session: SessionContext,
        confirm: Callable[[str], bool] | None = None,
        alert: Callable[[str], None] | None = None,
    ):
        self.api = api
        self.session = session
        self.feed = AppointmentFeed(api)
        self.appointment_list = AppointmentList(
            api,
            on_update=self.refresh,
            is_student=self.is_student,
            confirm=confirm,
            alert=alert,
        )

    @property
    def appointments(self) -> list[Appointment]:
        return self.feed.appointments

    @property
    def stats(self) -> AppointmentStats:
        return summarize(self.feed.appointments)

    def mount(self) -> None:
        self.refresh()

    def visible_appointments(self) -> list[Appointment]:
        return self.feed.appointments

    def refresh(self) -> None:
        self.feed.refresh()
        self.appointment_list.set_appointments(self.feed.appointments)

    def logout(self) -> None:
        self.session.clear()

    def render(self) -> DashboardView:
        user = self.session.user
        return DashboardView(
            user_name=user.name if user else None,
            user_email=user.email if user else None,
            stats=self.stats,
            loading=self.feed.loading,
            error=self.feed.error,
            appointment_list=(
                None if self.feed.loading else self.appointment_list.render(self.visible_appointments())
            ),
            **self._view_extras(),
        )

    def _view_extras(self) -> dict:
        return {}


class StudentDashboard(_Dashboard):
    is_student = True

    def __init__(self, api, session: SessionContext, confirm=None, alert=None):
        super().__init__(api, session, confirm=confirm, alert=alert)
        self.show_book_form = False
        self.booking_form = BookingForm(api, on_success=self.handle_appointment_created)

    def toggle_book_form(self) -> bool:
        self.show_book_form = not self.show_book_form
        return self.show_book_form

    def handle_appointment_created(self) -> None:
        self.show_book_form = False
        self.refresh()

    def _view_extras(self) -> dict:
        return {
            'show_book_form': self.show_book_form,
            'booking_form': self.booking_form.render() if self.show_book_form else None,
        }


class HodDashboard(_Dashboard):
    is_student = False

    def __init__(self, api, session: SessionContext, confirm=None, alert=None):
        super().__init__(api, session, confirm=confirm, alert=alert)
        self.filter = FILTER_ALL

    def set_filter(self, value: str) -> None:
        if value not in HOD_FILTERS:
            raise ValueError(f'Unknown status filter: {value}')
        self.filter = value

    def filter_counts(self) -> dict[str, int]:
        appointments = self.feed.appointments
        counts = {FILTER_ALL: len(appointments)}
        for status in HOD_FILTERS[1:]:
            counts[status] = sum(1 for appointment in appointments if appointment.status == status)
        return counts

    def visible_appointments(self) -> list[Appointment]:
        if self.filter == FILTER_ALL:
            return list(self.feed.appointments)
        return [appointment for appointment in self.feed.appointments if appointment.status == self.filter]

    def _view_extras(self) -> dict:
        return {'status_filter': self.filter, 'filter_counts': self.filter_counts()}


def build_dashboard(api, session: SessionContext, confirm=None, alert=None) -> _Dashboard:
    user = session.user
    if user is not None and user.is_hod:
        return HodDashboard(api, session, confirm=confirm, alert=alert)
    return StudentDashboard(api, session, confirm=confirm, alert=alert)
