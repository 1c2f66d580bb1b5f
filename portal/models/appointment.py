"""Appointment model definitions."""

from datetime import date

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

PENDING = 'pending'
APPROVED = 'approved'
REJECTED = 'rejected'
COMPLETED = 'completed'
CANCELLED = 'cancelled'

APPOINTMENT_STATUSES = (PENDING, APPROVED, REJECTED, COMPLETED, CANCELLED)

# Transitions a reviewer may choose from a pending appointment.
REVIEW_STATUS_OPTIONS = {
    APPROVED: 'Approve',
    REJECTED: 'Reject',
}


def _date_part(value):
    if isinstance(value, str) and 'T' in value:
        return value.split('T', 1)[0]
    return value


class Appointment(BaseModel):
    """Represents an appointment as returned by the appointments service."""

    id: str = Field(validation_alias=AliasChoices('id', '_id'))
    student_id: str | None = None
    student_name: str | None = None
    student_email: str | None = None
    date: date
    time: str
    purpose: str
    notes: str | None = None
    status: str = PENDING
    hod_notes: str | None = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @field_validator('id', 'student_id', mode='before')
    @classmethod
    def coerce_identifier(cls, value):
        if value is None:
            return None
        return str(value)

    @field_validator('date', mode='before')
    @classmethod
    def strip_time_component(cls, value):
        return _date_part(value)

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING


class AvailabilitySlot(BaseModel):
    """A single bookable time on a requested date."""

    time: str
    available: bool


class AppointmentDraft(BaseModel):
    date: str = ''
    time: str = ''
    purpose: str = ''
    notes: str = ''

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> 'AppointmentDraft':
        return cls(
            date=appointment.date.isoformat(),
            time=appointment.time,
            purpose=appointment.purpose,
            notes=appointment.notes or '',
        )

    def to_payload(self) -> dict:
        return self.model_dump()


class StatusDraft(BaseModel):
    status: str = ''
    hod_notes: str = ''

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        if value and value not in REVIEW_STATUS_OPTIONS:
            raise ValueError('Status must be approved or rejected.')
        return value

    def to_payload(self) -> dict:
        return {'status': self.status, 'hodNotes': self.hod_notes}
