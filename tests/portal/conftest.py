from datetime import date, timedelta
from itertools import count

import jwt
import pytest
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.testclient import TestClient
from pydantic import BaseModel

from portal.api.client import ApiClient
from portal.auth.session import SessionContext

TEST_BASE_URL = 'http://testserver/api'
OPEN_TIMES = ('09:00', '10:00', '11:00', '14:00')


class AppointmentPayload(BaseModel):
    date: str
    time: str
    purpose: str
    notes: str = ''


class StatusPayload(BaseModel):
    status: str
    hodNotes: str = ''


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'message': message})


def create_backend_app() -> FastAPI:
    """In-memory stand-in for the appointments service."""
    app = FastAPI()
    router = APIRouter()
    app.state.appointments = {}
    app.state.requests = []
    ids = count(1)

    @app.middleware('http')
    async def record_requests(request: Request, call_next):
        app.state.requests.append((request.method, request.url.path, request.headers.get('authorization')))
        return await call_next(request)

    def booked_times(slot_date: str) -> set[str]:
        return {
            record['time']
            for record in app.state.appointments.values()
            if record['date'][:10] == slot_date and record['status'] in ('pending', 'approved')
        }

    @router.get('/appointments')
    def list_appointments():
        return list(app.state.appointments.values())

    @router.get('/appointments/availability/{slot_date}')
    def get_availability(slot_date: str):
        taken = booked_times(slot_date)
        return [{'time': slot_time, 'available': slot_time not in taken} for slot_time in OPEN_TIMES]

    @router.post('/appointments', status_code=status.HTTP_201_CREATED)
    def create_appointment(data: AppointmentPayload):
        if data.time in booked_times(data.date):
            return _error(status.HTTP_409_CONFLICT, 'This time slot is already booked')
        appointment_id = str(next(ids))
        record = {
            '_id': appointment_id,
            'studentId': 'S100',
            'studentName': 'Ada Student',
            'studentEmail': 'ada@example.edu',
            'date': f'{data.date}T00:00:00.000Z',
            'time': data.time,
            'purpose': data.purpose,
            'notes': data.notes,
            'status': 'pending',
            'hodNotes': '',
        }
        app.state.appointments[appointment_id] = record
        return record

    @router.put('/appointments/{appointment_id}')
    def update_appointment(appointment_id: str, data: AppointmentPayload):
        record = app.state.appointments.get(appointment_id)
        if record is None:
            return _error(status.HTTP_404_NOT_FOUND, 'Appointment not found')
        if record['status'] != 'pending':
            return _error(status.HTTP_400_BAD_REQUEST, 'Only pending appointments can be edited')
        record.update(data.model_dump())
        return record

    @router.delete('/appointments/{appointment_id}')
    def delete_appointment(appointment_id: str):
        if app.state.appointments.pop(appointment_id, None) is None:
            return _error(status.HTTP_404_NOT_FOUND, 'Appointment not found')
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.patch('/appointments/{appointment_id}/status')
    def update_status(appointment_id: str, data: StatusPayload):
        record = app.state.appointments.get(appointment_id)
        if record is None:
            return _error(status.HTTP_404_NOT_FOUND, 'Appointment not found')
        record['status'] = data.status
        record['hodNotes'] = data.hodNotes
        return record

    app.include_router(router, prefix='/api')
    return app


def make_token(email: str = 'ada@example.edu', role: str = 'student', **claims) -> str:
    payload = {'sub': email, 'role': role, **claims}
    return jwt.encode(payload, 'portal-test-secret-with-thirty-two-bytes', algorithm='HS256')


@pytest.fixture
def backend_app() -> FastAPI:
    return create_backend_app()


@pytest.fixture
def student_session() -> SessionContext:
    session = SessionContext()
    session.establish(make_token(name='Ada Student', id='S100'))
    return session


@pytest.fixture
def hod_session() -> SessionContext:
    session = SessionContext()
    session.establish(make_token(email='hod@example.edu', role='hod', name='Dr. Head'))
    return session


@pytest.fixture
def make_api(backend_app):
    def _make_api(session: SessionContext | None = None) -> ApiClient:
        return ApiClient(base_url=TEST_BASE_URL, session=session, http=TestClient(backend_app))

    return _make_api


@pytest.fixture
def tomorrow() -> date:
    return date.today() + timedelta(days=1)
