import logging
from datetime import date

import requests
from pydantic import ValidationError

from portal.auth.session import SessionContext
from portal.core import config
from portal.models.appointment import Appointment, AvailabilitySlot

logger = logging.getLogger(__name__)


class RequestError(Exception):
    """A failed call to the appointments service.

    ``message`` is the server-supplied human readable text when the response
    carried one, otherwise ``None``. Transport failures have no status code.
    """

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message or 'Request to the appointments service failed.')
        self.message = message
        self.status_code = status_code


def extract_error_message(body) -> str | None:
    if not isinstance(body, dict):
        return None
    message = body.get('message')
    if isinstance(message, str) and message:
        return message
    detail = body.get('detail')
    if isinstance(detail, str) and detail:
        return detail
    return None


class ApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        session: SessionContext | None = None,
        http=None,
    ):
        self.base_url = (base_url or config.API_URL).rstrip('/')
        self.session = session
        if http is None:
            http = requests.Session()
            http.verify = config.API_VERIFY_TLS
        self._http = http

    def _headers(self) -> dict:
        headers = {'Accept': 'application/json'}
        if self.session is not None and self.session.access_token:
            headers['Authorization'] = f'Bearer {self.session.access_token}'
        return headers

    def _request(self, method: str, path: str, payload: dict | None = None, allow_text: bool = False):
        url = f'{self.base_url}{path}'
        try:
            response = self._http.request(method, url, json=payload, headers=self._headers())
        except requests.RequestException as exc:
            logger.warning('%s %s failed: %s', method, url, exc)
            raise RequestError() from exc

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = extract_error_message(body)
            logger.warning('%s %s returned %s: %s', method, url, response.status_code, message)
            raise RequestError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            if allow_text:
                return response.text
            logger.warning('%s %s returned a body that is not JSON', method, url)
            raise RequestError(status_code=response.status_code) from exc

    def _parse(self, model, body):
        try:
            return model.model_validate(body)
        except ValidationError as exc:
            logger.warning('Unexpected %s in response: %s', model.__name__, exc)
            raise RequestError() from exc

    def _parse_list(self, model, body) -> list:
        if body is None:
            return []
        if not isinstance(body, list):
            logger.warning('Expected a list of %s, got %s', model.__name__, type(body).__name__)
            raise RequestError()
        return [self._parse(model, item) for item in body]

    def list_appointments(self) -> list[Appointment]:
        return self._parse_list(Appointment, self._request('GET', '/appointments'))

    def create_appointment(self, payload: dict) -> Appointment:
        return self._parse(Appointment, self._request('POST', '/appointments', payload))

    def update_appointment(self, appointment_id: str, payload: dict) -> Appointment:
        return self._parse(Appointment, self._request('PUT', f'/appointments/{appointment_id}', payload))

    def delete_appointment(self, appointment_id: str):
        # The service may confirm a delete with plain text instead of JSON.
        return self._request('DELETE', f'/appointments/{appointment_id}', allow_text=True)

    def update_status(self, appointment_id: str, payload: dict) -> Appointment:
        return self._parse(Appointment, self._request('PATCH', f'/appointments/{appointment_id}/status', payload))

    def get_availability(self, slot_date: date | str) -> list[AvailabilitySlot]:
        if isinstance(slot_date, date):
            slot_date = slot_date.isoformat()
        return self._parse_list(AvailabilitySlot, self._request('GET', f'/appointments/availability/{slot_date}'))
