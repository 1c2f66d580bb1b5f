import logging
from dataclasses import dataclass

import jwt

logger = logging.getLogger(__name__)

ROLE_STUDENT = 'student'
ROLE_HOD = 'hod'


class SessionError(Exception):
    """Raised when an access token cannot be turned into a session."""


@dataclass(frozen=True)
class SessionUser:
    email: str
    role: str
    id: str | None = None
    name: str | None = None

    @property
    def is_hod(self) -> bool:
        return self.role == ROLE_HOD


def read_token_claims(token: str) -> dict:
    # The appointments service verifies the signature; the client only reads claims.
    try:
        return jwt.decode(token, options={'verify_signature': False})
    except jwt.PyJWTError as exc:
        raise SessionError('Access token could not be decoded.') from exc


class SessionContext:
    """Signed-in identity handed explicitly to the API client and dashboards.

    A context is established once at session start from the access token and
    cleared on logout. Components only read from it.
    """

    def __init__(self) -> None:
        self._token: str | None = None
        self._user: SessionUser | None = None

    @property
    def user(self) -> SessionUser | None:
        return self._user

    @property
    def access_token(self) -> str | None:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def role(self) -> str | None:
        return self._user.role if self._user else None

    def establish(self, token: str) -> SessionUser:
        claims = read_token_claims(token)

        email = (claims.get('sub') or claims.get('email') or '').strip().lower()
        if not email:
            raise SessionError('Access token has no subject.')

        role = (claims.get('role') or ROLE_STUDENT).strip().lower()
        user_id = claims.get('id')

        self._token = token
        self._user = SessionUser(
            email=email,
            role=role,
            id=str(user_id) if user_id is not None else None,
            name=claims.get('name'),
        )
        logger.info('Session established for %s (%s)', email, role)
        return self._user

    def clear(self) -> None:
        if self._user is not None:
            logger.info('Session cleared for %s', self._user.email)
        self._token = None
        self._user = None
