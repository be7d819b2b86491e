import datetime
import logging
from typing import Callable, Optional

from fastapi import Depends, Request, Response
from fastapi.security import APIKeyCookie, HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from src.api.config import ConfigurationError, Settings
from src.api.errors import InvalidToken, NoTokenFound, UserNotFound
from src.db.db import get_db
from src.db.models import User

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "token"

bearer_scheme = HTTPBearer(auto_error=False)
cookie_scheme = APIKeyCookie(name=TOKEN_COOKIE, auto_error=False)


def set_token_cookie(response: Response, token: str, settings: Settings) -> None:
    """HTTP-only, SameSite=strict token cookie; secure in production."""
    response.set_cookie(
        key=TOKEN_COOKIE,
        value=token,
        max_age=settings.token_expire_days * 24 * 60 * 60,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.is_production,
    )


# PUBLIC_INTERFACE
class TokenService:
    """
    Issues and verifies signed, time-limited identity tokens.
    Stateless: nothing is stored server-side, so verification never touches the database.
    """

    def __init__(
        self,
        secret: Optional[str],
        algorithm: str = "HS256",
        expires_in: datetime.timedelta = datetime.timedelta(days=30),
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        self._secret = secret
        self.algorithm = algorithm
        self.expires_in = expires_in
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_in=datetime.timedelta(days=settings.token_expire_days),
        )

    def _require_secret(self) -> str:
        if not self._secret:
            raise ConfigurationError("JWT_SECRET is not defined")
        return self._secret

    def issue(self, user_id: str) -> str:
        """Generate a token embedding {id, iat, exp} for the given user id."""
        secret = self._require_secret()
        issued_at = self._clock()
        payload = {
            "id": str(user_id),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.expires_in).timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def verify(self, token: str) -> dict:
        """Return {"id": user_id} or raise InvalidToken."""
        secret = self._require_secret()
        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm])
        except JWTError as exc:
            raise InvalidToken() from exc
        user_id = payload.get("id")
        if not user_id:
            raise InvalidToken()
        return {"id": user_id}


# PUBLIC_INTERFACE
def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def extract_token(
    credentials: Optional[HTTPAuthorizationCredentials],
    cookie_token: Optional[str],
) -> str:
    """Authorization header first, then the token cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    if cookie_token:
        return cookie_token
    raise NoTokenFound()


# PUBLIC_INTERFACE
def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    cookie_token: Optional[str] = Depends(cookie_scheme),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """Resolve the caller from a bearer header or token cookie; 401 otherwise."""
    try:
        token = extract_token(credentials, cookie_token)
    except NoTokenFound:
        logger.info("No token on %s %s", request.method, request.url.path)
        raise

    try:
        payload = tokens.verify(token)
    except InvalidToken:
        logger.info("Rejected invalid token on %s %s", request.method, request.url.path)
        raise

    user = db.get(User, payload["id"])
    if user is None:
        logger.warning("Token refers to missing user %s", payload["id"])
        raise UserNotFound()

    request.state.user = user
    return user
