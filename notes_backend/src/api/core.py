import datetime
import logging
import uuid
from typing import Optional, List

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.api.errors import InvalidCredentials, InvalidId, NoteNotFound, UserExists
from src.api.security import TokenService
from src.db.models import User, Note, utcnow
from src.db.passwords import MIN_PASSWORD_LENGTH

logger = logging.getLogger(__name__)

# ==== Pydantic Schemas ====


def _wire(name: str, alias: str):
    # accepts either spelling on input, always emits the wire name
    return Field(validation_alias=AliasChoices(name, alias), serialization_alias=alias)


def _required_text(value: str, label: str) -> str:
    if not value:
        raise ValueError(f"{label} is required")
    return value


# PUBLIC_INTERFACE
class UserCreate(BaseModel):
    """Schema for user registration input."""
    name: str
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _required_text(value.strip(), "Name")

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        # bcrypt cannot hash NUL bytes
        if "\x00" in value:
            raise ValueError("Password must not contain NUL characters")
        return value


# PUBLIC_INTERFACE
class UserLogin(BaseModel):
    """Schema for login input."""
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


# PUBLIC_INTERFACE
class UserRead(BaseModel):
    """Schema for returning user info (without password)."""
    id: str = _wire("id", "_id")
    name: str
    email: str
    created_at: datetime.datetime = _wire("created_at", "createdAt")
    updated_at: datetime.datetime = _wire("updated_at", "updatedAt")

    model_config = {"from_attributes": True}


# PUBLIC_INTERFACE
class AuthResponse(BaseModel):
    """Returned by register and login: identity plus a bearer token."""
    id: str = _wire("id", "_id")
    name: str
    email: str
    token: str


# PUBLIC_INTERFACE
class MessageResponse(BaseModel):
    message: str


# PUBLIC_INTERFACE
class NoteCreate(BaseModel):
    """Input schema for creating a note."""
    title: str
    content: str

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        return _required_text(value.strip(), "Title")

    @field_validator("content")
    @classmethod
    def _check_content(cls, value: str) -> str:
        return _required_text(value, "Content")


# PUBLIC_INTERFACE
class NoteUpdate(BaseModel):
    """
    Input schema for a partial update.
    Only keys present in the body are applied; a present key must carry a non-empty value.
    """
    title: Optional[str] = None
    content: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Title cannot be empty")
        return _required_text(value.strip(), "Title")

    @field_validator("content")
    @classmethod
    def _check_content(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Content cannot be empty")
        return _required_text(value, "Content")

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


# PUBLIC_INTERFACE
class NoteRead(BaseModel):
    """Returned data for a note."""
    id: str = _wire("id", "_id")
    title: str
    content: str
    user_id: str = _wire("user_id", "userId")
    created_at: datetime.datetime = _wire("created_at", "createdAt")
    updated_at: datetime.datetime = _wire("updated_at", "updatedAt")

    model_config = {"from_attributes": True}


# === Credential store and verification ===

# PUBLIC_INTERFACE
def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Get a user by email address (normalized before lookup)."""
    return db.scalars(select(User).where(User.email == email.strip().lower())).first()


# PUBLIC_INTERFACE
def register_user(db: Session, tokens: TokenService, user: UserCreate) -> AuthResponse:
    """Create a new user and issue a token; raises UserExists if the email is taken."""
    if get_user_by_email(db, user.email):
        raise UserExists()

    db_user = User(name=user.name, email=user.email, password=user.password)
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        # lost a race against a concurrent registration with the same email
        db.rollback()
        raise UserExists()
    db.refresh(db_user)
    logger.info("Registered user %s", db_user.id)
    return AuthResponse(id=db_user.id, name=db_user.name, email=db_user.email, token=tokens.issue(db_user.id))


# PUBLIC_INTERFACE
def authenticate_user(db: Session, email: str, password: str) -> User:
    """Authenticate user by email and password; unknown email and wrong password fail alike."""
    user = get_user_by_email(db, email)
    if user is None or not user.compare_password(password):
        logger.info("Failed login attempt")
        raise InvalidCredentials()
    return user


# PUBLIC_INTERFACE
def delete_user(db: Session, user: User) -> None:
    """Remove the account. Owned notes are left in place."""
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s", user.id)


# === Note access control ===

def _parse_note_id(note_id: str) -> str:
    try:
        return str(uuid.UUID(str(note_id)))
    except ValueError:
        raise InvalidId()


# PUBLIC_INTERFACE
def list_notes(db: Session, user: User) -> List[Note]:
    """List notes owned by the user, newest first."""
    query = select(Note).where(Note.user_id == user.id).order_by(Note.created_at.desc())
    return list(db.scalars(query).all())


# PUBLIC_INTERFACE
def get_note(db: Session, user: User, note_id: str) -> Note:
    """Get a single note owned by user, raises 404 if not found or not theirs."""
    query = select(Note).where(Note.id == _parse_note_id(note_id), Note.user_id == user.id)
    note = db.scalars(query).first()
    if note is None:
        raise NoteNotFound()
    return note


# PUBLIC_INTERFACE
def create_note(db: Session, user: User, note: NoteCreate) -> Note:
    """Create a note for the authenticated user."""
    db_note = Note(title=note.title, content=note.content, user_id=user.id)
    db.add(db_note)
    db.commit()
    db.refresh(db_note)
    return db_note


# PUBLIC_INTERFACE
def update_note(db: Session, user: User, note_id: str, note_update: NoteUpdate) -> Note:
    """Apply the fields present in the update; no version check, last write wins."""
    note = get_note(db, user, note_id)
    for field, value in note_update.changes().items():
        setattr(note, field, value)
    note.updated_at = utcnow()
    db.commit()
    db.refresh(note)
    return note


# PUBLIC_INTERFACE
def delete_note(db: Session, user: User, note_id: str) -> None:
    """Remove a note. Raises 404 if not found or not the user's."""
    note = get_note(db, user, note_id)
    db.delete(note)
    db.commit()
