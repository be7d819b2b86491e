import datetime
import uuid

from sqlalchemy import Column, String, DateTime, Text, Index, event, inspect
from sqlalchemy.orm import declarative_base, validates

from src.db.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password

Base = declarative_base()


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# PUBLIC_INTERFACE
class User(Base):
    """
    Database model for a user.
    `password` always holds a bcrypt hash once flushed.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates("name")
    def _normalize_name(self, key, value):
        return value.strip() if isinstance(value, str) else value

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if isinstance(value, str) else value

    @validates("password")
    def _check_password(self, key, value):
        if value is None or len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if "\x00" in value:
            raise ValueError("Password must not contain NUL characters")
        return value

    def compare_password(self, candidate: str) -> bool:
        """One-way comparison of a raw password against the stored hash."""
        return verify_password(candidate, self.password)


def _hash_password_if_modified(mapper, connection, target: User) -> None:
    # only a freshly assigned raw value is hashed; untouched hashes are left alone
    if inspect(target).attrs.password.history.added:
        target.password = hash_password(target.password)


event.listen(User, "before_insert", _hash_password_if_modified)
event.listen(User, "before_update", _hash_password_if_modified)


# PUBLIC_INTERFACE
class Note(Base):
    """
    Database model for a note.
    `user_id` is a bare reference: deleting the owner leaves the note in place.
    """
    __tablename__ = "notes"
    __table_args__ = (Index("ix_notes_user_id_created_at", "user_id", "created_at"),)

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    user_id = Column(String(36), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates("title")
    def _normalize_title(self, key, value):
        return value.strip() if isinstance(value, str) else value
