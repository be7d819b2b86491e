import pytest

from conftest import SECRET
from src.api import core
from src.api.errors import UserExists
from src.api.security import TokenService
from src.db.models import Note, User
from src.db.passwords import verify_password


def make_user(db_session, **overrides):
    fields = {"name": "  Ann  ", "email": "  Ann@Example.COM ", "password": "secret12"}
    fields.update(overrides)
    user = User(**fields)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def test_password_is_hashed_on_insert(db_session):
    user = make_user(db_session)
    assert user.password != "secret12"
    assert user.password.startswith("$2")
    assert user.compare_password("secret12")
    assert not user.compare_password("secret13")


def test_name_and_email_are_normalized(db_session):
    user = make_user(db_session)
    assert user.name == "Ann"
    assert user.email == "ann@example.com"
    assert len(user.id) == 36


def test_hash_is_kept_when_password_untouched(db_session):
    user = make_user(db_session)
    stored = user.password
    user.name = "Annie"
    db_session.commit()
    db_session.refresh(user)
    assert user.password == stored


def test_hash_is_regenerated_when_password_changes(db_session):
    user = make_user(db_session)
    stored = user.password
    user.password = "another1"
    db_session.commit()
    db_session.refresh(user)
    assert user.password != stored
    assert verify_password("another1", user.password)
    assert not user.compare_password("secret12")


def test_short_password_is_refused():
    with pytest.raises(ValueError):
        User(name="Ann", email="ann@example.com", password="12345")


def test_deleting_user_keeps_their_notes(db_session):
    user = make_user(db_session)
    db_session.add(Note(title=" Keep ", content="me", user_id=user.id))
    db_session.commit()
    owner_id = user.id

    db_session.delete(user)
    db_session.commit()

    notes = db_session.query(Note).all()
    assert len(notes) == 1
    assert notes[0].user_id == owner_id
    assert notes[0].title == "Keep"


def test_verify_password_refuses_nul_bytes(db_session):
    user = make_user(db_session)
    assert not user.compare_password("secret\x0012")
    assert not verify_password("secret\x0012", user.password)


def test_nul_byte_password_is_refused_by_model():
    with pytest.raises(ValueError):
        User(name="Ann", email="ann@example.com", password="secret\x0012")


def test_concurrent_duplicate_registration_maps_to_user_exists(db_session, monkeypatch):
    make_user(db_session, email="race@x.com")
    # simulate the other request committing between the pre-check and our insert
    monkeypatch.setattr(core, "get_user_by_email", lambda db, email: None)

    with pytest.raises(UserExists):
        core.register_user(
            db_session,
            TokenService(SECRET),
            core.UserCreate(name="Late", email="RACE@x.com", password="secret12"),
        )
    assert db_session.query(User).filter(User.email == "race@x.com").count() == 1
