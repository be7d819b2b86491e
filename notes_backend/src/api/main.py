import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Depends, Response, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from src.api.config import Settings, configure_logging, load_settings
from src.api.core import (
    UserCreate, UserLogin, UserRead, AuthResponse, MessageResponse,
    NoteCreate, NoteRead, NoteUpdate,
    register_user, authenticate_user, delete_user,
    create_note, list_notes, get_note, update_note, delete_note
)
from src.api.errors import register_error_handlers
from src.api.security import TokenService, get_current_user, get_token_service, set_token_cookie
from src.db.db import Database, get_db
from src.db.models import User

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "auth", "description": "Registration, login and account management"},
    {"name": "notes", "description": "Create, update, view, and delete your own notes"}
]


# PUBLIC_INTERFACE
def create_app(settings: Settings, database: Optional[Database] = None) -> FastAPI:
    """Build the notes API for the given settings."""
    database = database or Database(settings.database_url)
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not set; token issuing and verification will fail")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.create_all()
        yield
        database.dispose()

    app = FastAPI(
        title="Notes Backend API",
        description="FastAPI backend for personal notes (JWT auth, owner-scoped CRUD).",
        version="1.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.token_service = TokenService.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    # request metrics, scraped at /metrics
    app.state.metrics_registry = CollectorRegistry()
    Instrumentator(registry=app.state.metrics_registry).instrument(app).expose(app, tags=["health"])

    @app.get("/", tags=["health"])
    def health_check():
        """Health check root."""
        return {"message": "Healthy"}

    @app.get("/ping", tags=["health"])
    def ping():
        return {"msg": "Ping!"}

    # --- Authentication Endpoints ---

    # PUBLIC_INTERFACE
    @app.post("/api/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED,
              tags=["auth"], summary="Register a new user")
    def register(user: UserCreate, db: Session = Depends(get_db),
                 tokens: TokenService = Depends(get_token_service)):
        """Register a new user. Email must be unique (case-insensitive)."""
        return register_user(db, tokens, user)

    # PUBLIC_INTERFACE
    @app.post("/api/auth/login", response_model=AuthResponse, tags=["auth"], summary="Log in")
    def login(credentials: UserLogin, response: Response, db: Session = Depends(get_db),
              tokens: TokenService = Depends(get_token_service)):
        """
        Check email and password, return a token and also set it as an HTTP-only cookie.
        """
        user = authenticate_user(db, credentials.email, credentials.password)
        token = tokens.issue(user.id)
        set_token_cookie(response, token, settings)
        logger.info("User %s logged in", user.id)
        return AuthResponse(id=user.id, name=user.name, email=user.email, token=token)

    # PUBLIC_INTERFACE
    @app.get("/api/auth/profile", response_model=UserRead, tags=["auth"], summary="Get current user info")
    def profile(current_user: User = Depends(get_current_user)):
        """Get info on current authenticated user."""
        return current_user

    # PUBLIC_INTERFACE
    @app.delete("/api/auth/delete", response_model=MessageResponse, tags=["auth"], summary="Delete my account")
    def delete_account(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
        """Delete the authenticated account. Notes are not deleted with it."""
        delete_user(db, current_user)
        return {"message": "User deleted successfully"}

    # --- Notes Endpoints ---

    # PUBLIC_INTERFACE
    @app.get("/api/notes", response_model=List[NoteRead], tags=["notes"], summary="List my notes")
    def list_user_notes(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
        """List notes, newest first."""
        return list_notes(db, current_user)

    # PUBLIC_INTERFACE
    @app.get("/api/notes/{note_id}", response_model=NoteRead, tags=["notes"], summary="Get specific note")
    def get_user_note(note_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
        """Get a single note by ID (must be owned by the current user)."""
        return get_note(db, current_user, note_id)

    # PUBLIC_INTERFACE
    @app.post("/api/notes", response_model=NoteRead, status_code=status.HTTP_201_CREATED,
              tags=["notes"], summary="Create a new note")
    def create_user_note(note: NoteCreate, db: Session = Depends(get_db),
                         current_user: User = Depends(get_current_user)):
        """Create note belonging to authenticated user."""
        return create_note(db, current_user, note)

    # PUBLIC_INTERFACE
    @app.put("/api/notes/{note_id}", response_model=NoteRead, tags=["notes"], summary="Update a note")
    def update_user_note(note_id: str, note: NoteUpdate, db: Session = Depends(get_db),
                         current_user: User = Depends(get_current_user)):
        """Edit an existing note (must belong to user). Only the fields sent are changed."""
        return update_note(db, current_user, note_id, note)

    # PUBLIC_INTERFACE
    @app.delete("/api/notes/{note_id}", response_model=MessageResponse, tags=["notes"], summary="Delete a note")
    def delete_user_note(note_id: str, db: Session = Depends(get_db),
                         current_user: User = Depends(get_current_user)):
        """Delete one of your notes."""
        delete_note(db, current_user, note_id)
        return {"message": "Note deleted successfully"}

    return app


# PUBLIC_INTERFACE
def run() -> None:
    """Console entry point: load .env, configure logging and serve with uvicorn."""
    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
