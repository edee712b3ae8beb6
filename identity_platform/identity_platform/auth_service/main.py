from fastapi import FastAPI, Depends, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from contextlib import asynccontextmanager
import asyncio
import logging
import os
import sys

from .config import settings
from .db import SessionLocal, get_db, init_db
from .deps import (
    build_auth_service,
    get_auth_service,
    get_bearer_token,
    unauthorized,
)
from .exceptions import Conflict, EmptyPassword, InvalidCredentials, Unauthenticated, Unavailable
from .routes import health
from .schemas import (
    IdentityResponse,
    LoginRequest,
    PasswordChangeRequest,
    RegisterRequest,
    Token,
    WhoAmIResponse,
)
from .service import AuthService
from .utils.event_logger import log_auth_event


def configure_logging() -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_DIR:
        # Continue with stdout only if the log directory is not writable
        try:
            os.makedirs(settings.LOG_DIR, exist_ok=True)
            handlers.append(logging.FileHandler(os.path.join(settings.LOG_DIR, "auth_service.log")))
        except OSError as e:
            print(f"WARNING: Could not set up file logging: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


configure_logging()
logger = logging.getLogger(__name__)


def purge_expired_sessions() -> int:
    with SessionLocal() as db:
        return build_auth_service(db).purge_expired_sessions()


async def sweep_sessions(interval: float) -> None:
    """Periodically delete sessions past their retention window."""
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(purge_expired_sessions)
        except Unavailable as e:
            logger.warning("Session sweep skipped: %s", e)
        except Exception:
            # Keep sweeping; only cancellation ends the task
            logger.exception("Session sweep failed")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    sweeper = None
    if settings.SESSION_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(sweep_sessions(settings.SESSION_SWEEP_INTERVAL_SECONDS))
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass


app = FastAPI(
    title="Identity Platform Auth Service",
    description="Credential verification, access tokens and revocable sessions",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)


@app.exception_handler(Unavailable)
async def unavailable_handler(_request: Request, exc: Unavailable):
    logger.error("Backing store unavailable: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable"},
    )


@app.post("/register", response_model=IdentityResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    try:
        identity = service.register(payload.username, payload.email, payload.password)
    except Conflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except EmptyPassword as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    response = IdentityResponse.model_validate(identity)
    log_auth_event("registration", db, identity_id=response.id, username=response.username, request=request)
    return response


@app.post("/login", response_model=Token)
def login(
    credentials: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    try:
        issued = service.login(credentials.username, credentials.password)
    except InvalidCredentials as exc:
        log_auth_event("login_failure", db, username=credentials.username, request=request)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials") from exc

    log_auth_event(
        "login_success", db,
        identity_id=issued.identity_id,
        username=credentials.username,
        request=request,
        metadata={"token_id": issued.token_id},
    )
    return Token(token=issued.token, expires_at=issued.expires_at)


@app.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    try:
        claims = service.logout(token)
    except Unauthenticated as exc:
        log_auth_event("token_rejected", db, request=request, metadata={"operation": "logout"})
        raise unauthorized() from exc

    log_auth_event(
        "logout", db,
        identity_id=claims.identity_id,
        request=request,
        metadata={"token_id": claims.token_id},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def current_identity_id(
    request: Request,
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
) -> int:
    try:
        return service.authenticate(token)
    except Unauthenticated as exc:
        log_auth_event("token_rejected", db, request=request, metadata={"path": request.url.path})
        raise unauthorized() from exc


@app.get("/whoami", response_model=WhoAmIResponse)
def whoami(identity_id: int = Depends(current_identity_id)):
    return WhoAmIResponse(identity_id=identity_id)


@app.post("/password/change", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: PasswordChangeRequest,
    request: Request,
    identity_id: int = Depends(current_identity_id),
    service: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    try:
        service.change_password(identity_id, payload.old_password, payload.new_password)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials") from exc
    except EmptyPassword as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    log_auth_event("password_change", db, identity_id=identity_id, request=request)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
