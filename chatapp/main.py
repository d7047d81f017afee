import logging
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Annotated, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from chatapp.config import get_settings, settings
from chatapp.errors import ChatError
from chatapp.logging_utils import RequestLoggingMiddleware, log_action_data, setup_logging
from chatapp.metrics import get_metrics, get_metrics_content_type, record_operation_outcome
from chatapp.schemas import (
    ChangePasswordRequest,
    DeleteAccountRequest,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    LogoutRequest,
    MessageEnvelope,
    MessageResponse,
    ProfilePictureResponse,
    RegisterRequest,
    SendMessageRequest,
    StatusRequest,
    SuccessResponse,
    UpdateProfileRequest,
    UserEnvelope,
    UserResponse,
    UserStatusResponse,
)
from chatapp.services import AccountService, MessagingService, build_services
from chatapp.storage import check_storage_health, init_storage


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: create the JSON stores and uploads directory, wire services
    - Shutdown: nothing to release, presence state is dropped with the process
    """
    current = get_settings()
    init_storage(current)
    app.state.accounts, app.state.messaging = build_services(current)
    logger.info(f"Chat API ready, data in {current.DATA_DIR}")
    yield


app = FastAPI(
    title="Chat API",
    description="Accounts, presence and private messages over flat JSON files",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Error Handling
# =============================================================================

def error_response(message: str) -> JSONResponse:
    """All failures are reported as {success: false, message} with HTTP 200."""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=ErrorResponse(message=message).model_dump(),
    )


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return error_response(exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Invalid request body: {exc.errors()}")
    return error_response("Invalid request")


@app.exception_handler(ResponseValidationError)
async def response_validation_error_handler(request: Request, exc: ResponseValidationError) -> JSONResponse:
    logger.error(f"Response failed validation on {request.url.path}: {exc.errors()}")
    return error_response("Server error")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything that escaped the routes, e.g. a failing dependency."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return error_response("Server error")


@contextmanager
def track(request: Request, action: str, user_id: Optional[str] = None):
    """
    Record metrics and request-log fields for one operation.

    Unexpected exceptions are logged and reported to the client as a
    generic server error.
    """
    try:
        yield
    except ChatError as e:
        logger.info(f"{action} failed: {e.message}")
        record_operation_outcome(action, e.kind)
        log_action_data(request, action, result=e.kind, user_id=user_id)
        raise
    except Exception as e:
        logger.exception(f"{action} crashed: {e}")
        record_operation_outcome(action, "server_error")
        log_action_data(request, action, result="server_error", user_id=user_id)
        raise ChatError("Server error") from e
    else:
        record_operation_outcome(action, "ok")
        log_action_data(request, action, user_id=user_id)


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_messaging(request: Request) -> MessagingService:
    return request.app.state.messaging


Accounts = Annotated[AccountService, Depends(get_accounts)]
Messaging = Annotated[MessagingService, Depends(get_messaging)]


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if both JSON stores parse and the
    uploads directory exists. Otherwise returns 503 (Service Unavailable).
    """
    if not check_storage_health(get_settings()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Storage files missing or unreadable"
        )
    return HealthResponse(status="ready")


# =============================================================================
# Account Routes
# =============================================================================

@app.post("/api/login", response_model=UserEnvelope)
def login(payload: LoginRequest, request: Request, accounts: Accounts) -> UserEnvelope:
    """Log in with username (or email) and password."""
    with track(request, "login"):
        user = accounts.login(payload.username, payload.password)
    return UserEnvelope(message="Login successful", user=user)


@app.post("/api/logout", response_model=SuccessResponse)
def logout(payload: LogoutRequest, request: Request, accounts: Accounts) -> SuccessResponse:
    with track(request, "logout", user_id=payload.userId):
        accounts.logout(payload.userId)
    return SuccessResponse(message="Logged out")


@app.post("/api/register", response_model=UserEnvelope)
def register(payload: RegisterRequest, request: Request, accounts: Accounts) -> UserEnvelope:
    """
    Create an account.

    Username and email must both be unique (case-sensitive).
    """
    with track(request, "register"):
        user = accounts.register(payload.username, payload.email, payload.password)
    return UserEnvelope(message="Registration successful", user=user)


@app.get("/api/users", response_model=list[UserResponse])
def list_users(request: Request, accounts: Accounts) -> list[UserResponse]:
    with track(request, "list_users"):
        users = accounts.list_users()
    return users


@app.put("/api/users/profile", response_model=UserEnvelope)
def update_profile(payload: UpdateProfileRequest, request: Request, accounts: Accounts) -> UserEnvelope:
    with track(request, "update_profile", user_id=payload.userId):
        user = accounts.update_profile(payload.userId, payload.username, payload.email)
    return UserEnvelope(message="Profile updated successfully", user=user)


@app.put("/api/users/password", response_model=SuccessResponse)
def change_password(payload: ChangePasswordRequest, request: Request, accounts: Accounts) -> SuccessResponse:
    with track(request, "change_password", user_id=payload.userId):
        accounts.change_password(payload.userId, payload.currentPassword, payload.newPassword)
    return SuccessResponse(message="Password changed successfully")


@app.post("/api/users/profile-picture", response_model=ProfilePictureResponse)
def upload_profile_picture(
    request: Request,
    accounts: Accounts,
    userId: Annotated[Optional[str], Form()] = None,
    profilePicture: Annotated[Optional[UploadFile], File()] = None,
) -> ProfilePictureResponse:
    """
    Multipart upload: form field userId and file field profilePicture.

    Only .jpg/.jpeg/.png/.gif names up to MAX_UPLOAD_BYTES are accepted.
    """
    with track(request, "upload_profile_picture", user_id=userId):
        if profilePicture is None:
            reference = accounts.upload_profile_picture(userId, None, None)
        else:
            reference = accounts.upload_profile_picture(userId, profilePicture.filename, profilePicture.file)
    return ProfilePictureResponse(profilePicture=reference)


@app.delete("/api/users/{userId}", response_model=SuccessResponse)
def delete_account(
    userId: str,
    request: Request,
    accounts: Accounts,
    payload: Optional[DeleteAccountRequest] = None,
) -> SuccessResponse:
    """Delete an account after re-checking its password."""
    password = payload.password if payload is not None else None
    with track(request, "delete_account", user_id=userId):
        accounts.delete_account(userId, password)
    return SuccessResponse(message="Account deleted successfully")


# =============================================================================
# Presence Routes
# =============================================================================

@app.get("/api/users/online", response_model=list[UserStatusResponse])
def list_users_with_status(request: Request, messaging: Messaging) -> list[UserStatusResponse]:
    """All users, each flagged isOnline if seen within the presence window."""
    with track(request, "list_online"):
        users = messaging.list_with_status()
    return users


@app.post("/api/users/status", response_model=SuccessResponse)
def update_status(payload: StatusRequest, request: Request, messaging: Messaging) -> SuccessResponse:
    with track(request, "update_status", user_id=payload.userId):
        messaging.update_status(payload.userId, payload.status)
    return SuccessResponse()


# =============================================================================
# Private Chat Routes
# =============================================================================

@app.get("/api/chat/private", response_model=list[MessageResponse])
def get_private_messages(
    request: Request,
    messaging: Messaging,
    userId: Annotated[Optional[str], Query(description="One participant")] = None,
    receiverId: Annotated[Optional[str], Query(description="The other participant")] = None,
) -> list[MessageResponse]:
    """
    Messages between two users, oldest first. The order of userId and
    receiverId does not matter.
    """
    with track(request, "fetch_messages", user_id=userId):
        messages = messaging.fetch(userId, receiverId)
    return messages


@app.post("/api/chat/private", response_model=MessageEnvelope)
def send_private_message(payload: SendMessageRequest, request: Request, messaging: Messaging) -> MessageEnvelope:
    """Append a message to the pair's conversation and mark the sender online."""
    with track(request, "send_message", user_id=payload.userId):
        message = messaging.send(
            payload.userId,
            payload.username,
            payload.receiverId,
            payload.receiverName,
            payload.message,
        )
    return MessageEnvelope(message=message)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


# =============================================================================
# Static Routes
# =============================================================================

@app.get("/uploads/{filename}")
def serve_upload(filename: str) -> FileResponse:
    """Uploaded profile pictures, read from the configured uploads directory."""
    uploads_dir = get_settings().uploads_dir
    path = uploads_dir / filename
    if Path(filename).name != filename or not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return FileResponse(path)


# Static site; mounted last so API routes win
app.mount(
    "/",
    StaticFiles(directory=settings.PUBLIC_DIR, html=True, check_dir=False),
    name="public",
)


def run() -> None:
    """Start the server on PORT (default 7860)."""
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
