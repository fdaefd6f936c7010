from __future__ import annotations

import contextlib
import json
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from draft.logic.clock import TurnClock
from draft.logic.enums import DraftAction, DraftErrorCode, DraftStatus
from draft.logic.exceptions import DraftError
from draft.logic.types import PlayerRecord
from draft.server.middleware import LogContextMiddleware
from draft.server.settings import DraftServerSettings
from draft.server.types import CreateDraftRequest, SubmitPickRequest, UpdateQueueRequest, UpsertPlayersRequest
from draft.server.websocket import draft_feed_endpoint
from draft.session.expiry import ExpiryDriver
from draft.session.manager import DraftSessionManager
from draft.session.notifier import LoggingNotifier, Notifier, WebhookNotifier
from draft.store.connection import Database
from draft.store.sqlite import SqliteDraftRepository, SqlitePlayerDirectory
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from draft.logic.types import DraftSession

RequestModel = TypeVar("RequestModel", bound=BaseModel)

_ERROR_STATUS: dict[DraftErrorCode, HTTPStatus] = {
    DraftErrorCode.SESSION_NOT_FOUND: HTTPStatus.NOT_FOUND,
    DraftErrorCode.SESSION_NOT_ACTIVE: HTTPStatus.CONFLICT,
    DraftErrorCode.INVALID_TRANSITION: HTTPStatus.CONFLICT,
    DraftErrorCode.NOT_YOUR_TURN: HTTPStatus.CONFLICT,
    DraftErrorCode.PLAYER_ALREADY_PICKED: HTTPStatus.CONFLICT,
    DraftErrorCode.PICK_WINDOW_EXPIRED: HTTPStatus.CONFLICT,
    DraftErrorCode.PLAYER_NOT_ELIGIBLE: HTTPStatus.UNPROCESSABLE_ENTITY,
    DraftErrorCode.TEAM_NOT_IN_DRAFT: HTTPStatus.UNPROCESSABLE_ENTITY,
    DraftErrorCode.INVALID_DRAFT_CONFIGURATION: HTTPStatus.UNPROCESSABLE_ENTITY,
    DraftErrorCode.STORAGE_UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
}

_MAX_REQUEST_BODY_SIZE = 16 * 1024
_MAX_PLAYER_IMPORT_BODY_SIZE = 1024 * 1024
_MAX_LIST_LIMIT = 200


class BadRequestError(Exception):
    """Malformed request (body, query string); never reaches the engine."""

    def __init__(self, message: str, status_code: int = HTTPStatus.BAD_REQUEST) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


async def _draft_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, DraftError)  # noqa: S101
    status_code = _ERROR_STATUS[exc.code]
    if status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
        logger.error("draft request failed", error_code=exc.code, error=exc.message)
    else:
        logger.info("draft request rejected", error_code=exc.code, error=exc.message)
    return JSONResponse({"error": exc.code.value, "message": exc.message}, status_code=status_code)


async def _bad_request_handler(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, BadRequestError)  # noqa: S101
    return JSONResponse({"error": "invalid_request", "message": exc.message}, status_code=exc.status_code)


async def _read_body(
    request: Request,
    model: type[RequestModel],
    max_size: int = _MAX_REQUEST_BODY_SIZE,
) -> RequestModel:
    raw_body = await request.body()
    if len(raw_body) > max_size:
        raise BadRequestError("Request body too large", HTTPStatus.REQUEST_ENTITY_TOO_LARGE)
    try:
        body = json.loads(raw_body)
        return model(**body)
    except (ValueError, TypeError, json.JSONDecodeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        raise BadRequestError("Invalid request body") from None


def _manager(request: Request) -> DraftSessionManager:
    return request.app.state.manager


def _session_id(request: Request) -> str:
    session_id: str = request.path_params["session_id"]
    structlog.contextvars.bind_contextvars(session_id=session_id)
    return session_id


def _session_payload(session: DraftSession) -> dict[str, Any]:
    payload = session.model_dump(mode="json")
    payload.update(
        {
            "status": session.status.value,
            "current_round": session.current_round,
            "current_pick": session.current_pick,
            "current_team_id": session.current_team_id,
            "total_picks": session.total_picks,
            "timer_expires_at": session.timer_expires_at.isoformat() if session.timer_expires_at else None,
        },
    )
    return payload


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def list_drafts(request: Request) -> JSONResponse:
    params = request.query_params
    status = None
    if "status" in params:
        try:
            status = DraftStatus(params["status"])
        except ValueError:
            raise BadRequestError(f"Unknown status {params['status']!r}") from None
    try:
        limit = int(params.get("limit", "50"))
    except ValueError:
        raise BadRequestError("limit must be an integer") from None
    if not 1 <= limit <= _MAX_LIST_LIMIT:
        raise BadRequestError(f"limit must be between 1 and {_MAX_LIST_LIMIT}")

    sessions = await _manager(request).list_sessions(
        league_id=params.get("league_id"),
        season_id=params.get("season_id"),
        status=status,
        include_archived=params.get("include_archived", "").lower() in {"1", "true", "yes"},
        limit=limit,
    )
    return JSONResponse({"drafts": [_session_payload(s) for s in sessions]})


async def create_draft(request: Request) -> JSONResponse:
    settings: DraftServerSettings = request.app.state.settings
    body = await _read_body(request, CreateDraftRequest)
    session = await _manager(request).create_session(
        league_id=body.league_id,
        season_id=body.season_id,
        name=body.name,
        team_ids=body.team_ids,
        total_rounds=body.total_rounds if body.total_rounds is not None else settings.default_total_rounds,
        pick_timer_seconds=(
            body.pick_timer_seconds if body.pick_timer_seconds is not None else settings.default_pick_timer_seconds
        ),
        order_type=body.order_type,
        custom_order=body.custom_order,
        auto_pick_enabled=body.auto_pick_enabled,
        created_by=body.created_by,
    )
    return JSONResponse(_session_payload(session), status_code=HTTPStatus.CREATED)


async def get_draft(request: Request) -> JSONResponse:
    session = await _manager(request).get_session(_session_id(request))
    return JSONResponse(_session_payload(session))


async def get_draft_status(request: Request) -> JSONResponse:
    view = await _manager(request).get_status(_session_id(request))
    return JSONResponse(view.model_dump(mode="json"))


async def list_picks(request: Request) -> JSONResponse:
    picks = await _manager(request).get_picks(_session_id(request))
    return JSONResponse({"picks": [p.model_dump(mode="json") for p in picks]})


async def submit_pick(request: Request) -> JSONResponse:
    session_id = _session_id(request)
    body = await _read_body(request, SubmitPickRequest)
    pick = await _manager(request).submit_pick(
        session_id,
        team_id=body.team_id,
        player_id=body.player_id,
        picked_by=body.picked_by,
    )
    return JSONResponse(pick.model_dump(mode="json"), status_code=HTTPStatus.CREATED)


async def get_analytics(request: Request) -> JSONResponse:
    analytics = await _manager(request).get_analytics(_session_id(request))
    return JSONResponse(analytics.model_dump(mode="json"))


def _action_endpoint(action: DraftAction) -> Callable[[Request], Awaitable[JSONResponse]]:
    async def endpoint(request: Request) -> JSONResponse:
        session = await _manager(request).apply(_session_id(request), action)
        return JSONResponse(_session_payload(session))

    endpoint.__name__ = f"{action.value}_draft"
    return endpoint


async def get_queue(request: Request) -> JSONResponse:
    queue = await _manager(request).get_queue(_session_id(request), request.path_params["team_id"])
    return JSONResponse(queue.model_dump(mode="json"))


async def update_queue(request: Request) -> JSONResponse:
    session_id = _session_id(request)
    body = await _read_body(request, UpdateQueueRequest)
    queue = await _manager(request).set_queue(
        session_id,
        request.path_params["team_id"],
        body.player_ids,
        updated_by=body.updated_by,
    )
    return JSONResponse(queue.model_dump(mode="json"))


async def upsert_players(request: Request) -> JSONResponse:
    body = await _read_body(request, UpsertPlayersRequest, max_size=_MAX_PLAYER_IMPORT_BODY_SIZE)
    count = await _manager(request).upsert_players([PlayerRecord(**p.model_dump()) for p in body.players])
    return JSONResponse({"upserted": count})


def _build_notifier(settings: DraftServerSettings) -> Notifier:
    if settings.notification_webhook_url:
        return WebhookNotifier(settings.notification_webhook_url)
    return LoggingNotifier()


def create_app(
    settings: DraftServerSettings | None = None,
    manager: DraftSessionManager | None = None,
    clock: TurnClock | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = DraftServerSettings()

    # When the app creates its own manager, it owns the DB lifecycle.
    owned_db: Database | None = None

    if manager is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        manager = DraftSessionManager(
            SqliteDraftRepository(db, retry_attempts=settings.storage_retry_attempts),
            SqlitePlayerDirectory(db, retry_attempts=settings.storage_retry_attempts),
            clock or TurnClock(),
            settings=settings.engine_settings(),
            notifier=_build_notifier(settings),
        )

    expiry_driver = ExpiryDriver(
        manager,
        poll_seconds=settings.expiry_poll_seconds,
        grace_seconds=settings.late_pick_grace_seconds,
    )

    async def ws_endpoint(websocket: WebSocket) -> None:
        await draft_feed_endpoint(websocket, manager, settings.heartbeat_seconds)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/drafts", list_drafts, methods=["GET"]),
        Route("/drafts", create_draft, methods=["POST"]),
        Route("/drafts/{session_id}", get_draft, methods=["GET"]),
        Route("/drafts/{session_id}/status", get_draft_status, methods=["GET"]),
        Route("/drafts/{session_id}/picks", list_picks, methods=["GET"]),
        Route("/drafts/{session_id}/picks", submit_pick, methods=["POST"]),
        Route("/drafts/{session_id}/analytics", get_analytics, methods=["GET"]),
        *(
            Route(f"/drafts/{{session_id}}/{action.value}", _action_endpoint(action), methods=["POST"])
            for action in (
                DraftAction.START,
                DraftAction.PAUSE,
                DraftAction.RESUME,
                DraftAction.CANCEL,
                DraftAction.ARCHIVE,
            )
        ),
        Route("/drafts/{session_id}/queues/{team_id}", get_queue, methods=["GET"]),
        Route("/drafts/{session_id}/queues/{team_id}", update_queue, methods=["PUT"]),
        Route("/players", upsert_players, methods=["PUT"]),
        WebSocketRoute("/ws/drafts/{session_id}", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        await expiry_driver.start()
        try:
            yield
        finally:
            await expiry_driver.stop()
            await manager.aclose()
            if owned_db is not None:
                owned_db.close()

    app = Starlette(
        routes=routes,
        lifespan=lifespan,
        exception_handlers={DraftError: _draft_error_handler, BadRequestError: _bad_request_handler},
    )
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Content-Type"],
    )
    app.add_middleware(LogContextMiddleware)  # type: ignore[arg-type]
    app.state.settings = settings
    app.state.manager = manager
    app.state.expiry_driver = expiry_driver

    logger.info("draft server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (uvicorn --factory draft.server.app:get_app)."""
    settings = DraftServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
