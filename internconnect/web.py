"""Browser-based interface for the Intern Connect group chat."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Form, Request, WebSocket, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import HTTPConnection
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .auth import AuthService
from .chat import ChatService, ChatView, FeedView
from .config import Settings, load_settings
from .errors import ChatError
from .groups import GroupService
from .models import SessionUser
from .session import SessionStore
from .streaming import send_websocket_json, stream_chat_view
from .subscriptions import SplitTransport, SubscriptionLink
from .transport import GraphQLClient

logger = logging.getLogger("internconnect.web")

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

SESSION_COOKIE_NAME = "internconnect_session"
SESSION_MAX_AGE = 60 * 60 * 24 * 7


def _format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%d %b %Y • %H:%M %Z")


def _trusted_proxy_hosts(raw: str) -> list[str] | str:
    hosts = [item.strip() for item in raw.split(",") if item.strip()]
    if not hosts or hosts == ["*"]:
        return "*"
    return hosts


def _log_session_change(user: Optional[SessionUser]) -> None:
    if user is None:
        logger.info("Session cleared")
    else:
        logger.info("Session stored for user %s", user.id)


def create_app(
    settings: Optional[Settings] = None,
    *,
    client: Optional[GraphQLClient] = None,
    subscriptions: Optional[SubscriptionLink] = None,
) -> FastAPI:
    """Create the chat web application."""

    if settings is None:
        settings = load_settings()
    if client is None:
        client = GraphQLClient(
            settings.graphql_http_url,
            settings.admin_secret,
            timeout=settings.request_timeout,
        )
    if subscriptions is None and settings.uses_subscriptions:
        subscriptions = SubscriptionLink(settings.graphql_ws_url, settings.admin_secret)

    transport = SplitTransport(client, subscriptions)
    auth = AuthService(transport)
    groups = GroupService(transport)
    chat = ChatService(transport)

    app = FastAPI(
        title="Intern Connect",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.transport = transport

    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts(settings.trusted_proxies))
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        https_only=settings.secure_cookies,
        same_site="lax",
        max_age=SESSION_MAX_AGE,
    )

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.globals["format_datetime"] = _format_datetime
    templates.env.globals["now"] = datetime.now

    def _session_store(connection: HTTPConnection) -> SessionStore:
        store = SessionStore(connection.session)
        store.load()
        store.subscribe(_log_session_change)
        return store

    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _redirect(request: Request, name: str, **params: Any) -> RedirectResponse:
        return RedirectResponse(
            request.url_for(name, **params),
            status_code=status.HTTP_303_SEE_OTHER,
        )

    def _current_user(request: Request) -> Tuple[SessionStore, Optional[SessionUser]]:
        store = _session_store(request)
        return store, store.current

    def _render(request: Request, name: str, context: Dict[str, Any], *, status_code: int = 200):
        return templates.TemplateResponse(request, name, context, status_code=status_code)

    def _render_view(request: Request, view: ChatView, **context: Any):
        return _render(
            request,
            "chat.html",
            {
                "user": view.user,
                "view": view,
                "poll_interval": settings.poll_interval,
                "messages": _consume_flash(request),
                **context,
            },
        )

    def _push_to(websocket: WebSocket):
        async def push(view: ChatView) -> None:
            await send_websocket_json(websocket, view.snapshot())

        return push

    @app.get("/", response_class=HTMLResponse)
    async def root(request: Request):
        _, user = _current_user(request)
        if user is None:
            return _redirect(request, "show_login")
        return _redirect(request, "dashboard")

    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        _, user = _current_user(request)
        if user is not None:
            return _redirect(request, "dashboard")
        return _render(
            request,
            "login.html",
            {
                "user": None,
                "error": request.session.pop("login_error", None),
                "email": request.session.pop("login_email", ""),
                "messages": _consume_flash(request),
            },
        )

    @app.post("/login", name="process_login")
    async def process_login(request: Request, email: str = Form(""), password: str = Form("")):
        store = _session_store(request)
        try:
            with store.authenticating():
                user = await auth.login(email, password)
        except ChatError as exc:
            logger.warning("Failed web login attempt for %s: %s", email, exc)
            request.session["login_error"] = str(exc)
            request.session["login_email"] = email
            return _redirect(request, "show_login")

        request.session.clear()
        store.set(user)
        logger.info("User %s signed in", user.id)
        return _redirect(request, "dashboard")

    @app.get("/register", response_class=HTMLResponse, name="show_register")
    async def register_form(request: Request):
        return _render(request, "register.html", {"user": None, "name": "", "email": ""})

    @app.post("/register", name="process_register")
    async def process_register(
        request: Request,
        name: str = Form(""),
        email: str = Form(""),
        password: str = Form(""),
    ):
        try:
            created = await auth.register(name, email, password)
        except ChatError as exc:
            logger.warning("Registration failed for %s: %s", email, exc)
            return _render(
                request,
                "register.html",
                {"user": None, "name": name, "email": email, "error": str(exc)},
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        logger.info("Registered %s as user %s", created.email, created.id)
        return _render(
            request,
            "register.html",
            {
                "user": None,
                "name": "",
                "email": "",
                "success": "User registered successfully!",
                "redirect_url": request.url_for("show_login"),
                "redirect_delay": settings.register_redirect_delay,
            },
        )

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        store = _session_store(request)
        if store.current is not None:
            logger.info("User %s signed out", store.current.id)
        store.clear()
        request.session.clear()
        return _redirect(request, "show_login")

    @app.get("/dashboard", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request):
        _, user = _current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        rooms = []
        error = None
        try:
            rooms = await groups.list_rooms()
        except ChatError as exc:
            error = str(exc)

        return _render(
            request,
            "dashboard.html",
            {
                "user": user,
                "rooms": rooms,
                "error": error,
                "messages": _consume_flash(request),
            },
        )

    @app.post("/groups", name="create_group")
    async def create_group(request: Request, name: str = Form("")):
        _, user = _current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        try:
            room = await groups.create_room(name, user)
        except ChatError as exc:
            _flash(request, str(exc), category="error")
            return _redirect(request, "dashboard")

        if room is not None:
            _flash(request, f"Group \"{room.name}\" created.", category="success")
        return _redirect(request, "dashboard")

    @app.get("/groups/{room_id}", response_class=HTMLResponse, name="chat_room")
    async def chat_room(request: Request, room_id: str):
        _, user = _current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        view = ChatView(chat, room_id, user, interval=settings.poll_interval, live=False)
        await view.refresh()
        return _render_view(
            request,
            view,
            heading="Chat Room",
            placeholder="No room selected",
            post_url=request.url_for("post_message", room_id=room_id),
            stream_path=request.app.url_path_for("chat_stream", room_id=room_id),
        )

    @app.post("/groups/{room_id}/messages", name="post_message")
    async def post_message(request: Request, room_id: str, content: str = Form("")):
        _, user = _current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        if content.strip():
            try:
                await chat.send_message(room_id, user, content)
            except ChatError as exc:
                _flash(request, str(exc), category="error")
        return _redirect(request, "chat_room", room_id=room_id)

    @app.websocket("/groups/{room_id}/stream", name="chat_stream")
    async def chat_stream(websocket: WebSocket, room_id: str):
        store = _session_store(websocket)
        user = store.current
        if user is None:
            await websocket.close(code=4401)
            return

        await websocket.accept()

        view = ChatView(
            chat,
            room_id,
            user,
            interval=settings.poll_interval,
            on_change=_push_to(websocket),
        )
        await stream_chat_view(websocket, view)

    @app.get("/feed", response_class=HTMLResponse, name="feed")
    async def feed(request: Request):
        _, user = _current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        view = FeedView(chat, user, interval=settings.poll_interval, live=False)
        await view.refresh()
        return _render_view(
            request,
            view,
            heading="All messages",
            placeholder="Everyone",
            post_url=request.url_for("post_feed_message"),
            stream_path=request.app.url_path_for("feed_stream"),
        )

    @app.post("/feed/messages", name="post_feed_message")
    async def post_feed_message(request: Request, content: str = Form("")):
        _, user = _current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        if content.strip():
            try:
                await chat.post_to_feed(user, content)
            except ChatError as exc:
                _flash(request, str(exc), category="error")
        return _redirect(request, "feed")

    @app.websocket("/feed/stream", name="feed_stream")
    async def feed_stream(websocket: WebSocket):
        user = _session_store(websocket).current
        if user is None:
            await websocket.close(code=4401)
            return

        await websocket.accept()
        view = FeedView(chat, user, interval=settings.poll_interval, on_change=_push_to(websocket))
        await stream_chat_view(websocket, view)

    return app


__all__ = ["SESSION_COOKIE_NAME", "create_app"]
