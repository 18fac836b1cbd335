import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from tokenledger.core.config import Settings, get_settings
from tokenledger.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from tokenledger.core.logging import bind_request_id, configure_logging, get_logger
from tokenledger.db.store import Store
from tokenledger.routers import feedback, rewards, tokens, users
from tokenledger.services.ledger import LedgerEngine
from tokenledger.services.notifications import ArqDispatcher, LoggingDispatcher, Notifier
from tokenledger.services.redemptions import RedemptionEngine

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="Token of Thanks API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(tokens.router, prefix="/v1/tokens", tags=["tokens"])
app.include_router(rewards.router, prefix="/v1/rewards", tags=["rewards"])
app.include_router(users.router, prefix="/v1/users", tags=["users"])
app.include_router(feedback.router, prefix="/v1/feedback", tags=["feedback"])


def build_notifier(s: Settings) -> Notifier:
    dispatcher = ArqDispatcher() if s.notifications_enabled else LoggingDispatcher()
    return Notifier(dispatcher, maxsize=s.notification_queue_size)


def attach_services(target: FastAPI, store: Store, notifier: Notifier | None) -> None:
    """Wire the process-wide store and engines onto app.state for the dependencies."""
    target.state.store = store
    target.state.notifier = notifier
    target.state.ledger = LedgerEngine(store, notifier)
    target.state.redemptions = RedemptionEngine(store, notifier)


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    store = Store(settings)
    await store.connect()
    notifier = build_notifier(settings)
    await notifier.start()
    attach_services(app, store, notifier)
    log.info("startup", msg="DB connected")


@app.on_event("shutdown")
async def shutdown():
    notifier = getattr(app.state, "notifier", None)
    if notifier is not None:
        await notifier.stop()
    store = getattr(app.state, "store", None)
    if store is not None:
        store.close()


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
