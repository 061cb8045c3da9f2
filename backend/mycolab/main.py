import logging
import time

import sentry_sdk
from fastapi import FastAPI, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration

from . import pubsub
from .config import get_settings
from .database import Base, engine
from .errors import AuthorizationError, DomainError, NotFoundError, PersistenceError, ValidationError
from .routes import routers

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, integrations=[FastApiIntegration()])

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)

if engine is not None:
    Base.metadata.create_all(bind=engine)
else:
    logger.info("DATABASE_URL not set; running in local-only mode")

app = FastAPI(title="MycoLab API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    NotFoundError: 404,
    AuthorizationError: 403,
    ValidationError: 400,
    PersistenceError: 503,
}


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    status = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 400)
    if status >= 500:
        logger.error("store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


for router in routers:
    app.include_router(router)


@app.websocket("/ws/{user_id}")
async def websocket_endpoint(websocket: WebSocket, user_id: str):
    r = await pubsub.get_redis()
    pub = r.pubsub()
    channel = pubsub.lab_channel(user_id)
    await pub.subscribe(channel)
    await websocket.accept()
    try:
        async for message in pub.listen():
            if message["type"] == "message":
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode()
                await websocket.send_text(data)
    finally:
        await pub.unsubscribe(channel)
