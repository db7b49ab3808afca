from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager, suppress
from typing import Optional

import uvicorn
from motor.motor_asyncio import AsyncIOMotorClient
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.responses import Response

from .broker import SessionBroker
from .context import ContextCodec
from .core.identity_client import IdentityResolver
from .core.verifier_client import VerifierClient
from .errors import BrokerError
from .logging_conf import request_id_var, setup_logging
from .routers import auth_router, health_router
from .session_store import InMemorySessionStore, MongoSessionStore, SessionStore
from .settings import Settings, settings as default_settings

log = logging.getLogger("walletauth")


def build_store(s: Settings) -> SessionStore:
    if s.STORE_BACKEND == "mongo":
        client = AsyncIOMotorClient(s.MONGO_URI)
        return MongoSessionStore(client[s.MONGO_DB][s.MONGO_COLLECTION], ttl_seconds=s.STORE_TTL_SECONDS)
    return InMemorySessionStore(ttl_seconds=s.STORE_TTL_SECONDS, sweep_interval=s.STORE_SWEEP_SECONDS)


async def sweep_expired(store: InMemorySessionStore, interval: float) -> None:
    """Purge expired entries until cancelled; covers stretches with no writes."""
    while True:
        await asyncio.sleep(interval)
        try:
            store.purge_expired()
        except Exception:
            log.exception("sweep failed")


def create_app(
    s: Optional[Settings] = None,
    *,
    store: Optional[SessionStore] = None,
    verifier: Optional[VerifierClient] = None,
    identity: Optional[IdentityResolver] = None,
    clock=time.time,
) -> FastAPI:
    s = s or default_settings
    setup_logging(s.LOG_LEVEL)
    store = store if store is not None else build_store(s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(
            "startup base_url=%s verifier=%s store=%s caching=%s user_id_field=%s ssl_verify=%s",
            s.base_url,
            s.VERIFIER_URL,
            s.STORE_BACKEND,
            s.RESULT_CACHING,
            s.USER_ID_FIELD,
            s.SSL_VERIFY,
        )
        sweeper = None
        if isinstance(store, MongoSessionStore):
            await store.ensure_indexes()
        elif isinstance(store, InMemorySessionStore):
            sweeper = asyncio.create_task(sweep_expired(store, s.STORE_SWEEP_SECONDS))
        yield
        if sweeper is not None:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
        log.info("shutdown")

    app = FastAPI(title="Wallet Auth Service", default_response_class=ORJSONResponse, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ----------------------------
    # Request/Response logging middleware
    # ----------------------------
    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(rid)

        start = time.time()
        path = request.url.path

        log.info(
            "REQ method=%s path=%s client=%s",
            request.method,
            path,
            request.client.host if request.client else None,
        )

        try:
            resp: Response = await call_next(request)
            dur_ms = int((time.time() - start) * 1000)
            log.info("RES status=%s dur_ms=%s path=%s", resp.status_code, dur_ms, path)
            resp.headers["x-request-id"] = rid
            return resp
        except Exception:
            dur_ms = int((time.time() - start) * 1000)
            log.exception("ERR dur_ms=%s path=%s", dur_ms, path)
            raise
        finally:
            request_id_var.reset(token)

    @app.exception_handler(BrokerError)
    async def broker_error_handler(request: Request, exc: BrokerError):
        log.info("rejected path=%s code=%s status=%s", request.url.path, exc.code, exc.status_code)
        return ORJSONResponse(exc.to_dict(), status_code=exc.status_code)

    app.state.settings = s
    app.state.session_store = store
    app.state.context_codec = ContextCodec(s.SESSION_SIGNING_SECRET, max_age=s.STORE_TTL_SECONDS)
    app.state.broker = SessionBroker(
        settings=s,
        store=store,
        verifier=verifier or VerifierClient(s),
        identity=identity or IdentityResolver(s),
        clock=clock,
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "walletauth.main:app",
        host="0.0.0.0",
        port=default_settings.PORT,
    )
