"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tradedesk.config import settings
from tradedesk.database import create_db_and_tables, engine
from tradedesk.utils.logging import setup_logging
from tradedesk.api import auth, trades, admin, markets, system, ws


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    from tradedesk.engine.runtime import build_runtime
    runtime = build_runtime(engine, settings)
    app.state.runtime = runtime

    # Settle trades that expired while we were down, then re-arm the rest
    await runtime.scheduler.reconcile()
    runtime.scheduler.start()

    yield

    runtime.scheduler.shutdown()
    await runtime.alerts.close()


app = FastAPI(
    title="Trade Desk",
    description="Timed up/down crypto trades with scheduled settlement",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(auth.router)
app.include_router(trades.router)
app.include_router(admin.router)
app.include_router(markets.router)
app.include_router(system.router)
app.include_router(ws.router)
