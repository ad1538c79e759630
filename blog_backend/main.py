import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blog_backend.config import settings
from blog_backend.credentials import credential_store
from blog_backend.database import async_session
from blog_backend.middleware import TimingMiddleware
from blog_backend.notifications import NotificationDispatcher, SMTPMailTransport
from blog_backend.routers import posts, users

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    await app.state.credential_store.connect()
    app.state.dispatcher.transport = SMTPMailTransport.from_settings(settings)
    if app.state.dispatcher.transport is None:
        logger.info("SMTP_HOST not set; reply notifications are disabled")
    yield
    # Shutdown
    await app.state.dispatcher.drain()
    await app.state.credential_store.disconnect()

app = FastAPI(
    title="Blog API",
    description="Multi-user blogging backend with threaded comments",
    version="1.0.0",
    lifespan=lifespan,
)

# Storage handles shared by every request; replaced wholesale in tests.
app.state.credential_store = credential_store
app.state.dispatcher = NotificationDispatcher(async_session)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(users.router)
app.include_router(posts.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
