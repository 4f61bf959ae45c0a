from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pairchat.config import get_settings
from pairchat.database import init_models
from pairchat.errors import ChatError
from pairchat.routers import messages, users, ws, health
from pairchat.ws import EventBus, PresenceRegistry

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.auto_create_tables:
        await init_models()
    app.state.events.start_relay(settings.redis_url)
    yield
    # Shutdown
    await app.state.events.stop_relay()


async def chat_error_handler(request: Request, exc: ChatError):
    logger.info(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


def create_app() -> FastAPI:
    app = FastAPI(
        title="pairchat API",
        description="Direct messaging between two users with live updates",
        version="1.0.0",
        lifespan=lifespan
    )

    # One registry per process, shared by the event bus and the websocket endpoint
    registry = PresenceRegistry()
    app.state.registry = registry
    app.state.events = EventBus(registry)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ChatError, chat_error_handler)

    app.include_router(ws.router, prefix="/api/messages", tags=["Realtime"])
    app.include_router(messages.router, prefix="/api/messages", tags=["Messages"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(health.router, prefix="/api/health", tags=["Health"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pairchat.main:app", host="0.0.0.0", port=5001, reload=True)
