from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import Base, engine
from app.core.errors import EngineError
from app.core.logging_config import get_logger, setup_logging
from app.models.user import User  # noqa: F401
from app.models.group import Group  # noqa: F401
from app.models.membership import GroupMember  # noqa: F401
from app.models.join_request import GroupJoinRequest  # noqa: F401
from app.models.event import GroupEvent  # noqa: F401
from app.models.feed_post import FeedPost  # noqa: F401

from app.api.routes.auth import router as auth_router
from app.api.routes.groups import router as groups_router
from app.api.routes.join_requests import router as join_router
from app.api.routes.events import router as events_router
from app.api.routes.feed import router as feed_router


setup_logging()
logger = get_logger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Community Groups API", version="0.1.0")

# ✅ CORS primero
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ✅ Routers después
app.include_router(auth_router)
app.include_router(groups_router)
app.include_router(join_router)
app.include_router(events_router)
app.include_router(feed_router)


@app.get("/")
def root():
    return {"status": "ok", "message": "Community Groups API"}


@app.get("/health")
def health():
    return {"ok": True}
