import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parkbooking.core.config import settings
from parkbooking.core.errors import register_exception_handlers
from parkbooking.api.v1.api import api_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# CORS: use CORS_ORIGINS from env in production; default to localhost for dev
_default_origins = [
    "http://127.0.0.1:3000", "http://localhost:3000",
]
_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] if settings.CORS_ORIGINS else _default_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(api_router)

logger.info("%s starting (env=%s, inventory policy=%s)", settings.APP_NAME, settings.ENV, settings.INVENTORY_COMMIT_POLICY)


@app.get("/health")
def health():
    return {"status": "ok"}
