import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app import config
from app.api.v1.api import api_router
from app.database import engine, Base
from app.logging_config import setup_logging
from app.models import Profile, Category, Subscription, Notification, GmailScanLog  # noqa: F401

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Subscription Scanner",
    description="Detects recurring subscriptions from Gmail billing emails",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
