from fastapi import APIRouter
from app.api.v1.endpoints import auth, gmail_scan, subscriptions, reminders

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(auth.router)
api_router.include_router(gmail_scan.router)
api_router.include_router(subscriptions.router)
api_router.include_router(reminders.router)
