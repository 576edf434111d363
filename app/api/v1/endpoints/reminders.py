"""
Reminder job endpoint.

Called daily by the scheduler (e.g. 9 AM UTC).
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.reminders import send_reminders


router = APIRouter(prefix="/reminders", tags=["Reminders"])


class ReminderResponse(BaseModel):
    success: bool
    users_processed: int
    reminders_created: int


@router.post("/send", response_model=ReminderResponse)
def send_due_reminders(db: Session = Depends(get_db)):
    """Create renewal and trial-ending notifications due today."""
    return send_reminders(db).to_dict()
