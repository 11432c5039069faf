"""Background worker models"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class WorkerJob(BaseModel):
    """Scheduled job information"""
    id: str
    name: str
    next_run: Optional[datetime] = None
    trigger: str
    status: str = "active"


class WorkerStatus(BaseModel):
    """Worker status information"""
    is_running: bool = False
    jobs: List[WorkerJob] = []
    last_check: Optional[datetime] = None


class ReminderRun(BaseModel):
    """Outcome of one expiration reminder pass"""
    started_at: datetime
    contracts_found: int = 0
    reminders_sent: int = 0
    reminders_failed: int = 0
