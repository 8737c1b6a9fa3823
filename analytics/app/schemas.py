from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

class EventIn(BaseModel):
    session_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    page_path: str = Field(min_length=1)
    page_url: Optional[str] = None
    data: Optional[Any] = None
    # Accepted from the client but never stored; the service stamps its own time.
    timestamp: Optional[Any] = None

class EventQuery(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    event_type: Optional[str] = None
    page_path: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(default=100, ge=1, le=10000)

class EventErase(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    before_date: Optional[datetime] = None
