from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class SyncTriggerRequest(BaseModel):
    platform: Optional[str] = None
    force_historical: bool = False


class SyncSessionRead(BaseModel):
    id: int
    app_id: int
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncProgressRead(BaseModel):
    id: int
    app_id: int
    platform: str
    session_id: int
    status: str
    start_date: date
    total_days: int
    chunk_size_days: int
    total_chunks: int
    current_chunk: int
    processed_days: int
    synced_days: int = 0
    last_processed_date: Optional[date] = None
    started_at: datetime
    error: Optional[str] = None
    percentage: float = 0.0

    class Config:
        from_attributes = True


class SyncLogRead(BaseModel):
    id: int
    timestamp: datetime
    level: str
    platform: Optional[str] = None
    message: str

    class Config:
        from_attributes = True


class SyncResetResponse(BaseModel):
    connections_reset: int = Field(ge=0)
