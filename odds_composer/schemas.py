from typing import Any, Optional

from pydantic import BaseModel


class StatusOut(BaseModel):
    status: str
    timestamp: str
    uptime: float
    websocketConnections: int
    sseConnections: int
    totalConnections: int


class DataReceivedOut(BaseModel):
    message: str
    receivedData: dict[str, Any]
    timestamp: str


class PushOut(BaseModel):
    success: bool
    message: str
    timestamp: str


class LogEntryOut(BaseModel):
    timestamp: str
    level: str
    logger: str
    message: str


class LogsResponse(BaseModel):
    entries: list[LogEntryOut]
    count: Optional[int] = None
