from pydantic import BaseModel
from typing import Optional


class HealthResponse(BaseModel):
    """Health check body"""

    status: str
    environment: str
    version: str


class ServiceInfo(BaseModel):
    """Root endpoint body"""

    service: str
    version: str
    environment: str
    docs: Optional[str] = None
    health: str = "/health"
