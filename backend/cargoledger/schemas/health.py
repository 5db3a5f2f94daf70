from datetime import datetime

from pydantic import BaseModel


class RegistryCounts(BaseModel):
    documents: int = 0
    parties: int = 0
    shipments: int = 0
    open_reconciliations: int = 0


class HealthResponse(BaseModel):
    status: str
    database: str
    environment: str
    version: str
    checked_at: datetime
    registries: RegistryCounts | None = None
