from datetime import datetime
from pydantic import BaseModel, Field

from stockledger.app.db.models.core_types import POStatus


class POLineCreate(BaseModel):
    article_id: int
    quantity: int = Field(gt=0)


class POCreate(BaseModel):
    order_number: str = Field(min_length=1, max_length=64)
    supplier_id: int
    notes: str | None = None
    lines: list[POLineCreate] = Field(min_length=1)


class POStatusUpdate(BaseModel):
    # cible hors transitions autorisées -> Conflict côté state machine
    status: POStatus


class POLineRead(BaseModel):
    article_id: int
    quantity: int

    class Config:
        from_attributes = True


class POSummaryRead(BaseModel):
    id: int
    order_number: str
    supplier_id: int
    supplier_name: str
    status: POStatus
    notes: str | None = None
    created_at: datetime
    received_at: datetime | None = None
    total_items: int
    total_units: int


class PORead(BaseModel):
    id: int
    order_number: str
    supplier_id: int
    created_by: int
    status: POStatus
    notes: str | None = None
    created_at: datetime
    received_at: datetime | None = None
    lines: list[POLineRead] = Field(default_factory=list)

    class Config:
        from_attributes = True
