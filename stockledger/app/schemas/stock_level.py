from datetime import date, datetime

from pydantic import BaseModel, Field

from stockledger.app.db.models.core_types import StockStatus


class StockRead(BaseModel):
    article_id: int
    code: str
    name: str
    category: str
    expiry_date: date | None = None
    supplier_name: str | None = None

    quantity: int
    min_stock: int | None = None  # None = seuil non défini
    max_stock: int | None = None
    location: str | None = None
    updated_at: datetime | None = None

    status: StockStatus  # READ ONLY, dérivé, jamais stocké


class StockLevelRead(BaseModel):
    article_id: int
    quantity: int
    min_stock: int | None = None
    max_stock: int | None = None
    location: str | None = None
    updated_at: datetime

    class Config:
        from_attributes = True


class StockLevelUpdate(BaseModel):
    """Champs absents = inchangés ; null explicite = seuil non défini."""

    min_stock: int | None = Field(default=None, ge=0)
    max_stock: int | None = Field(default=None, ge=0)
    location: str | None = Field(default=None, max_length=100)


class StockSummary(BaseModel):
    total_articles: int
    total_units: int
    by_status: dict[str, int]
