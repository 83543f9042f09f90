from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from stockledger.app.db.models.core_types import MovementType


class MovementCreate(BaseModel):
    article_id: int
    movement_type: MovementType
    quantity: int = Field(ge=0)
    reason: str | None = Field(default=None, max_length=255)
    notes: str | None = None

    @model_validator(mode="after")
    def _check_quantity(self):
        # ajuste accepte 0 (remise à zéro), entrada/salida exigent > 0
        if self.movement_type is not MovementType.ajuste and self.quantity <= 0:
            raise ValueError("La cantidad debe ser mayor a 0")
        return self


class MovementRead(BaseModel):
    id: int
    article_id: int
    article_code: str
    article_name: str
    user_id: int
    user_name: str
    movement_type: MovementType
    quantity: int
    reason: str | None = None
    notes: str | None = None
    happened_at: datetime


class MovementCreated(BaseModel):
    message: str
    movement: MovementRead
    stock_anterior: int
    stock_nuevo: int


class MovementTypeStat(BaseModel):
    movement_type: MovementType
    total: int
    total_quantity: int


class ArticleMovementStat(BaseModel):
    article_id: int
    article_code: str
    article_name: str
    total_movements: int
    total_entradas: int
    total_salidas: int


class MovementStats(BaseModel):
    today: int
    by_type: list[MovementTypeStat]
    top_articles: list[ArticleMovementStat]
