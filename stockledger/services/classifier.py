from __future__ import annotations

from stockledger.app.db.models.core_types import StockStatus

CRITICAL_RATIO = 0.25


def classify_stock(quantity: int, min_stock: int | None, max_stock: int | None) -> StockStatus:
    """
    Statut de stock dérivé de (quantité, min, max).

    Ordre de priorité :
        quantity <= 0                      -> sin-stock
        min > 0 et quantity <= min * 0.25  -> critico
        min > 0 et quantity <= min         -> bajo
        max > 0 et quantity >= max         -> sobre-stock
        sinon                              -> normal

    Un seuil à None (non défini) ou à 0 ne déclenche jamais sa branche.
    """
    if quantity <= 0:
        return StockStatus.sin_stock

    if min_stock is not None and min_stock > 0:
        if quantity <= min_stock * CRITICAL_RATIO:
            return StockStatus.critico
        if quantity <= min_stock:
            return StockStatus.bajo

    if max_stock is not None and max_stock > 0 and quantity >= max_stock:
        return StockStatus.sobre_stock

    return StockStatus.normal
