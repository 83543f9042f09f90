"""
UPDATE paramétrés à partir d'un "field set" explicite.

Un FieldSet déclare la liste fermée des colonnes modifiables d'une table.
Chaque champ est indépendamment optionnel : UNSET = ne pas toucher,
None = écrire NULL. Pas de concaténation de SQL, les valeurs passent
toujours en paramètres liés.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from typing import Any, ClassVar

from sqlalchemy import Update, update


class _Unset:
    _instance: ClassVar["_Unset | None"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class FieldSet:
    @classmethod
    def from_mapping(cls, data: dict[str, Any]):
        names = {f.name for f in fields(cls)}
        unknown = set(data) - names
        if unknown:
            raise ValueError(f"Unknown fields for {cls.__name__}: {sorted(unknown)}")
        return cls(**data)

    def values(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.values()


@dataclass(frozen=True)
class StockLevelFields(FieldSet):
    min_stock: int | None = UNSET
    max_stock: int | None = UNSET
    location: str | None = UNSET


@dataclass(frozen=True)
class ArticleFields(FieldSet):
    name: str = UNSET
    description: str | None = UNSET
    category: str = UNSET
    supplier_id: int | None = UNSET
    expiry_date: date | None = UNSET


def build_update(model: type, field_set: FieldSet, *where: Any) -> Update | None:
    """
    Compile un FieldSet en UPDATE paramétré sur `model`.
    Retourne None si aucun champ n'est positionné.
    """
    values = field_set.values()
    if not values:
        return None

    columns = model.__table__.c
    for name in values:
        if name not in columns:
            raise ValueError(f"{model.__name__} has no column {name!r}")

    return update(model).where(*where).values(**values)
