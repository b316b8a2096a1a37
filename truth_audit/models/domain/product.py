"""
Product (audit subject) domain model

Storage: PostgreSQL (audit.products table)
"""
import json
from dataclasses import dataclass, field
from typing import Optional, Any


@dataclass
class Product:
    id: str
    brand: Optional[str] = None
    model_name: Optional[str] = None
    category: Optional[str] = None
    # Either a list of {label, value} items or a (possibly nested) key/value map
    technical_specs: Any = field(default_factory=dict)
    weight_lbs: Optional[float] = None
    msrp_usd: Optional[float] = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.brand, self.model_name) if p]
        return ' '.join(parts) or self.id

    @classmethod
    def from_row(cls, row) -> "Product":
        specs = row['technical_specs']
        if isinstance(specs, str):
            specs = json.loads(specs)
        return cls(
            id=row['id'],
            brand=row['brand'],
            model_name=row['model_name'],
            category=row['category'],
            technical_specs=specs if specs is not None else {},
            weight_lbs=float(row['weight_lbs']) if row['weight_lbs'] is not None else None,
            msrp_usd=float(row['msrp_usd']) if row['msrp_usd'] is not None else None,
        )
