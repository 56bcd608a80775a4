"""
Record Builder Module
Turns validated catalog rows into product and variant candidates.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class StockStatus(str, Enum):
    """Stock classification stored on every variant."""

    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


LOW_STOCK_THRESHOLD = 10


def derive_stock_status(quantity: int) -> StockStatus:
    """
    Classify a quantity.

    Args:
        quantity: Inventory quantity

    Returns:
        in_stock above 10, low_stock for 1..10, out_of_stock otherwise
    """
    if quantity > LOW_STOCK_THRESHOLD:
        return StockStatus.IN_STOCK
    if quantity > 0:
        return StockStatus.LOW_STOCK
    return StockStatus.OUT_OF_STOCK


def new_identifier() -> str:
    return str(uuid.uuid4())


@dataclass
class ProductCandidate:
    """Not-yet-persisted product row."""

    id: str
    handle: str
    name: str
    brand: str
    created_at: datetime
    updated_at: datetime
    # Always stored as NULL by the importer
    description: Optional[str] = field(default=None, init=False)

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'handle': self.handle,
            'name': self.name,
            'description': None,
            'brand': self.brand,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


@dataclass
class VariantCandidate:
    """
    Not-yet-persisted variant row.

    ``product_id`` holds the candidate id of the owning product until
    :func:`resolve_variant` swaps in the id read back from storage.
    ``status`` is derived from ``quantity`` and cannot be passed in.
    """

    id: str
    handle: str
    sku: str
    product_id: str
    quantity: int
    price: Decimal
    barcode: Optional[str]
    created_at: datetime
    updated_at: datetime
    status: StockStatus = field(init=False)

    def __post_init__(self):
        self.status = derive_stock_status(self.quantity)

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sku': self.sku,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'price': self.price,
            'barcode': self.barcode,
            'status': self.status,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    def to_spool(self) -> Dict[str, Any]:
        """JSON-safe form used while the variant waits for its product id."""
        return {
            'id': self.id,
            'handle': self.handle,
            'sku': self.sku,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'price': str(self.price),
            'barcode': self.barcode,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_spool(cls, data: Mapping[str, Any]) -> 'VariantCandidate':
        return cls(
            id=data['id'],
            handle=data['handle'],
            sku=data['sku'],
            product_id=data['product_id'],
            quantity=int(data['quantity']),
            price=Decimal(data['price']),
            barcode=data['barcode'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
        )


def build_product(handle: str, title: str, vendor: str, now: datetime) -> ProductCandidate:
    """
    Build a product candidate with a fresh identifier.

    Only called the first time a handle is seen in a run.
    """
    return ProductCandidate(
        id=new_identifier(),
        handle=handle,
        name=title,
        brand=vendor,
        created_at=now,
        updated_at=now,
    )


def build_variant(
    handle: str,
    sku: str,
    quantity: int,
    price: Decimal,
    barcode: Optional[str],
    now: datetime,
    product_id_map: Mapping[str, str],
) -> VariantCandidate:
    """
    Build a variant candidate pointing at the product id known for ``handle``.

    Args:
        handle: Owning product handle
        sku: Stock keeping code
        quantity: Inventory quantity
        price: Unit price
        barcode: Optional barcode; blank becomes None
        now: Run timestamp
        product_id_map: Handle to product id (candidate ids during the row pass)

    Returns:
        VariantCandidate with a derived status
    """
    return VariantCandidate(
        id=new_identifier(),
        handle=handle,
        sku=sku,
        product_id=product_id_map[handle],
        quantity=quantity,
        price=price,
        barcode=barcode or None,
        created_at=now,
        updated_at=now,
    )


def resolve_variant(variant: VariantCandidate, persisted_ids: Mapping[str, str]) -> Optional[VariantCandidate]:
    """Return a copy bound to the persisted product id, or None if unknown."""
    product_id = persisted_ids.get(variant.handle)
    if product_id is None:
        return None
    return replace(variant, product_id=product_id)
