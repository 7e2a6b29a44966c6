"""
Truck listing operations.

Functions here mutate an in-memory ``Document``; the caller persists it
with ``JsonStore.save_document``. Nothing is written when an operation
raises, so a rejected update never half-applies.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pydantic import ValidationError as SchemaError

from errors import DuplicateError, NotFoundError, ValidationError, utc_now_iso
from schemas import Document, Truck, TruckCreate, TruckUpdate, normalize_primary

logger = logging.getLogger(__name__)

TOGGLE_FIELDS = {
    "available": "is_available",
    "featured": "is_featured",
    "active": "is_active",
}

# Parts of the id; changing any of them means the id is recomputed.
ID_FIELDS = ("year", "make", "model", "stock_number")

# Never taken from a client body.
PROTECTED_KEYS = {"id", "dateAdded", "date_added", "lastModified", "last_modified"}

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def generate_truck_id(year, make: str, model: str, suffix) -> str:
    """
    Build the slug used as primary key and URL.

    >>> generate_truck_id(2025, "WESTERN STAR", "49X", "WC2899")
    '2025-western-star-49x-wc2899'
    """
    raw = f"{year}-{make}-{model}-{suffix}".lower()
    return _NON_SLUG.sub("-", raw).strip("-")


def _epoch_millis(iso_timestamp: Optional[str]) -> int:
    if iso_timestamp:
        try:
            moment = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
            return int(round(moment.timestamp() * 1000))
        except ValueError:
            pass
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def truck_id_for(truck: Truck) -> str:
    suffix = truck.stock_number or truck.vin_number or _epoch_millis(truck.date_added)
    return generate_truck_id(truck.year, truck.make, truck.model, suffix)


def find_truck(document: Document, truck_id: str) -> Tuple[int, Truck]:
    for index, truck in enumerate(document.trucks):
        if truck.id == truck_id:
            return index, truck
    raise NotFoundError("Truck not found")


def filter_trucks(
    trucks: List[Truck],
    available: Optional[bool] = None,
    featured: Optional[bool] = None,
    condition: Optional[str] = None,
    make: Optional[str] = None,
    year: Optional[int] = None,
) -> List[Truck]:
    """Public listing filter. Inactive trucks are always dropped."""
    result = [truck for truck in trucks if truck.is_active]

    if available:
        result = [truck for truck in result if truck.is_available]

    if featured:
        result = [truck for truck in result if truck.is_featured]

    if condition:
        wanted = condition.lower()
        result = [truck for truck in result if (truck.condition or "").lower() == wanted]

    if make:
        wanted = make.lower()
        result = [truck for truck in result if wanted in truck.make.lower()]

    if year is not None:
        result = [truck for truck in result if truck.year == year]

    return result


def create_truck(document: Document, payload: TruckCreate) -> Truck:
    now = utc_now_iso()
    data = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if key not in PROTECTED_KEYS
    }

    data.setdefault("images", [])
    for flag, default in (("is_available", True), ("is_featured", False), ("is_active", True)):
        if data.get(flag) is None:
            data[flag] = default

    data["date_added"] = now
    data["last_modified"] = now
    data["id"] = "pending"

    truck = Truck.model_validate(data)
    truck.id = truck_id_for(truck)
    normalize_primary(truck.images)

    if any(existing.id == truck.id for existing in document.trucks):
        raise DuplicateError("Truck with this combination already exists", code="DUPLICATE_TRUCK")

    document.trucks.append(truck)
    logger.info("Created truck %s", truck.id)
    return truck


def update_truck(document: Document, truck_id: str, payload: TruckUpdate) -> Truck:
    index, current = find_truck(document, truck_id)
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if key not in PROTECTED_KEYS
    }

    for required in ("year", "make", "model"):
        if required in changes and changes[required] is None:
            raise ValidationError(f"{required} cannot be empty")

    new_stock = changes.get("stock_number")
    if new_stock:
        for other in document.trucks:
            if other.id != truck_id and other.stock_number == new_stock:
                raise DuplicateError("Stock number already exists", code="DUPLICATE_STOCK")

    merged = current.model_dump()
    merged.update(changes)
    merged["last_modified"] = utc_now_iso()
    try:
        updated = Truck.model_validate(merged)
    except SchemaError as exc:
        raise ValidationError("Invalid truck data", details=exc.errors(include_url=False, include_context=False)) from exc
    normalize_primary(updated.images)

    if any(field in changes for field in ID_FIELDS):
        new_id = truck_id_for(updated)
        if new_id != truck_id:
            if any(other.id == new_id for other in document.trucks if other.id != truck_id):
                raise DuplicateError(
                    "Updated truck data conflicts with existing trucks", code="ID_CONFLICT"
                )
            logger.info("Truck %s renamed to %s", truck_id, new_id)
            updated.id = new_id

    document.trucks[index] = updated
    return updated


def delete_truck(document: Document, truck_id: str) -> Truck:
    index, _ = find_truck(document, truck_id)
    deleted = document.trucks.pop(index)
    logger.info("Deleted truck %s", truck_id)
    return deleted


def toggle_attribute(field: str) -> str:
    """Map a toggle field name to the Truck attribute, or raise INVALID_FIELD."""
    attribute = TOGGLE_FIELDS.get(field)
    if attribute is None:
        raise ValidationError(
            "Invalid field. Must be available, featured, or active", code="INVALID_FIELD"
        )
    return attribute


def toggle_truck(document: Document, truck_id: str, field: str) -> Tuple[str, bool]:
    """Flip one of the three status flags. Returns (attribute name, new value)."""
    attribute = toggle_attribute(field)

    _, truck = find_truck(document, truck_id)
    new_value = not getattr(truck, attribute)
    setattr(truck, attribute, new_value)
    truck.last_modified = utc_now_iso()
    return attribute, new_value
