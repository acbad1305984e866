import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List

from sqlalchemy.orm import Session, joinedload

from ..models.models import Property
from ..utils.csv_utils import (
    csv_to_dicts,
    positive_decimal_or_none,
    positive_int_or_none,
    rows_to_csv,
)

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "unit_number",
    "address",
    "owner_name",
    "square_footage",
    "bedrooms",
    "bathrooms",
]


@dataclass
class ImportOutcome:
    created: int = 0
    skipped: int = 0
    skipped_units: List[str] = field(default_factory=list)


@dataclass
class CsvReport:
    filename: str
    content: str


def import_properties(db: Session, content: str) -> ImportOutcome:
    """Create properties from CSV rows.

    Rows missing a unit number or address are skipped, as are units that
    already exist (in the database or earlier in the same file).
    """
    outcome = ImportOutcome()
    existing_units = {row[0] for row in db.query(Property.unit_number).all()}

    for record in csv_to_dicts(content):
        unit_number = record.get("unit_number", "")
        address = record.get("address", "")
        if not unit_number or not address:
            outcome.skipped += 1
            continue
        if unit_number in existing_units:
            outcome.skipped += 1
            outcome.skipped_units.append(unit_number)
            continue

        bathrooms = positive_decimal_or_none(record.get("bathrooms"))
        db.add(
            Property(
                unit_number=unit_number,
                address=address,
                square_footage=positive_int_or_none(record.get("square_footage")),
                bedrooms=positive_int_or_none(record.get("bedrooms")),
                bathrooms=round(bathrooms, 1) if bathrooms is not None else None,
            )
        )
        existing_units.add(unit_number)
        outcome.created += 1

    db.commit()
    logger.info("Property import created=%s skipped=%s", outcome.created, outcome.skipped)
    return outcome


def export_properties(db: Session) -> CsvReport:
    properties = (
        db.query(Property)
        .options(joinedload(Property.owner))
        .order_by(Property.unit_number.asc())
        .all()
    )
    rows = [
        [
            prop.unit_number,
            prop.address,
            prop.owner_name or "",
            "" if prop.square_footage is None else str(prop.square_footage),
            "" if prop.bedrooms is None else str(prop.bedrooms),
            "" if prop.bathrooms is None else str(prop.bathrooms),
        ]
        for prop in properties
    ]
    filename = f"properties-{date.today().isoformat()}.csv"
    return CsvReport(filename=filename, content=rows_to_csv(EXPORT_HEADERS, rows))
