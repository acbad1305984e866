import csv
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Dict, Iterable, List, Optional, Sequence


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def csv_to_dicts(content: str) -> List[Dict[str, str]]:
    """Parse CSV text with a header row; header names are lower-cased and stripped."""
    reader = csv.DictReader(StringIO(content.lstrip("\ufeff")))
    records: List[Dict[str, str]] = []
    for row in reader:
        records.append(
            {
                (key or "").strip().lower(): (value or "").strip()
                for key, value in row.items()
                if key is not None
            }
        )
    return records


def positive_decimal_or_none(value: Optional[str]) -> Optional[Decimal]:
    """Coerce a cell to a positive number; blank, invalid or zero become None."""
    if value is None or not str(value).strip():
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not number.is_finite() or number <= 0:
        return None
    return number


def positive_int_or_none(value: Optional[str]) -> Optional[int]:
    number = positive_decimal_or_none(value)
    if number is None:
        return None
    return int(number)


def format_money(value) -> str:
    return f"{Decimal(value or 0):.2f}"
