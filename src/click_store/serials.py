"""Serial ledger: the relationship between an item's stock and its serials.

These helpers mutate the record they are given and never touch storage; the
orchestrator persists the result.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence

from .errors import StockMismatchError
from .records import StockItem


def take_serials(item: StockItem, count: int) -> tuple[list[str], list[str]]:
    """Split ``item.serial_numbers`` into the first ``count`` serials and the rest.

    When ``count`` exceeds the number of serials the shortfall is made of
    anonymous units, so quantity-only items can still move by count alone.
    """

    count = max(0, count)
    return list(item.serial_numbers[:count]), list(item.serial_numbers[count:])


def return_serials(item: StockItem, serials: Sequence[str], anonymous: int = 0) -> None:
    """Put units back on the shelf. Serials are appended without de-duplication."""

    if serials:
        item.serial_numbers = [*item.serial_numbers, *serials]
        item.serialized = True
    item.stock += len(serials) + max(0, anonymous)


def remove_serials(item: StockItem, serials: Iterable[str]) -> list[str]:
    """Remove the named serials and return the ones that were actually present."""

    wanted = set(serials)
    removed = [serial for serial in item.serial_numbers if serial in wanted]
    if removed:
        item.serial_numbers = [serial for serial in item.serial_numbers if serial not in wanted]
        item.stock = max(0, item.stock - len(removed))
    return removed


def duplicates(serials: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    repeated: list[str] = []
    for serial in serials:
        if serial in seen and serial not in repeated:
            repeated.append(serial)
        seen.add(serial)
    return repeated


def normalize_serials(serials: Iterable[str] | str | None) -> list[str]:
    """Accept a list of serials or the legacy ``;`` delimited string form."""

    if serials is None:
        return []
    if isinstance(serials, str):
        serials = serials.split(";")
    return [str(serial).strip() for serial in serials if str(serial).strip()]


def check_serial_count(item: StockItem) -> None:
    if item.serialized and item.stock != len(item.serial_numbers):
        raise StockMismatchError(item.id, item.stock, len(item.serial_numbers))


__all__ = [
    "check_serial_count",
    "duplicates",
    "normalize_serials",
    "remove_serials",
    "return_serials",
    "take_serials",
]
