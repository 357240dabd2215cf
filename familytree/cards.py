"""Display-ready projections of person rows (the "person card")."""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Mapping

from .validation import parse_date

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def calculate_age(birth: Any, death: Any = None, *, today: date | None = None) -> int | None:
    """Whole years lived, as of the death date or today.

    Returns None when a date is unparseable or the result would be negative.
    """

    birth_d = parse_date(birth)
    if birth_d is None:
        return None

    if death is not None and str(death).strip():
        end = parse_date(death)
        if end is None:
            return None
    else:
        end = today or date.today()

    age = end.year - birth_d.year
    if (end.month, end.day) < (birth_d.month, birth_d.day):
        age -= 1
    return age if age >= 0 else None


def get_initials(name: Any) -> str:
    if not name or not str(name).strip():
        return "?"
    words = str(name).split()[:2]
    return "".join(w[0] for w in words).upper()


def format_date(value: Any) -> str | None:
    """Return e.g. "Jan 15, 1980"; unparseable input comes back unchanged."""

    if value is None or value == "":
        return None
    d = parse_date(value)
    if d is None:
        return value
    return f"{_MONTHS[d.month - 1]} {d.day}, {d.year}"


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value


def format_person_card(
    person: Mapping[str, Any] | None,
    relationships: Iterable[Mapping[str, Any]] = (),
    *,
    today: date | None = None,
) -> dict[str, Any] | None:
    if not person:
        return None

    pid = person.get("id")
    relatives = [
        r for r in (relationships or ())
        if pid is not None and (r.get("person_id1") == pid or r.get("person_id2") == pid)
    ]

    return {
        "id": pid,
        "name": person.get("name"),
        "birth_date": _iso(person.get("birth_date")),
        "death_date": _iso(person.get("death_date")),
        "age": calculate_age(person.get("birth_date"), person.get("death_date"), today=today),
        "status": "deceased" if person.get("death_date") else "living",
        "gender": person.get("gender"),
        "image": person.get("image") or None,
        "parent_id": person.get("parent_id"),
        "relationship_count": len(relatives),
        "children_count": sum(
            1 for r in relatives if r.get("type") == "parent" and r.get("person_id1") == pid
        ),
        "has_partner": any(r.get("type") == "spouse" for r in relatives),
        "initials": get_initials(person.get("name")),
    }
