from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

GENDERS = ("male", "female", "nonbinary", "other")
RELATIONSHIP_TYPES = ("parent", "spouse", "sibling")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")
_PLACEHOLDER_MARKERS = ("picsum", "placeholder")
UPLOAD_URL_PREFIX = "/uploads/"

_LOCAL_UPLOAD_RE = re.compile(r"^/uploads/[A-Za-z0-9._-]+$")


@dataclass
class DateCheck:
    valid: bool
    errors: list[str] = field(default_factory=list)


def parse_date(value: Any) -> date | None:
    """Parse a date or ISO-8601 string; return None when absent or unparseable."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_dates(birth: Any, death: Any = None, *, today: date | None = None) -> DateCheck:
    errors: list[str] = []
    t = today or date.today()

    if _is_blank(birth):
        return DateCheck(valid=False, errors=["Birth date is required"])

    birth_d = parse_date(birth)
    if birth_d is None:
        errors.append("Invalid birth date format")
    elif birth_d > t:
        errors.append("Birth date cannot be in the future")

    if not _is_blank(death):
        death_d = parse_date(death)
        if death_d is None:
            errors.append("Invalid death date format")
        else:
            if death_d > t:
                errors.append("Death date cannot be in the future")
            if birth_d is not None and death_d < birth_d:
                errors.append("Death date must be after birth date")

    return DateCheck(valid=not errors, errors=errors)


def validate_gender(value: Any) -> bool:
    return value in GENDERS


def validate_relationship_type(value: Any) -> bool:
    return value in RELATIONSHIP_TYPES


def validate_image_reference(value: Any) -> bool:
    """Heuristic filter for the optional image field; does not fetch anything."""

    if _is_blank(value):
        return True
    if not isinstance(value, str):
        return False
    s = value.strip()

    if s.startswith(UPLOAD_URL_PREFIX):
        return bool(_LOCAL_UPLOAD_RE.match(s)) and s.lower().endswith(IMAGE_EXTENSIONS)

    try:
        parsed = urlparse(s)
    except ValueError:
        return False
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        return False
    if parsed.scheme in ("http", "https") and not parsed.netloc:
        return False

    if parsed.path.lower().endswith(IMAGE_EXTENSIONS):
        return True
    lowered = s.lower()
    return any(marker in lowered for marker in _PLACEHOLDER_MARKERS)


def validate_person_fields(
    fields: Mapping[str, Any],
    *,
    current: Mapping[str, Any] | None = None,
    partial: bool = False,
    today: date | None = None,
) -> list[str]:
    """Check a person write and return every violated rule.

    For a partial update only the keys present in ``fields`` are checked;
    date ordering is checked against ``current`` merged with ``fields``.
    """

    errors: list[str] = []

    if not partial or "name" in fields:
        if _is_blank(fields.get("name")):
            errors.append("Name is required")

    if not partial or "birth_date" in fields or "death_date" in fields:
        merged = dict(current or {})
        merged.update({k: fields[k] for k in ("birth_date", "death_date") if k in fields})
        errors.extend(validate_dates(merged.get("birth_date"), merged.get("death_date"), today=today).errors)

    if not partial or "gender" in fields:
        gender = fields.get("gender")
        if _is_blank(gender):
            errors.append("Gender is required")
        elif not validate_gender(gender):
            errors.append(f"Gender must be one of: {', '.join(GENDERS)}")

    if "image" in fields and not validate_image_reference(fields.get("image")):
        errors.append("Invalid image reference")

    return errors


def _ancestor_ids(person_id: int, parent_edges: Iterable[tuple[int, int]]) -> set[int]:
    parents_of: dict[int, list[int]] = {}
    for parent, child in parent_edges:
        parents_of.setdefault(child, []).append(parent)

    seen: set[int] = set()
    frontier = [person_id]
    while frontier:
        next_frontier: list[int] = []
        for node in frontier:
            for p in parents_of.get(node, []):
                if p in seen:
                    continue
                seen.add(p)
                next_frontier.append(p)
        frontier = next_frontier
    return seen


def validate_relationship_edge(
    person_id1: int,
    person_id2: int,
    rel_type: Any,
    existing: Iterable[Mapping[str, Any]] = (),
) -> list[str]:
    """Reject edges that would make the relationship set inconsistent.

    ``existing`` is the current relationship rows (``person_id1``,
    ``person_id2``, ``type``).
    """

    if not validate_relationship_type(rel_type):
        return [f"Relationship type must be one of: {', '.join(RELATIONSHIP_TYPES)}"]
    if person_id1 == person_id2:
        return ["A person cannot be related to themselves"]

    rows = list(existing)
    errors: list[str] = []

    for r in rows:
        if r.get("type") != rel_type:
            continue
        a, b = r.get("person_id1"), r.get("person_id2")
        same = (a, b) == (person_id1, person_id2)
        mirrored = (a, b) == (person_id2, person_id1)
        if same or (rel_type != "parent" and mirrored):
            errors.append("Relationship already exists")
            break

    if rel_type == "parent":
        parent_edges = [
            (r["person_id1"], r["person_id2"]) for r in rows if r.get("type") == "parent"
        ]
        if person_id2 in _ancestor_ids(person_id1, parent_edges):
            errors.append("Parent relationship would create a cycle in the family tree")

    return errors
