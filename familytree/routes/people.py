from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from .. import queries
from ..cards import format_date, format_person_card
from ..db import RecordStore, get_store
from ..errors import NotFoundError, PartialFailureError, StoreError, ValidationError
from ..schemas import GenderUpdate, PersonCreate, PersonUpdate
from ..validation import validate_person_fields

log = logging.getLogger(__name__)

router = APIRouter(tags=["people"])


def _require_person(store, person_id: int) -> dict[str, Any]:
    person = queries.get_person(store, person_id)
    if person is None:
        raise NotFoundError("Person", person_id)
    return person


def _card(store, person_id: int) -> dict[str, Any] | None:
    with store.session() as s:
        person = _require_person(s, person_id)
        rels = queries.relationships_for_person(s, person_id)
    return format_person_card(person, rels)


def _clean_name(fields: dict[str, Any]) -> None:
    if isinstance(fields.get("name"), str):
        fields["name"] = fields["name"].strip()


@router.get("/persons")
def list_persons(store: RecordStore = Depends(get_store)) -> list[dict[str, Any]]:
    """All persons, oldest first."""
    return queries.list_persons(store)


@router.get("/persons_with_relationships")
def list_persons_with_relationships(store: RecordStore = Depends(get_store)) -> list[dict[str, Any]]:
    return queries.persons_with_relationships(store)


@router.get("/persons/search")
def search_persons(
    q: str = Query(min_length=1, max_length=200),
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    with store.session() as s:
        rows = queries.search_persons(s, q.strip())
        rels = queries.relationships_for_persons(s, [r["id"] for r in rows])
    return {"query": q, "results": [format_person_card(r, rels) for r in rows]}


@router.get("/persons/{person_id}")
def get_person_profile(person_id: int, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    """Card, raw relationship rows and display dates for one person."""

    with store.session() as s:
        person = _require_person(s, person_id)
        rels = queries.relationships_for_person(s, person_id)

    return {
        "person": format_person_card(person, rels),
        "relationships": rels,
        "dates": {
            "birth": format_date(person.get("birth_date")),
            "death": format_date(person.get("death_date")),
        },
    }


@router.post("/family", status_code=201)
@router.post("/persons", status_code=201)
def create_person(body: PersonCreate, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    """Insert a person plus optional parent and partner links as one unit.

    The pending edges are inserted in order after the person row. With
    atomic writes the unit rolls back on any failure; without them a failed
    edge leaves the person in place and surfaces as a partial failure.
    """

    fields = body.person_fields()
    errors = validate_person_fields(fields)
    if body.parent_id is not None and body.parent_id == body.partner_id:
        errors.append("Parent and partner must be different people")
    if errors:
        raise ValidationError(errors)
    _clean_name(fields)

    refs = [pid for pid in (body.parent_id, body.partner_id) if pid is not None]
    with store.transaction() as tx:
        missing = set(refs) - queries.existing_person_ids(tx, refs)
        if missing:
            raise NotFoundError("Person", min(missing))

        new_id = queries.insert_person(tx, fields)
        log.info("created person %s (%s)", new_id, fields["name"])

        pending: list[tuple[int, int, str]] = []
        if body.parent_id is not None:
            pending.append((body.parent_id, new_id, "parent"))
        if body.partner_id is not None:
            pending.append((new_id, body.partner_id, "spouse"))
            pending.append((body.partner_id, new_id, "spouse"))

        for p1, p2, rel_type in pending:
            try:
                queries.insert_relationship(tx, p1, p2, rel_type)
            except StoreError as exc:
                if store.atomic_writes:
                    raise
                log.warning("person %s created but %s edge %s->%s failed: %s", new_id, rel_type, p1, p2, exc)
                raise PartialFailureError(
                    f"Person {new_id} was created but its {rel_type} relationship could not be stored",
                    person_id=new_id,
                ) from exc

    return _card(store, new_id)


@router.patch("/persons/{person_id}")
def update_person(
    person_id: int,
    body: PersonUpdate,
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    changes = body.changes()
    current = _require_person(store, person_id)

    errors = validate_person_fields(changes, current=current, partial=True)
    if errors:
        raise ValidationError(errors)
    _clean_name(changes)

    if changes and queries.update_person(store, person_id, changes) == 0:
        raise NotFoundError("Person", person_id)
    return _card(store, person_id)


@router.patch("/person/{person_id}/gender")
@router.patch("/persons/{person_id}/gender")
def update_gender(
    person_id: int,
    body: GenderUpdate,
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    errors = validate_person_fields({"gender": body.gender}, partial=True)
    if errors:
        raise ValidationError(errors)

    if queries.update_person(store, person_id, {"gender": body.gender}) == 0:
        raise NotFoundError("Person", person_id)
    return {"message": "Gender updated successfully", "id": person_id, "gender": body.gender}


@router.delete("/family/{person_id}")
@router.delete("/persons/{person_id}")
def delete_person(person_id: int, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    """Remove every relationship touching the person, then the person row."""

    with store.transaction() as tx:
        _require_person(tx, person_id)
        removed = queries.delete_relationships_for_person(tx, person_id)
        try:
            queries.delete_person(tx, person_id)
        except StoreError as exc:
            if store.atomic_writes:
                raise
            log.warning("relationships of person %s removed but person delete failed: %s", person_id, exc)
            raise PartialFailureError(
                f"Relationships of person {person_id} were removed but the person could not be deleted",
                person_id=person_id,
            ) from exc

    log.info("deleted person %s and %d relationship(s)", person_id, removed)
    return {"message": "Person deleted successfully", "id": person_id, "relationships_removed": removed}


@router.get("/persons/{person_id}/ancestors")
def get_ancestors(
    person_id: int,
    max_depth: int = Query(default=50, ge=1, le=200),
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    with store.session() as s:
        _require_person(s, person_id)
        rows = queries.ancestors(s, person_id, max_depth=max_depth)
    return {"id": person_id, "ancestors": rows}


@router.get("/persons/{person_id}/descendants/count")
def get_descendant_count(person_id: int, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    with store.session() as s:
        _require_person(s, person_id)
        n = queries.descendant_count(s, person_id)
    return {"id": person_id, "descendant_count": n}
