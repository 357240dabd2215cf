from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from .. import queries
from ..db import RecordStore, get_store
from ..errors import NotFoundError, ValidationError
from ..schemas import RelationshipCreate
from ..validation import RELATIONSHIP_TYPES, validate_relationship_edge, validate_relationship_type

log = logging.getLogger(__name__)

router = APIRouter(tags=["relationships"])


@router.get("/relationships")
def list_relationships(store: RecordStore = Depends(get_store)) -> list[dict[str, Any]]:
    return queries.list_relationships(store)


@router.post("/relationships", status_code=201)
def create_relationship(body: RelationshipCreate, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    """Insert one edge after checking it against the current edge set.

    Spouse edges are stored exactly as given; readers treat them as symmetric.
    """

    if not validate_relationship_type(body.type):
        raise ValidationError([f"Relationship type must be one of: {', '.join(RELATIONSHIP_TYPES)}"])

    ids = [body.person_id1, body.person_id2]
    with store.transaction() as tx:
        missing = set(ids) - queries.existing_person_ids(tx, ids)
        if missing:
            raise NotFoundError("Person", min(missing))

        errors = validate_relationship_edge(
            body.person_id1, body.person_id2, body.type, queries.list_relationships(tx)
        )
        if errors:
            raise ValidationError(errors)

        rid = queries.insert_relationship(tx, body.person_id1, body.person_id2, body.type)

    log.info("created %s relationship %s: %s -> %s", body.type, rid, body.person_id1, body.person_id2)
    return {"id": rid, "person_id1": body.person_id1, "person_id2": body.person_id2, "type": body.type}


@router.delete("/relationships/{relationship_id}")
def delete_relationship(relationship_id: int, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    with store.transaction() as tx:
        rel = queries.get_relationship(tx, relationship_id)
        if rel is None or queries.delete_relationship(tx, relationship_id) == 0:
            raise NotFoundError("Relationship", relationship_id)
    log.info("deleted %s relationship %s: %s -> %s", rel["type"], relationship_id, rel["person_id1"], rel["person_id2"])
    return {"message": "Relationship deleted successfully", "id": relationship_id}
