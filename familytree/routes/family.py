from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends

from .. import queries
from ..cards import calculate_age
from ..db import RecordStore, get_store
from ..graph import build_graph, materialize, serialize_flat, serialize_forest

router = APIRouter(tags=["family"])


@router.get("/family")
def get_family(
    form: Literal["both", "flat", "forest"] = "both",
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    """The whole family graph.

    ``flat`` is the person and relationship lists for client-side assembly,
    ``forest`` nests children under each root, ``both`` returns everything.
    """

    # One session for both reads; if either fails nothing is served.
    with store.session() as s:
        persons = queries.list_persons(s)
        relationships = queries.list_relationships(s)

    if form == "flat":
        return serialize_flat(persons, relationships)
    if form == "forest":
        graph = build_graph(persons, relationships)
        return {"roots": graph.roots, "forest": serialize_forest(graph)}
    return materialize(persons, relationships)


@router.get("/stats")
def get_stats(store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    with store.session() as s:
        total_persons = queries.count_persons(s)
        total_relationships = queries.count_relationships(s)
        dates = queries.life_dates(s)

    ages = []
    for r in dates:
        if r.get("death_date"):
            continue
        age = calculate_age(r.get("birth_date"))
        if age is not None:
            ages.append(age)

    return {
        "total_persons": total_persons,
        "total_relationships": total_relationships,
        "living_persons": len(ages),
        "average_age_living": round(sum(ages) / len(ages), 1) if ages else None,
    }
