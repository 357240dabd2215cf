"""Materialize the family graph from flat person/relationship rows.

The working graph is an arena of ``PersonNode`` keyed by person id; links
between people are stored as ids, never as object references. Nested output
is produced only by ``serialize_forest``, which is where cycles are broken.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping

log = logging.getLogger(__name__)

_PERSON_FIELDS = ("id", "name", "birth_date", "death_date", "image", "gender")


@dataclass
class PersonNode:
    id: int
    person: dict[str, Any]
    children: list[int] = field(default_factory=list)
    parent: int | None = None
    partner: int | None = None


@dataclass
class FamilyGraph:
    nodes: dict[int, PersonNode]
    roots: list[int]


def _row_id(row: Mapping[str, Any]) -> Any:
    rid = row.get("id")
    return rid if rid is not None else 0


def build_graph(
    persons: Iterable[Mapping[str, Any]],
    relationships: Iterable[Mapping[str, Any]],
) -> FamilyGraph:
    nodes: dict[int, PersonNode] = {}
    for p in persons:
        nodes[p["id"]] = PersonNode(id=p["id"], person=dict(p))

    # Ascending relationship id, so "last edge wins" is stable across reads.
    ordered = sorted(relationships, key=_row_id)

    has_parent: set[int] = set()
    for r in ordered:
        p1 = nodes.get(r.get("person_id1"))
        p2 = nodes.get(r.get("person_id2"))
        if p1 is None or p2 is None:
            log.debug("skipping relationship %s with missing endpoint", r.get("id"))
            continue

        rtype = r.get("type")
        if rtype == "parent":
            if p2.id not in p1.children:
                p1.children.append(p2.id)
            p2.parent = p1.id
            has_parent.add(p2.id)
        elif rtype == "spouse":
            p1.partner = p2.id
            p2.partner = p1.id

    roots = [pid for pid in nodes if pid not in has_parent]
    return FamilyGraph(nodes=nodes, roots=roots)


def _jsonable(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value


def _person_fields(person: Mapping[str, Any]) -> dict[str, Any]:
    return {k: _jsonable(person.get(k)) for k in _PERSON_FIELDS}


def _partner_summary(graph: FamilyGraph, partner_id: int | None) -> dict[str, Any] | None:
    if partner_id is None:
        return None
    partner = graph.nodes[partner_id].person
    return {"id": partner_id, "name": partner.get("name")}


def _node_payload(graph: FamilyGraph, pid: int) -> dict[str, Any]:
    node = graph.nodes[pid]
    out = _person_fields(node.person)
    out["parent_id"] = node.parent
    out["partner"] = _partner_summary(graph, node.partner)
    out["children"] = []
    return out


def _reference_payload(graph: FamilyGraph, pid: int) -> dict[str, Any]:
    return {"id": pid, "name": graph.nodes[pid].person.get("name"), "ref": True}


def serialize_forest(graph: FamilyGraph) -> list[dict[str, Any]]:
    """Nest children under each root without ever emitting a cycle.

    Every person is expanded at most once across the whole forest; any later
    occurrence (second parent, or a malformed parent loop) becomes a ``ref``
    stub. Parents are emitted as ids and partners as ``{id, name}``.
    """

    expanded: set[int] = set()
    forest: list[dict[str, Any]] = []

    for root_id in graph.roots:
        if root_id in expanded:
            continue
        expanded.add(root_id)
        root = _node_payload(graph, root_id)
        forest.append(root)

        stack = [(root_id, root)]
        while stack:
            pid, payload = stack.pop()
            for cid in graph.nodes[pid].children:
                if cid in expanded:
                    payload["children"].append(_reference_payload(graph, cid))
                    continue
                expanded.add(cid)
                child = _node_payload(graph, cid)
                payload["children"].append(child)
                stack.append((cid, child))

    return forest


def serialize_flat(
    persons: Iterable[Mapping[str, Any]],
    relationships: Iterable[Mapping[str, Any]],
) -> dict[str, list[dict[str, Any]]]:
    return {
        "persons": [{k: _jsonable(v) for k, v in p.items()} for p in persons],
        "relationships": [dict(r) for r in relationships],
    }


def materialize(
    persons: Iterable[Mapping[str, Any]],
    relationships: Iterable[Mapping[str, Any]],
) -> dict[str, Any]:
    persons = list(persons)
    relationships = list(relationships)
    graph = build_graph(persons, relationships)
    out: dict[str, Any] = serialize_flat(persons, relationships)
    out["roots"] = list(graph.roots)
    out["forest"] = serialize_forest(graph)
    return out
