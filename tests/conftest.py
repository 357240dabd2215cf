from __future__ import annotations

import copy
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from familytree import queries
from familytree.config import Settings
from familytree.errors import StoreError
from familytree.main import create_app


@pytest.fixture()
def fixed_today() -> date:
    # Keep tests deterministic.
    return date(2024, 6, 1)


def _as_date(value: Any) -> Any:
    if isinstance(value, str) and value:
        return date.fromisoformat(value)
    return value or None


class MemoryFamily:
    """In-memory person/relationship tables standing in for ``familytree.queries``.

    Each public method has the same signature as the query function of the
    same name (the leading ``store`` argument is ignored). Names listed in
    ``fail_on`` raise ``StoreError`` instead of running.
    """

    QUERY_NAMES = (
        "list_persons",
        "get_person",
        "existing_person_ids",
        "search_persons",
        "insert_person",
        "update_person",
        "delete_person",
        "persons_with_relationships",
        "life_dates",
        "count_persons",
        "list_relationships",
        "relationships_for_person",
        "relationships_for_persons",
        "get_relationship",
        "insert_relationship",
        "delete_relationship",
        "delete_relationships_for_person",
        "count_relationships",
        "ancestors",
        "descendant_count",
    )

    def __init__(self) -> None:
        self.persons: dict[int, dict[str, Any]] = {}
        self.relationships: dict[int, dict[str, Any]] = {}
        self.next_person_id = 1
        self.next_relationship_id = 1
        self.fail_on: set[str] = set()

    # -- snapshot support for MemoryStore transactions --

    def snapshot(self) -> tuple:
        return copy.deepcopy((self.persons, self.relationships))

    def restore(self, snap: tuple) -> None:
        self.persons, self.relationships = copy.deepcopy(snap)

    # -- helpers --

    def _parent_edges(self) -> list[dict[str, Any]]:
        return [r for _, r in sorted(self.relationships.items()) if r["type"] == "parent"]

    def _row(self, p: dict[str, Any]) -> dict[str, Any]:
        parents = [r["person_id1"] for r in self._parent_edges() if r["person_id2"] == p["id"]]
        return {**p, "parent_id": parents[-1] if parents else None}

    # -- persons --

    def list_persons(self, _store) -> list[dict[str, Any]]:
        rows = sorted(self.persons.values(), key=lambda p: (p["birth_date"], p["id"]))
        return [self._row(p) for p in rows]

    def get_person(self, _store, person_id: int) -> dict[str, Any] | None:
        p = self.persons.get(person_id)
        return self._row(p) if p else None

    def existing_person_ids(self, _store, person_ids: list[int]) -> set[int]:
        return {pid for pid in person_ids if pid in self.persons}

    def search_persons(self, _store, q: str) -> list[dict[str, Any]]:
        hits = [p for p in self.persons.values() if q.lower() in p["name"].lower()]
        return [self._row(p) for p in sorted(hits, key=lambda p: (p["name"], p["id"]))]

    def insert_person(self, _store, fields: dict[str, Any]) -> int:
        pid = self.next_person_id
        self.next_person_id += 1
        self.persons[pid] = {
            "id": pid,
            "name": fields["name"],
            "birth_date": _as_date(fields["birth_date"]),
            "death_date": _as_date(fields.get("death_date")),
            "image": fields.get("image") or None,
            "gender": fields["gender"],
        }
        return pid

    def update_person(self, _store, person_id: int, changes: dict[str, Any]) -> int:
        p = self.persons.get(person_id)
        if p is None:
            return 0
        for key in ("name", "birth_date", "death_date", "image", "gender"):
            if key not in changes:
                continue
            value = changes[key]
            p[key] = _as_date(value) if key.endswith("_date") else (value or None)
        return 1

    def delete_person(self, _store, person_id: int) -> int:
        if self.persons.pop(person_id, None) is None:
            return 0
        # ON DELETE CASCADE
        self.relationships = {
            rid: r for rid, r in self.relationships.items()
            if person_id not in (r["person_id1"], r["person_id2"])
        }
        return 1

    def persons_with_relationships(self, _store) -> list[dict[str, Any]]:
        out = []
        for pid in sorted(self.persons):
            p = self.persons[pid]
            incoming = [r for _, r in sorted(self.relationships.items()) if r["person_id2"] == pid]
            if not incoming:
                out.append({**p, "relationship": None, "parent_id": None, "child_id": None})
            for r in incoming:
                out.append({**p, "relationship": r["type"], "parent_id": r["person_id1"], "child_id": pid})
        return out

    def life_dates(self, _store) -> list[dict[str, Any]]:
        return [{"birth_date": p["birth_date"], "death_date": p["death_date"]} for p in self.persons.values()]

    def count_persons(self, _store) -> int:
        return len(self.persons)

    # -- relationships --

    def list_relationships(self, _store) -> list[dict[str, Any]]:
        return [dict(r) for _, r in sorted(self.relationships.items())]

    def relationships_for_person(self, _store, person_id: int) -> list[dict[str, Any]]:
        return [r for r in self.list_relationships(None) if person_id in (r["person_id1"], r["person_id2"])]

    def relationships_for_persons(self, _store, person_ids: list[int]) -> list[dict[str, Any]]:
        wanted = set(person_ids)
        return [r for r in self.list_relationships(None) if wanted & {r["person_id1"], r["person_id2"]}]

    def get_relationship(self, _store, relationship_id: int) -> dict[str, Any] | None:
        r = self.relationships.get(relationship_id)
        return dict(r) if r else None

    def insert_relationship(self, _store, person_id1: int, person_id2: int, rel_type: str) -> int:
        if person_id1 not in self.persons or person_id2 not in self.persons:
            raise StoreError("foreign key violation")
        rid = self.next_relationship_id
        self.next_relationship_id += 1
        self.relationships[rid] = {"id": rid, "person_id1": person_id1, "person_id2": person_id2, "type": rel_type}
        return rid

    def delete_relationship(self, _store, relationship_id: int) -> int:
        return 1 if self.relationships.pop(relationship_id, None) else 0

    def delete_relationships_for_person(self, _store, person_id: int) -> int:
        doomed = [rid for rid, r in self.relationships.items() if person_id in (r["person_id1"], r["person_id2"])]
        for rid in doomed:
            del self.relationships[rid]
        return len(doomed)

    def count_relationships(self, _store) -> int:
        return len(self.relationships)

    # -- lineage --

    def ancestors(self, _store, person_id: int, *, max_depth: int = 200) -> list[dict[str, Any]]:
        edges = self._parent_edges()
        generation: dict[int, int] = {}
        frontier = [person_id]
        depth = 0
        while frontier and depth < max_depth:
            depth += 1
            next_frontier = []
            for child in frontier:
                for r in edges:
                    if r["person_id2"] != child:
                        continue
                    parent = r["person_id1"]
                    if parent == person_id or parent in generation:
                        continue
                    generation[parent] = depth
                    next_frontier.append(parent)
            frontier = next_frontier
        rows = [{**self.persons[pid], "generation": g} for pid, g in generation.items()]
        return sorted(rows, key=lambda r: (r["generation"], r["birth_date"], r["id"]))

    def descendant_count(self, _store, person_id: int) -> int:
        edges = self._parent_edges()
        seen: set[int] = set()
        frontier = [person_id]
        while frontier:
            next_frontier = []
            for parent in frontier:
                for r in edges:
                    child = r["person_id2"]
                    if r["person_id1"] == parent and child not in seen:
                        seen.add(child)
                        next_frontier.append(child)
            frontier = next_frontier
        seen.discard(person_id)
        return len(seen)


class MemoryStore:
    """Store handle for route tests; data lives in a ``MemoryFamily``."""

    def __init__(self, family: MemoryFamily, *, atomic_writes: bool = True) -> None:
        self.family = family
        self.atomic_writes = atomic_writes
        self.opened = False
        self.closed = False

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    @contextmanager
    def session(self) -> Iterator["MemoryStore"]:
        yield self

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        snap = self.family.snapshot()
        try:
            yield self
        except Exception:
            if self.atomic_writes:
                self.family.restore(snap)
            raise


@pytest.fixture()
def family(monkeypatch: pytest.MonkeyPatch) -> MemoryFamily:
    mem = MemoryFamily()

    def _wrap(name: str):
        impl = getattr(mem, name)

        def _call(*args: Any, **kwargs: Any) -> Any:
            if name in mem.fail_on:
                raise StoreError(f"injected failure in {name}")
            return impl(*args, **kwargs)

        return _call

    for name in MemoryFamily.QUERY_NAMES:
        monkeypatch.setattr(queries, name, _wrap(name))
    return mem


@pytest.fixture()
def store(family: MemoryFamily) -> MemoryStore:
    return MemoryStore(family)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        database_url="postgresql://unused/test",
        upload_dir=tmp_path / "uploads",
        max_upload_bytes=1024,
    )


@pytest.fixture()
def client(settings: Settings, store: MemoryStore) -> TestClient:
    return TestClient(create_app(settings, store=store))


@pytest.fixture()
def make_person(client: TestClient):
    """Factory: create a person through the API and return its card."""

    def _make(**fields: Any) -> dict[str, Any]:
        body = {"birth_date": "1980-01-01", "gender": "male", **fields}
        resp = client.post("/api/persons", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make
