"""SQL statements for the person and relationship tables.

Every function takes anything with the store ``query``/``execute`` interface
(``RecordStore`` or a ``StoreSession`` borrowed inside a transaction).
"""

from __future__ import annotations

from typing import Any

# parent_id is derived from the newest parent edge; it is never stored.
_PERSON_SELECT = """
    SELECT p.id, p.name, p.birth_date, p.death_date, p.image, p.gender,
           (SELECT r.person_id1 FROM relationship r
            WHERE r.person_id2 = p.id AND r.type = 'parent'
            ORDER BY r.id DESC LIMIT 1) AS parent_id
    FROM person p
""".strip()

_UPDATABLE_COLUMNS = ("name", "birth_date", "death_date", "image", "gender")

_ANCESTOR_MAX_DEPTH = 200


# ---------------------------------------------------------------------------
# Persons
# ---------------------------------------------------------------------------

def list_persons(store) -> list[dict[str, Any]]:
    return store.query(f"{_PERSON_SELECT} ORDER BY p.birth_date ASC, p.id ASC")


def get_person(store, person_id: int) -> dict[str, Any] | None:
    rows = store.query(f"{_PERSON_SELECT} WHERE p.id = %s", (person_id,))
    return rows[0] if rows else None


def existing_person_ids(store, person_ids: list[int]) -> set[int]:
    if not person_ids:
        return set()
    rows = store.query("SELECT id FROM person WHERE id = ANY(%s)", (list(person_ids),))
    return {r["id"] for r in rows}


def _like_substring(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_persons(store, q: str) -> list[dict[str, Any]]:
    return store.query(
        f"{_PERSON_SELECT} WHERE p.name ILIKE %s ESCAPE '\\' ORDER BY p.name ASC, p.id ASC",
        (_like_substring(q),),
    )


def insert_person(store, fields: dict[str, Any]) -> int:
    res = store.execute(
        """
        INSERT INTO person (name, birth_date, death_date, image, gender)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """.strip(),
        (
            fields["name"],
            fields["birth_date"],
            fields.get("death_date") or None,
            fields.get("image") or None,
            fields["gender"],
        ),
    )
    return int(res.inserted_id)


def update_person(store, person_id: int, changes: dict[str, Any]) -> int:
    """Apply a partial update; unknown keys are ignored. Returns rows affected."""

    cols = [c for c in _UPDATABLE_COLUMNS if c in changes]
    if not cols:
        return 0
    assignments = ", ".join(f"{c} = %s" for c in cols)
    params = [changes[c] if changes[c] != "" else None for c in cols]
    res = store.execute(
        f"UPDATE person SET {assignments} WHERE id = %s",
        (*params, person_id),
    )
    return res.rows_affected


def delete_person(store, person_id: int) -> int:
    return store.execute("DELETE FROM person WHERE id = %s", (person_id,)).rows_affected


def persons_with_relationships(store) -> list[dict[str, Any]]:
    """One row per person per relationship naming them as person_id2."""

    return store.query(
        """
        SELECT p.id, p.name, p.birth_date, p.death_date, p.image, p.gender,
               r.type AS relationship,
               r.person_id1 AS parent_id,
               r.person_id2 AS child_id
        FROM person p
        LEFT JOIN relationship r ON p.id = r.person_id2
        ORDER BY p.id, r.id
        """.strip()
    )


def life_dates(store) -> list[dict[str, Any]]:
    return store.query("SELECT birth_date, death_date FROM person")


def count_persons(store) -> int:
    return int(store.query("SELECT COUNT(*) AS n FROM person")[0]["n"])


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------

def list_relationships(store) -> list[dict[str, Any]]:
    return store.query("SELECT id, person_id1, person_id2, type FROM relationship")


def relationships_for_person(store, person_id: int) -> list[dict[str, Any]]:
    return store.query(
        """
        SELECT id, person_id1, person_id2, type
        FROM relationship
        WHERE person_id1 = %s OR person_id2 = %s
        ORDER BY id
        """.strip(),
        (person_id, person_id),
    )


def relationships_for_persons(store, person_ids: list[int]) -> list[dict[str, Any]]:
    if not person_ids:
        return []
    ids = list(person_ids)
    return store.query(
        """
        SELECT id, person_id1, person_id2, type
        FROM relationship
        WHERE person_id1 = ANY(%s) OR person_id2 = ANY(%s)
        ORDER BY id
        """.strip(),
        (ids, ids),
    )


def get_relationship(store, relationship_id: int) -> dict[str, Any] | None:
    rows = store.query(
        "SELECT id, person_id1, person_id2, type FROM relationship WHERE id = %s",
        (relationship_id,),
    )
    return rows[0] if rows else None


def insert_relationship(store, person_id1: int, person_id2: int, rel_type: str) -> int:
    res = store.execute(
        """
        INSERT INTO relationship (person_id1, person_id2, type)
        VALUES (%s, %s, %s)
        RETURNING id
        """.strip(),
        (person_id1, person_id2, rel_type),
    )
    return int(res.inserted_id)


def delete_relationship(store, relationship_id: int) -> int:
    return store.execute(
        "DELETE FROM relationship WHERE id = %s", (relationship_id,)
    ).rows_affected


def delete_relationships_for_person(store, person_id: int) -> int:
    return store.execute(
        "DELETE FROM relationship WHERE person_id1 = %s OR person_id2 = %s",
        (person_id, person_id),
    ).rows_affected


def count_relationships(store) -> int:
    return int(store.query("SELECT COUNT(*) AS n FROM relationship")[0]["n"])


# ---------------------------------------------------------------------------
# Lineage (recursive closure over parent edges)
# ---------------------------------------------------------------------------

def ancestors(store, person_id: int, *, max_depth: int = _ANCESTOR_MAX_DEPTH) -> list[dict[str, Any]]:
    """Every ancestor once, at its nearest generation (1 = parent)."""

    return store.query(
        """
        WITH RECURSIVE ancestry(id, generation, path) AS (
            SELECT r.person_id1, 1, ARRAY[r.person_id2, r.person_id1]
            FROM relationship r
            WHERE r.type = 'parent' AND r.person_id2 = %s
          UNION ALL
            SELECT r.person_id1, a.generation + 1, a.path || r.person_id1
            FROM relationship r
            JOIN ancestry a ON r.person_id2 = a.id
            WHERE r.type = 'parent'
              AND NOT r.person_id1 = ANY(a.path)
              AND a.generation < %s
        )
        SELECT p.id, p.name, p.birth_date, p.death_date, p.image, p.gender,
               MIN(a.generation) AS generation
        FROM ancestry a
        JOIN person p ON p.id = a.id
        GROUP BY p.id
        ORDER BY generation, p.birth_date, p.id
        """.strip(),
        (person_id, max_depth),
    )


def descendant_count(store, person_id: int) -> int:
    # UNION (not UNION ALL) discards revisited ids, so a parent loop terminates.
    rows = store.query(
        """
        WITH RECURSIVE descent(id) AS (
            SELECT r.person_id2
            FROM relationship r
            WHERE r.type = 'parent' AND r.person_id1 = %s
          UNION
            SELECT r.person_id2
            FROM relationship r
            JOIN descent d ON r.person_id1 = d.id
            WHERE r.type = 'parent'
        )
        SELECT COUNT(*) AS n FROM descent WHERE id <> %s
        """.strip(),
        (person_id, person_id),
    )
    return int(rows[0]["n"])
