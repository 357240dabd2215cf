"""Error kinds raised by the service core and mapped to HTTP responses in ``main``."""

from __future__ import annotations


class FamilyTreeError(Exception):
    pass


class ValidationError(FamilyTreeError):
    """One or more input rules were violated; ``errors`` lists every one of them."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "validation failed")


class NotFoundError(FamilyTreeError):
    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class StoreError(FamilyTreeError):
    """A read or write at the persistence boundary failed."""


class PartialFailureError(FamilyTreeError):
    """A multi-step write stopped partway; the person row it names does exist."""

    def __init__(self, message: str, *, person_id: int | None = None) -> None:
        self.person_id = person_id
        super().__init__(message)
