from __future__ import annotations


class WorldError(ValueError):
    pass


class NotFoundError(WorldError):
    def __init__(self, kind: str, record_id: int | None) -> None:
        super().__init__(f"{kind.capitalize()} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class InvalidStateError(WorldError):
    pass


class GenerationUnavailable(RuntimeError):
    pass


class PersistenceFailure(RuntimeError):
    pass
