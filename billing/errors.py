from __future__ import annotations


class PersistenceError(RuntimeError):
    pass


class SequenceConflictError(RuntimeError):
    pass


class DocumentNotFoundError(LookupError):
    pass
