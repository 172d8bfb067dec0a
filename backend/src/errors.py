from __future__ import annotations

import uuid


class NotifierError(Exception):
    """Base class for errors raised by the notification pipeline."""


class JobSchemaError(NotifierError):
    """A job or one of its snapshots is structurally invalid.

    Retrying cannot fix the message, so the worker acknowledges and drops it.
    """


class SourceNotFoundError(NotifierError):
    def __init__(self, source_id: uuid.UUID) -> None:
        super().__init__(f"Info source {source_id} not found")
        self.source_id = source_id
