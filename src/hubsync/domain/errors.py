"""Error taxonomy for snapshot persistence and reconciliation."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hubsync.domain.model import EntityType


class HubsyncError(RuntimeError):
    """Base class for domain errors."""


class FetchError(HubsyncError):
    """Raised by fetchers when live entities cannot be retrieved.

    ``transient`` failures (network errors, rate limits, timeouts) are retried by
    the orchestrator; permanent ones are reported immediately for their scope.
    """

    def __init__(
        self,
        message: str,
        *,
        transient: bool = False,
        entity_type: EntityType | None = None,
        scope: str | None = None,
    ) -> None:
        super().__init__(message)
        self.transient = transient
        self.entity_type = entity_type
        self.scope = scope


class SnapshotError(HubsyncError):
    """Base class for snapshot lookup and format errors."""


class SnapshotNotFoundError(SnapshotError):
    """Raised when a workspace has no cached snapshot yet."""

    def __init__(self, workspace_id: str) -> None:
        super().__init__(f"No snapshot stored for workspace {workspace_id}; initialise it first")
        self.workspace_id = workspace_id


class IncompatibleSchemaError(SnapshotError):
    """Raised when a snapshot uses a schema version the store does not understand."""

    def __init__(self, schema_version: int, *, supported: frozenset[int]) -> None:
        supported_list = ", ".join(str(version) for version in sorted(supported))
        super().__init__(
            f"Unsupported snapshot schema version {schema_version} (supported: {supported_list})"
        )
        self.schema_version = schema_version
        self.supported = supported


class PersistenceError(HubsyncError):
    """Raised when a snapshot could not be saved; the previous snapshot is intact."""


class AllFetchesFailedError(HubsyncError):
    """Raised when no requested entity type could be fetched."""


class DuplicateEntityError(ValueError):
    """Raised when a collection contains the same stable id twice within one scope."""

    def __init__(self, entity_type: EntityType, entity_id: str) -> None:
        super().__init__(f"Duplicate {entity_type} id {entity_id!r} within one scope")
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidTransitionError(HubsyncError):
    """Raised when the reconciliation state machine is driven out of order."""


class ReconciliationCancelledError(HubsyncError):
    """Raised internally when the caller cancels a reconciliation run."""
