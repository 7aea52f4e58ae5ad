"""Error taxonomy for the finance engine.

Every error carries enough structured detail for the caller to render a
user-facing message. None of them are retried inside the engine.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID


class FinanceEngineError(Exception):
    """Base class for all engine errors."""

    code = "FINANCE_ENGINE_ERROR"


class ConfigurationError(FinanceEngineError):
    """Missing or invalid rate, rule or tenant setting."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid configuration for '{setting}': {reason}")


class DuplicateArtifactError(FinanceEngineError):
    """A billing artifact already exists for the job."""

    code = "DUPLICATE_ARTIFACT"

    def __init__(self, job_id: UUID, existing_artifact_id: UUID | None = None):
        self.job_id = job_id
        self.existing_artifact_id = existing_artifact_id
        msg = f"Job {job_id} already has a billing artifact"
        if existing_artifact_id:
            msg += f" ({existing_artifact_id})"
        super().__init__(msg)


class PeriodClosedError(FinanceEngineError):
    """Posting attempted into a closed financial period."""

    code = "PERIOD_CLOSED"

    def __init__(self, tenant_id: UUID, posting_date: date, period_id: UUID):
        self.tenant_id = tenant_id
        self.posting_date = posting_date
        self.period_id = period_id
        super().__init__(
            f"Financial period for date {posting_date.isoformat()} is closed"
        )


class PendingApprovalError(FinanceEngineError):
    """Cash-custody action attempted out of sequence."""

    code = "PENDING_APPROVAL"

    def __init__(self, entity_id: UUID, current_status: str, action: str, reason: str | None = None):
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        msg = f"Cannot {action} {entity_id} while status is '{current_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PendingArtifactsError(FinanceEngineError):
    """Period close blocked by draft artifacts dated inside it."""

    code = "PENDING_ARTIFACTS"

    def __init__(self, period_id: UUID, artifact_ids: list[UUID]):
        self.period_id = period_id
        self.artifact_ids = list(artifact_ids)
        super().__init__(
            f"Period {period_id} has {len(self.artifact_ids)} draft artifact(s)"
        )


class EntityNotFoundError(FinanceEngineError):
    """Requested entity does not exist for the tenant."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class UnauthorizedActorError(FinanceEngineError):
    """Actor is not allowed to perform the action."""

    code = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: UUID | None, action: str):
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"Actor {actor_id} is not allowed to {action}")
