"""Status lifecycle rules for moderated entities, user accounts, jobs and applications.

Everything here is pure: the repository loads the current state under a row
lock, asks these helpers whether the requested change is allowed, and only then
writes the new state together with its audit row.
"""

from __future__ import annotations

from dataclasses import dataclass

PENDING_APPROVAL = "pending_approval"
REJECTION_REASON_MIN_LENGTH = 10
REJECTION_REASON_MAX_LENGTH = 1000
APPROVAL_NOTES_MAX_LENGTH = 1000


class ModerationError(Exception):
    """Base error for lifecycle rule violations."""


class InvalidTransitionError(ModerationError):
    """Raised when the current status does not allow the requested change."""


class InvalidReasonError(ModerationError):
    """Raised when a reason or note does not satisfy length rules."""


@dataclass(frozen=True, slots=True)
class ModeratedEntity:
    entity_type: str
    label: str
    table: str
    status_type: str


MODERATED_ENTITIES: dict[str, ModeratedEntity] = {
    "company": ModeratedEntity(
        entity_type="company",
        label="Company",
        table="company_profiles",
        status_type="organization_status",
    ),
    "job": ModeratedEntity(
        entity_type="job",
        label="Job",
        table="jobs",
        status_type="job_status",
    ),
    "omil": ModeratedEntity(
        entity_type="omil",
        label="OMIL organization",
        table="omil_organizations",
        status_type="organization_status",
    ),
}

MODERATION_DECISIONS = {"approve": "active", "reject": "rejected"}

# Targets a company member may request through the company job endpoints.
COMPANY_JOB_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"pending_approval"},
    "active": {"closed"},
}
COMPANY_EDITABLE_JOB_STATUSES = {"draft", "pending_approval", "active"}
COMPANY_DELETABLE_JOB_STATUSES = {"draft"}

USER_STATUS_TRANSITIONS: dict[str, set[str]] = {
    "pending_verification": {"active", "suspended"},
    "active": {"suspended"},
    "suspended": {"active"},
}

APPLICATION_STATUSES = (
    "submitted",
    "under_review",
    "shortlisted",
    "interview_scheduled",
    "offer_extended",
    "hired",
    "rejected",
    "withdrawn",
)
APPLICATION_TERMINAL_STATUSES = {"hired", "rejected", "withdrawn"}


def get_moderated_entity(entity_type: str) -> ModeratedEntity:
    try:
        return MODERATED_ENTITIES[entity_type]
    except KeyError as exc:
        raise ValueError(f"unsupported moderated entity: {entity_type}") from exc


def action_type(decision: str, entity_type: str) -> str:
    if decision not in MODERATION_DECISIONS:
        raise ValueError(f"unsupported moderation decision: {decision}")
    get_moderated_entity(entity_type)
    return f"{decision}_{entity_type}"


def resolve_moderation_status(*, entity_type: str, decision: str, current_status: str) -> str:
    """Return the status an approve/reject decision moves the entity to."""
    entity = get_moderated_entity(entity_type)
    if decision not in MODERATION_DECISIONS:
        raise ValueError(f"unsupported moderation decision: {decision}")
    if current_status != PENDING_APPROVAL:
        raise InvalidTransitionError(f"{entity.label} is not pending approval")
    return MODERATION_DECISIONS[decision]


def normalize_rejection_reason(reason: str | None) -> str:
    normalized = (reason or "").strip()
    if len(normalized) < REJECTION_REASON_MIN_LENGTH:
        raise InvalidReasonError(
            f"rejection_reason must be at least {REJECTION_REASON_MIN_LENGTH} characters",
        )
    if len(normalized) > REJECTION_REASON_MAX_LENGTH:
        raise InvalidReasonError(
            f"rejection_reason must be at most {REJECTION_REASON_MAX_LENGTH} characters",
        )
    return normalized


def normalize_approval_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    normalized = notes.strip()
    if len(normalized) > APPROVAL_NOTES_MAX_LENGTH:
        raise InvalidReasonError(
            f"approval_notes must be at most {APPROVAL_NOTES_MAX_LENGTH} characters",
        )
    return normalized or None


def resolve_user_status_action(*, current_status: str, target_status: str) -> str:
    """Validate an admin account status change and return its audit action type."""
    if current_status == target_status:
        raise InvalidTransitionError(f"user is already {current_status}")
    allowed = USER_STATUS_TRANSITIONS.get(current_status, set())
    if target_status not in allowed:
        raise InvalidTransitionError(f"invalid user status transition: {current_status} -> {target_status}")
    return "suspend_user" if target_status == "suspended" else "activate_user"


def validate_company_job_transition(*, current_status: str, target_status: str) -> None:
    allowed = COMPANY_JOB_TRANSITIONS.get(current_status, set())
    if target_status not in allowed:
        raise InvalidTransitionError(f"invalid job status transition: {current_status} -> {target_status}")


def ensure_job_editable(current_status: str) -> None:
    if current_status not in COMPANY_EDITABLE_JOB_STATUSES:
        raise InvalidTransitionError(f"cannot edit a job with status {current_status}")


def ensure_job_deletable(current_status: str) -> None:
    if current_status not in COMPANY_DELETABLE_JOB_STATUSES:
        raise InvalidTransitionError("only draft jobs can be deleted")


def validate_application_transition(*, current_status: str, target_status: str) -> None:
    if target_status not in APPLICATION_STATUSES:
        raise InvalidTransitionError(f"unknown application status: {target_status}")
    if current_status == "withdrawn":
        raise InvalidTransitionError("application was withdrawn by the applicant")
    if target_status == "withdrawn":
        raise InvalidTransitionError("only the applicant can withdraw an application")


def ensure_application_withdrawable(current_status: str) -> None:
    if current_status in APPLICATION_TERMINAL_STATUSES:
        raise InvalidTransitionError(f"cannot withdraw an application with status {current_status}")
