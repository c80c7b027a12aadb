"""Rule version API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from oos_engine.api.deps import CurrentActor, DbSession, OrgId
from oos_engine.core.errors import RuleVersionNotFoundError
from oos_engine.models.rule_version import Rule, RuleVersion, RuleVersionStatus
from oos_engine.schemas.rule_version import (
    EnabledRequest,
    RuleCreate,
    RuleRead,
    RuleUpdate,
    RuleVersionCreate,
    RuleVersionRead,
    RuleVersionSummary,
    TransitionRequest,
    ValidationResponse,
)
from oos_engine.services.rule_versions import RuleVersionService

router = APIRouter(tags=["rule-versions"])


async def _get_visible_version(
    service: RuleVersionService,
    version_id: str,
    org_id: str | None,
) -> RuleVersion:
    version = await service.get_version(version_id)
    if org_id is not None and version.org_id not in (None, org_id):
        raise RuleVersionNotFoundError(f"Rule version not found: {version_id}")
    return version


@router.post(
    "/rule-versions",
    response_model=RuleVersionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_rule_version(
    request: RuleVersionCreate,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> RuleVersion:
    """Create a DRAFT rule version."""
    service = RuleVersionService(db)
    try:
        return await service.create_version(
            name=request.name,
            description=request.description,
            effective_start=request.effective_start,
            effective_end=request.effective_end,
            source_ids=request.source_ids,
            actor=actor,
            org_id=None if request.global_version else org_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/rule-versions", response_model=list[RuleVersionSummary])
async def list_rule_versions(
    db: DbSession,
    org_id: OrgId,
    status_filter: Annotated[RuleVersionStatus | None, Query(alias="status")] = None,
) -> list[RuleVersion]:
    """List rule versions visible to the caller's org."""
    service = RuleVersionService(db)
    return await service.list_versions(org_id=org_id, status=status_filter)


@router.get("/rule-versions/{version_id}", response_model=RuleVersionRead)
async def get_rule_version(
    version_id: str,
    db: DbSession,
    org_id: OrgId,
) -> RuleVersion:
    """Get a rule version with its rules."""
    return await _get_visible_version(RuleVersionService(db), version_id, org_id)


@router.post(
    "/rule-versions/{version_id}/rules",
    response_model=RuleRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_rule(
    version_id: str,
    request: RuleCreate,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> Rule:
    """Add a rule to a DRAFT version."""
    service = RuleVersionService(db)
    await _get_visible_version(service, version_id, org_id)
    return await service.add_rule(version_id=version_id, actor=actor, **request.model_dump())


@router.patch("/rules/{rule_id}", response_model=RuleRead)
async def update_rule(
    rule_id: str,
    request: RuleUpdate,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> Rule:
    """Edit a rule of a DRAFT version."""
    service = RuleVersionService(db)
    rule = await service.get_rule(rule_id)
    await _get_visible_version(service, rule.version_id, org_id)

    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes given")
    try:
        return await service.update_rule(rule_id, actor=actor, **changes)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_rule(
    rule_id: str,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> None:
    """Remove a rule from a DRAFT version."""
    service = RuleVersionService(db)
    rule = await service.get_rule(rule_id)
    await _get_visible_version(service, rule.version_id, org_id)
    await service.remove_rule(rule_id, actor=actor)


@router.get("/rule-versions/{version_id}/validation", response_model=ValidationResponse)
async def validate_rule_version(
    version_id: str,
    db: DbSession,
    org_id: OrgId,
) -> ValidationResponse:
    """Dry-run the activation checks of a version."""
    service = RuleVersionService(db)
    await _get_visible_version(service, version_id, org_id)
    errors = await service.validate_version(version_id)
    return ValidationResponse(version_id=version_id, valid=not errors, errors=errors)


@router.post("/rule-versions/{version_id}/activate", response_model=RuleVersionRead)
async def activate_rule_version(
    version_id: str,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
    request: TransitionRequest | None = None,
) -> RuleVersion:
    """Promote a DRAFT version to ACTIVE."""
    service = RuleVersionService(db)
    await _get_visible_version(service, version_id, org_id)
    return await service.activate_version(
        version_id,
        actor=actor,
        expected_revision=request.expected_revision if request else None,
    )


@router.post("/rule-versions/{version_id}/retire", response_model=RuleVersionRead)
async def retire_rule_version(
    version_id: str,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
    request: TransitionRequest | None = None,
) -> RuleVersion:
    """Retire an ACTIVE version."""
    service = RuleVersionService(db)
    await _get_visible_version(service, version_id, org_id)
    return await service.retire_version(
        version_id,
        actor=actor,
        expected_revision=request.expected_revision if request else None,
    )


@router.put("/rule-versions/{version_id}/enabled", response_model=RuleVersionRead)
async def set_rule_version_enabled(
    version_id: str,
    request: EnabledRequest,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> RuleVersion:
    """Enable or disable an ACTIVE or RETIRED version."""
    service = RuleVersionService(db)
    await _get_visible_version(service, version_id, org_id)
    return await service.set_version_enabled(version_id, request.enabled, actor=actor)
