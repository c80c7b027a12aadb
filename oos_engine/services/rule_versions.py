"""Rule version store.

Owns the DRAFT -> ACTIVE -> RETIRED lifecycle of rule versions, the
editing of DRAFT rules, and the choice of which version judges a new
inspection.

Lifecycle transitions are serialized with an optimistic check on
``RuleVersion.revision``: the UPDATE only matches the revision the
caller loaded, so of two writers racing on the same version exactly one
commits and the other gets StaleVersionError. Each transition adds its
change log entry to the same transaction.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from oos_engine.core.config import settings
from oos_engine.core.errors import (
    AmbiguousRuleVersionError,
    InvalidTransitionError,
    NoActiveRuleVersionError,
    RuleDefinitionError,
    RuleNotFoundError,
    RuleVersionNotFoundError,
    SourceNotFoundError,
    StaleVersionError,
)
from oos_engine.models.change_log import ChangeAction, ChangeEntityType
from oos_engine.models.regulatory_source import RegulatorySource
from oos_engine.models.rule_version import (
    Rule,
    RuleCategory,
    RuleOutcome,
    RuleVersion,
    RuleVersionStatus,
)
from oos_engine.rules.engine import (
    CompiledRuleSet,
    CompiledRuleSetCache,
    compute_content_hash,
    validate_rules,
)
from oos_engine.services.audit import record_change
from oos_engine.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Shared by every request; entries never go stale (see CompiledRuleSetCache)
compiled_cache = CompiledRuleSetCache(max_size=settings.compiled_ruleset_cache_size)

# Rule fields that may be edited while the version is a DRAFT
EDITABLE_RULE_FIELDS = frozenset({
    "category",
    "component_code",
    "title",
    "condition_tree",
    "outcome",
    "is_triage_only",
    "rule_code",
    "citation_text",
    "citation_url",
    "explanation_template",
})

# Columns a rule cannot be edited to null
REQUIRED_RULE_FIELDS = frozenset({"category", "title", "condition_tree", "outcome", "is_triage_only"})


def _require_actor(actor: str | None) -> str:
    if not actor or not actor.strip():
        raise ValueError("An actor is required for this change")
    return actor.strip()


def _in_window(version: RuleVersion, at: datetime) -> bool:
    at = ensure_utc(at)
    if ensure_utc(version.effective_start) > at:
        return False
    return version.effective_end is None or ensure_utc(version.effective_end) >= at


class RuleVersionService:
    """Service for managing rule versions and their rules."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Reads

    async def get_version(self, version_id: str) -> RuleVersion:
        """Get a rule version with its rules and sources.

        Raises:
            RuleVersionNotFoundError: If no such version exists
        """
        result = await self.session.execute(
            select(RuleVersion).where(RuleVersion.id == version_id)
        )
        version = result.scalar_one_or_none()
        if not version:
            raise RuleVersionNotFoundError(f"Rule version not found: {version_id}")
        return version

    async def get_rule(self, rule_id: str) -> Rule:
        result = await self.session.execute(select(Rule).where(Rule.id == rule_id))
        rule = result.scalar_one_or_none()
        if not rule:
            raise RuleNotFoundError(f"Rule not found: {rule_id}")
        return rule

    async def list_versions(
        self,
        org_id: str | None = None,
        status: RuleVersionStatus | None = None,
        include_global: bool = True,
    ) -> list[RuleVersion]:
        """List rule versions, newest effective_start first.

        Args:
            org_id: Restrict to this org's versions
            status: Restrict to one lifecycle status
            include_global: With org_id, also list global versions
        """
        query = select(RuleVersion).order_by(
            RuleVersion.effective_start.desc(),
            RuleVersion.created_at.desc(),
        )

        if org_id is not None:
            if include_global:
                query = query.where(
                    or_(RuleVersion.org_id == org_id, RuleVersion.org_id.is_(None))
                )
            else:
                query = query.where(RuleVersion.org_id == org_id)
        if status is not None:
            query = query.where(RuleVersion.status == status.value)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_compiled(self, version: RuleVersion) -> CompiledRuleSet:
        """Compiled rules of an ACTIVE or RETIRED version."""
        return compiled_cache.get_or_compile(version)

    # DRAFT editing

    async def create_version(
        self,
        name: str,
        effective_start: datetime,
        source_ids: list[str],
        actor: str,
        org_id: str | None = None,
        effective_end: datetime | None = None,
        description: str | None = None,
    ) -> RuleVersion:
        """Create a DRAFT rule version.

        Args:
            name: Display name, e.g. "CVSA_OOSC_2025"
            effective_start: Start of the effective window
            source_ids: Regulatory sources the rules derive from
            actor: Who creates the version
            org_id: Owning org; None makes the version global
            effective_end: End of the effective window (open-ended if None)
            description: Optional description

        Returns:
            The new DRAFT version

        Raises:
            SourceNotFoundError: If a source does not exist
            ValueError: If the window is empty or the actor is missing
        """
        actor = _require_actor(actor)
        if effective_end is not None and ensure_utc(effective_end) <= ensure_utc(effective_start):
            raise ValueError("effective_end must be after effective_start")

        sources: list[RegulatorySource] = []
        if source_ids:
            result = await self.session.execute(
                select(RegulatorySource).where(RegulatorySource.id.in_(source_ids))
            )
            sources = list(result.scalars().all())
            missing = set(source_ids) - {s.id for s in sources}
            if missing:
                raise SourceNotFoundError(
                    f"Regulatory source(s) not found: {', '.join(sorted(missing))}"
                )

        version = RuleVersion(
            org_id=org_id,
            name=name,
            description=description,
            effective_start=effective_start,
            effective_end=effective_end,
            status=RuleVersionStatus.DRAFT.value,
            enabled=True,
            created_by=actor,
            sources=sources,
            rules=[],
        )
        self.session.add(version)
        await self.session.flush()

        await record_change(
            self.session,
            entity_type=ChangeEntityType.RULE_VERSION,
            entity_id=version.id,
            version_id=version.id,
            action=ChangeAction.VERSION_CREATED,
            actor=actor,
            summary=f"Created rule version {name}",
            details={
                "org_id": org_id,
                "effective_start": ensure_utc(effective_start).isoformat(),
                "effective_end": ensure_utc(effective_end).isoformat() if effective_end else None,
                "source_ids": sorted(s.id for s in sources),
            },
        )

        await self.session.commit()
        await self.session.refresh(version)

        logger.info(f"Created DRAFT rule version {version.id} ({name})")
        return version

    async def add_rule(
        self,
        version_id: str,
        category: RuleCategory,
        condition_tree: dict[str, Any],
        outcome: RuleOutcome,
        title: str,
        actor: str,
        is_triage_only: bool = False,
        component_code: str | None = None,
        rule_code: str | None = None,
        citation_text: str | None = None,
        citation_url: str | None = None,
        explanation_template: str | None = None,
    ) -> Rule:
        """Add a rule to a DRAFT version.

        The condition tree is stored as given; it is checked at
        activation (or by validate_version), so a DRAFT can hold a
        malformed tree while it is being edited.

        Raises:
            InvalidTransitionError: If the version is not a DRAFT
        """
        actor = _require_actor(actor)
        version = await self.get_version(version_id)
        self._require_draft(version, "add rules to")

        rule = Rule(
            position=max((r.position for r in version.rules), default=-1) + 1,
            rule_code=rule_code,
            category=RuleCategory(category).value,
            component_code=component_code,
            title=title,
            condition_tree=condition_tree,
            outcome=RuleOutcome(outcome).value,
            is_triage_only=is_triage_only,
            citation_text=citation_text,
            citation_url=citation_url,
            explanation_template=explanation_template,
        )
        version.rules.append(rule)
        version.updated_at = utc_now()

        await self._flush_versioned()
        await record_change(
            self.session,
            entity_type=ChangeEntityType.RULE,
            entity_id=rule.id,
            version_id=version.id,
            action=ChangeAction.RULE_ADDED,
            actor=actor,
            summary=f"Added rule {rule_code or title} to {version.name}",
            details={"category": rule.category, "component_code": component_code, "outcome": rule.outcome},
        )

        await self._commit_versioned()
        await self.session.refresh(rule)
        return rule

    async def update_rule(self, rule_id: str, actor: str, **changes: Any) -> Rule:
        """Edit a rule of a DRAFT version.

        Raises:
            InvalidTransitionError: If the rule's version is not a DRAFT
            ValueError: If a field cannot be edited or a required field is null
        """
        actor = _require_actor(actor)
        unknown = set(changes) - EDITABLE_RULE_FIELDS
        if unknown:
            raise ValueError(f"Rule field(s) cannot be edited: {', '.join(sorted(unknown))}")
        cleared = sorted(key for key in REQUIRED_RULE_FIELDS & set(changes) if changes[key] is None)
        if cleared:
            raise ValueError(f"Rule field(s) cannot be null: {', '.join(cleared)}")

        rule = await self.get_rule(rule_id)
        version = await self.get_version(rule.version_id)
        self._require_draft(version, "edit rules of")

        if "category" in changes:
            changes["category"] = RuleCategory(changes["category"]).value
        if "outcome" in changes:
            changes["outcome"] = RuleOutcome(changes["outcome"]).value

        for key, value in changes.items():
            setattr(rule, key, value)
        version.updated_at = utc_now()

        await self._flush_versioned()
        await record_change(
            self.session,
            entity_type=ChangeEntityType.RULE,
            entity_id=rule.id,
            version_id=version.id,
            action=ChangeAction.RULE_UPDATED,
            actor=actor,
            summary=f"Updated rule {rule.rule_code or rule.title} in {version.name}",
            details={"fields": sorted(changes)},
        )

        await self._commit_versioned()
        await self.session.refresh(rule)
        return rule

    async def remove_rule(self, rule_id: str, actor: str) -> None:
        """Remove a rule from a DRAFT version.

        Raises:
            InvalidTransitionError: If the rule's version is not a DRAFT
        """
        actor = _require_actor(actor)
        rule = await self.get_rule(rule_id)
        version = await self.get_version(rule.version_id)
        self._require_draft(version, "remove rules from")

        version.rules.remove(rule)
        version.updated_at = utc_now()

        await self._flush_versioned()
        await record_change(
            self.session,
            entity_type=ChangeEntityType.RULE,
            entity_id=rule_id,
            version_id=version.id,
            action=ChangeAction.RULE_REMOVED,
            actor=actor,
            summary=f"Removed rule {rule.rule_code or rule.title} from {version.name}",
        )

        await self._commit_versioned()

    async def validate_version(self, version_id: str) -> list[str]:
        """Dry-run the activation checks.

        Returns:
            Every problem that would stop activation; empty when valid
        """
        version = await self.get_version(version_id)
        return self._activation_problems(version)

    # Lifecycle transitions

    async def activate_version(
        self,
        version_id: str,
        actor: str,
        expected_revision: int | None = None,
    ) -> RuleVersion:
        """Promote a DRAFT version to ACTIVE.

        Parses every condition tree and freezes the content hash. On
        RuleDefinitionError the version stays DRAFT and can be fixed.

        Args:
            version_id: Version to activate
            actor: Who activates it
            expected_revision: Revision the caller last read

        Returns:
            The ACTIVE version

        Raises:
            RuleDefinitionError: If the version has no rules or a malformed tree
            InvalidTransitionError: If the version is not a DRAFT
            StaleVersionError: If another writer changed the version first
        """
        actor = _require_actor(actor)
        version = await self.get_version(version_id)
        self._check_revision(version, expected_revision)
        if version.status != RuleVersionStatus.DRAFT:
            raise InvalidTransitionError(
                f"Cannot activate a {version.status} rule version; only DRAFT versions can be activated"
            )

        problems = self._activation_problems(version)
        if problems:
            logger.warning(
                f"Activation of rule version {version.id} rejected: {len(problems)} problem(s)",
                extra={"actor": actor, "action": ChangeAction.VERSION_ACTIVATED.value},
            )
            raise RuleDefinitionError(
                f"Rule version {version.id} cannot be activated: {len(problems)} problem(s)",
                errors=problems,
            )

        content_hash = compute_content_hash(version.rules)
        previous_revision = version.revision

        version.status = RuleVersionStatus.ACTIVE.value
        version.content_hash = content_hash
        version.activated_at = utc_now()
        version.activated_by = actor

        await self._flush_versioned()
        await record_change(
            self.session,
            entity_type=ChangeEntityType.RULE_VERSION,
            entity_id=version.id,
            version_id=version.id,
            action=ChangeAction.VERSION_ACTIVATED,
            actor=actor,
            summary=f"Activated rule version {version.name}",
            details={
                "content_hash": content_hash,
                "rule_count": len(version.rules),
                "previous_revision": previous_revision,
            },
        )

        await self._commit_versioned()
        compiled_cache.get_or_compile(version)

        logger.info(
            f"Activated rule version {version.id} ({version.name})",
            extra={"actor": actor, "action": ChangeAction.VERSION_ACTIVATED.value},
        )
        return version

    async def retire_version(
        self,
        version_id: str,
        actor: str,
        expected_revision: int | None = None,
    ) -> RuleVersion:
        """Retire an ACTIVE version.

        RETIRED versions are never selected for new inspections but stay
        available for replaying the inspections they judged.

        Raises:
            InvalidTransitionError: If the version is not ACTIVE
            StaleVersionError: If another writer changed the version first
        """
        actor = _require_actor(actor)
        version = await self.get_version(version_id)
        self._check_revision(version, expected_revision)
        if version.status != RuleVersionStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Cannot retire a {version.status} rule version; only ACTIVE versions can be retired"
            )

        previous_revision = version.revision
        version.status = RuleVersionStatus.RETIRED.value
        version.retired_at = utc_now()
        version.retired_by = actor

        await self._flush_versioned()
        await record_change(
            self.session,
            entity_type=ChangeEntityType.RULE_VERSION,
            entity_id=version.id,
            version_id=version.id,
            action=ChangeAction.VERSION_RETIRED,
            actor=actor,
            summary=f"Retired rule version {version.name}",
            details={"previous_revision": previous_revision},
        )

        await self._commit_versioned()

        logger.info(
            f"Retired rule version {version.id} ({version.name})",
            extra={"actor": actor, "action": ChangeAction.VERSION_RETIRED.value},
        )
        return version

    async def set_version_enabled(
        self,
        version_id: str,
        enabled: bool,
        actor: str,
    ) -> RuleVersion:
        """Toggle whether an ACTIVE (or RETIRED) version may be used.

        Last writer wins: the flag is written with a plain UPDATE that
        neither checks nor bumps the revision.

        Raises:
            InvalidTransitionError: If the version is still a DRAFT
        """
        actor = _require_actor(actor)
        version = await self.get_version(version_id)
        if version.status == RuleVersionStatus.DRAFT:
            raise InvalidTransitionError("A DRAFT rule version cannot be enabled or disabled")

        await self.session.execute(
            update(RuleVersion)
            .where(RuleVersion.id == version_id)
            .values(enabled=enabled)
            .execution_options(synchronize_session=False)
        )
        set_committed_value(version, "enabled", enabled)

        action = ChangeAction.VERSION_ENABLED if enabled else ChangeAction.VERSION_DISABLED
        await record_change(
            self.session,
            entity_type=ChangeEntityType.RULE_VERSION,
            entity_id=version.id,
            version_id=version.id,
            action=action,
            actor=actor,
            summary=f"{'Enabled' if enabled else 'Disabled'} rule version {version.name}",
            details={"enabled": enabled},
        )

        await self.session.commit()
        return version

    # Selection

    async def select_version_for_inspection(
        self,
        org_id: str | None,
        at: datetime,
        version_id: str | None = None,
    ) -> RuleVersion:
        """Pick the rule version that judges a new inspection.

        An explicit version must be ACTIVE and enabled. Otherwise the
        candidates are the enabled ACTIVE versions whose window contains
        ``at`` and that belong to the org or are global; the org's own
        versions shadow global ones. What happens with several
        candidates depends on ``settings.version_selection_policy``.

        Raises:
            InvalidTransitionError: If the explicit version cannot be used
            NoActiveRuleVersionError: If nothing applies
            AmbiguousRuleVersionError: If several apply under the strict policy
        """
        if version_id is not None:
            version = await self.get_version(version_id)
            if version.status != RuleVersionStatus.ACTIVE or not version.enabled:
                raise InvalidTransitionError(
                    f"Rule version {version_id} is {version.status}"
                    f"{'' if version.enabled else ' (disabled)'}; new inspections need an enabled ACTIVE version"
                )
            if version.org_id is not None and version.org_id != org_id:
                raise RuleVersionNotFoundError(f"Rule version not found: {version_id}")
            return version

        query = (
            select(RuleVersion)
            .where(RuleVersion.status == RuleVersionStatus.ACTIVE.value)
            .where(RuleVersion.enabled.is_(True))
        )
        if org_id is not None:
            query = query.where(or_(RuleVersion.org_id == org_id, RuleVersion.org_id.is_(None)))
        else:
            query = query.where(RuleVersion.org_id.is_(None))

        result = await self.session.execute(query)
        candidates = [v for v in result.scalars().all() if _in_window(v, at)]

        own = [v for v in candidates if v.org_id is not None]
        if own:
            candidates = own

        if not candidates:
            raise NoActiveRuleVersionError(
                f"No enabled ACTIVE rule version applies to org {org_id or '(global)'} "
                f"at {ensure_utc(at).isoformat()}"
            )

        if len(candidates) == 1:
            return candidates[0]

        if settings.version_selection_policy == "latest_effective":
            return max(candidates, key=lambda v: (ensure_utc(v.effective_start), v.created_at))

        raise AmbiguousRuleVersionError(
            f"{len(candidates)} enabled ACTIVE rule versions apply "
            f"({', '.join(sorted(v.name for v in candidates))}); name one explicitly"
        )

    # Helpers

    def _require_draft(self, version: RuleVersion, verb: str) -> None:
        if version.status != RuleVersionStatus.DRAFT:
            raise InvalidTransitionError(
                f"Cannot {verb} a {version.status} rule version; rules are frozen once activated"
            )

    def _check_revision(self, version: RuleVersion, expected_revision: int | None) -> None:
        if expected_revision is not None and version.revision != expected_revision:
            raise StaleVersionError(
                f"Rule version {version.id} is at revision {version.revision}, "
                f"expected {expected_revision}; reload and retry"
            )

    def _activation_problems(self, version: RuleVersion) -> list[str]:
        if not version.rules:
            return [f"Rule version {version.name} has no rules"]
        return validate_rules(version.rules)

    async def _flush_versioned(self) -> None:
        try:
            await self.session.flush()
        except StaleDataError as e:
            await self.session.rollback()
            raise StaleVersionError(
                "Rule version was changed by another writer; reload and retry"
            ) from e

    async def _commit_versioned(self) -> None:
        await self._flush_versioned()
        await self.session.commit()
