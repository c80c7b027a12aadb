"""Tests for loading starter rule set files."""

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from oos_engine.core.errors import RuleDefinitionError
from oos_engine.models.rule_version import RuleCategory, RuleOutcome
from oos_engine.rules.conditions import validate_condition
from oos_engine.rules.loader import file_sha256, load_ruleset
from oos_engine.services.seeding import seed_starter_rules

STARTER = "cvsa-oosc-2025-starter.yaml"


class TestLoadRuleset:
    """Tests for load_ruleset."""

    def test_load_ruleset_returns_dict_and_hash(self) -> None:
        """load_ruleset returns both the ruleset dict and the file hash."""
        ruleset, ruleset_hash = load_ruleset(STARTER)

        assert isinstance(ruleset, dict)
        assert len(ruleset_hash) == 64  # SHA256 hex is 64 chars

    def test_hash_covers_the_raw_file(self, tmp_path: Path) -> None:
        """The hash is the file's SHA-256, so any edit changes it."""
        content = "name: LOCAL\neffective_start: '2025-04-01T00:00:00Z'\nrules: []\n"
        (tmp_path / "local.yaml").write_text(content, encoding="utf-8")

        _, ruleset_hash = load_ruleset("local.yaml", tmp_path)

        assert ruleset_hash == file_sha256(content)
        assert ruleset_hash != file_sha256(content + "# edited\n")

    def test_starter_ruleset_has_required_fields(self) -> None:
        """The starter file carries its name, window, source and rules."""
        ruleset, _ = load_ruleset(STARTER)

        assert ruleset["name"] == "CVSA_OOSC_2025_TRIAGE"
        assert "effective_start" in ruleset
        assert ruleset["source"]["source_type"] == "CVSA"
        assert len(ruleset["rules"]) == 7

    def test_starter_rules_are_well_formed(self) -> None:
        """Every starter rule has a known category, outcome and valid tree."""
        ruleset, _ = load_ruleset(STARTER)

        for rule in ruleset["rules"]:
            RuleCategory(rule["category"])
            RuleOutcome(rule["outcome"])
            assert validate_condition(rule["condition"]) == [], rule["rule_code"]

    def test_starter_rules_are_triage_only(self) -> None:
        """Starter rules assist inspectors; none decide OOS on their own."""
        ruleset, _ = load_ruleset(STARTER)

        assert all(rule["is_triage_only"] for rule in ruleset["rules"])

    def test_missing_ruleset_raises(self) -> None:
        """An unknown file is reported, not silently skipped."""
        with pytest.raises(FileNotFoundError):
            load_ruleset("does-not-exist.yaml")

    def test_missing_keys_are_all_reported(self, tmp_path: Path) -> None:
        """A file without name or start is rejected with both problems."""
        (tmp_path / "broken.yaml").write_text("rules: []\n", encoding="utf-8")

        with pytest.raises(RuleDefinitionError) as exc_info:
            load_ruleset("broken.yaml", tmp_path)

        assert exc_info.value.errors == [
            "broken.yaml: missing 'name'",
            "broken.yaml: missing 'effective_start'",
        ]

    @pytest.mark.parametrize(
        "content",
        ["- just\n- a list\n", "name: X\neffective_start: '2025-04-01'\nrules: R1\n"],
    )
    def test_wrong_shape_rejected(self, tmp_path: Path, content: str) -> None:
        """The top level must be a mapping holding a rule list."""
        (tmp_path / "odd.yaml").write_text(content, encoding="utf-8")

        with pytest.raises(RuleDefinitionError):
            load_ruleset("odd.yaml", tmp_path)


@pytest.mark.asyncio
async def test_seed_from_custom_rulesets_dir(async_session: AsyncSession, tmp_path: Path) -> None:
    """Seeding reads the named file from the directory it is given."""
    (tmp_path / "local.yaml").write_text(
        "name: LOCAL_BRAKES\n"
        "effective_start: '2025-04-01T00:00:00Z'\n"
        "rules:\n"
        "  - category: VEHICLE\n"
        "    component_code: '013'\n"
        "    title: Brake lining below minimum\n"
        "    outcome: OOS_VEHICLE\n"
        "    condition: {type: numeric_compare, field: lining_mm, op: lt, threshold: 3}\n",
        encoding="utf-8",
    )

    version = await seed_starter_rules(async_session, filename="local.yaml", rulesets_dir=tmp_path)

    assert version.name == "LOCAL_BRAKES"
    assert version.rule_count == 1
    assert version.sources == []
