"""Starter rule set files.

A rule set file is YAML with a ``name``, an ``effective_start``, an
optional ``source`` block and a list of ``rules``. The SHA-256 of the
raw file comes back with the parsed content so seeding can log which
exact file it loaded.
"""

import hashlib
from pathlib import Path
from typing import Any

import yaml

from oos_engine.core.config import settings
from oos_engine.core.errors import RuleDefinitionError

# Shipped rule set files
RULESETS_DIR = Path(__file__).parent.parent.parent / "rulesets"

REQUIRED_RULESET_KEYS = ("name", "effective_start", "rules")


def file_sha256(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def load_ruleset(
    filename: str,
    rulesets_dir: Path | None = None,
) -> tuple[dict[str, Any], str]:
    """Load a rule set file.

    Only the file's shape is checked here. Rules themselves are
    checked when the seeded version is activated.

    Args:
        filename: Rule set file name (e.g. "cvsa-oosc-2025-starter.yaml")
        rulesets_dir: Directory to read from (defaults to
            settings.rulesets_dir, then the shipped rulesets/)

    Returns:
        Tuple of (parsed rule set, SHA-256 of the file)

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the YAML is invalid
        RuleDefinitionError: If a required key is missing or rules is not a list
    """
    filepath = (rulesets_dir or settings.rulesets_dir or RULESETS_DIR) / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Ruleset not found: {filepath}")

    content = filepath.read_text(encoding="utf-8")
    ruleset = yaml.safe_load(content)

    if not isinstance(ruleset, dict):
        raise RuleDefinitionError(f"Ruleset {filename} must be a YAML mapping")
    errors = [f"{filename}: missing '{key}'" for key in REQUIRED_RULESET_KEYS if key not in ruleset]
    if "rules" in ruleset and not isinstance(ruleset["rules"], list):
        errors.append(f"{filename}: 'rules' must be a list")
    if errors:
        raise RuleDefinitionError(f"Ruleset {filename} is malformed", errors)

    return ruleset, file_sha256(content)
