# shield/rule_engine.py

import logging
import re
from pathlib import Path
from typing import Any, List, Optional

import yaml

from .config import RULE_DIR
from .models import Action, Rule, Severity, ThreatType

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "threat_type", "match_type", "pattern")
MATCH_TYPES = ("regex", "contains")


class RuleEngine:
    """
    Ordered table of attack signatures.

    Rules come from the YAML files in rule_dir, files in name order and
    rules in list order within a file. classify() walks the table top to
    bottom and stops at the first match.
    """

    def __init__(self, rule_dir=RULE_DIR):
        self.rule_dir = Path(rule_dir)
        self.rules: List[Rule] = []

    def load_rules(self) -> None:
        """Load all YAML rules from the rules directory."""
        self.rules.clear()

        if not self.rule_dir.exists():
            logger.error("Rule directory does not exist: %s", self.rule_dir)
            return

        for path in sorted(self.rule_dir.glob("*.yaml")):
            try:
                with path.open("r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Error loading rule file %s: %s", path.name, e)
                continue

            # Skip empty or invalid YAML
            if not data:
                logger.warning("Skipping empty rule file: %s", path.name)
                continue
            if isinstance(data, dict):
                data = [data]
            if not isinstance(data, list):
                logger.warning("Skipping rule file that is not a list: %s", path.name)
                continue

            for entry in data:
                rule = self._build_rule(entry, path.name)
                if rule is not None:
                    self.rules.append(rule)

        logger.info("Loaded %d rules from %s", len(self.rules), self.rule_dir)

    def classify(self, signal: str) -> Optional[Rule]:
        """Return the first rule matching signal, or None."""
        for rule in self.rules:
            if rule.matches(signal):
                return rule
        return None

    def _build_rule(self, entry: Any, source: str) -> Optional[Rule]:
        if not isinstance(entry, dict):
            logger.warning("Skipping non dict rule in %s", source)
            return None

        missing = [name for name in REQUIRED_FIELDS if not entry.get(name)]
        if missing:
            logger.warning(
                "Skipping rule %s in %s missing fields: %s",
                entry.get("id"), source, ", ".join(missing),
            )
            return None

        match_type = entry["match_type"]
        if match_type not in MATCH_TYPES:
            logger.warning("Unknown match_type %r in rule %s", match_type, entry["id"])
            return None

        try:
            threat_type = ThreatType(entry["threat_type"])
            severity = Severity(entry.get("severity", Severity.HIGH.value))
            action = Action(entry.get("action", Action.BLOCK.value))
        except ValueError as e:
            logger.warning("Invalid value in rule %s: %s", entry["id"], e)
            return None

        pattern = str(entry["pattern"])
        regex = None
        if match_type == "regex":
            try:
                regex = re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                logger.warning("Invalid regex in rule %s: %s", entry["id"], e)
                return None

        return Rule(
            id=str(entry["id"]),
            threat_type=threat_type,
            description=str(entry.get("description") or threat_type.value),
            severity=severity,
            action=action,
            match_type=match_type,
            pattern=pattern,
            regex=regex,
        )

