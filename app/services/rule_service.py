"""Firewall rule storage"""
import logging
import re
from datetime import datetime
from typing import Callable, Dict, List, Optional

from app.core.exceptions import RuleNotFoundError, RuleValidationError
from app.schemas.waf import (
    FirewallRule,
    FirewallRuleCreate,
    FirewallRuleUpdate,
    PatternSyntax,
)

logger = logging.getLogger(__name__)

Matcher = Callable[[str], bool]


def _never(path: str) -> bool:
    return False


def compile_matcher(pattern: str, syntax: PatternSyntax, case_sensitive: bool) -> Matcher:
    """
    Build a path matcher for a rule pattern.

    An empty pattern never matches. Raises RuleValidationError when a regex
    pattern does not compile.
    """
    if not pattern:
        return _never

    if syntax == PatternSyntax.LITERAL:
        if case_sensitive:
            return lambda path: pattern in path
        needle = pattern.casefold()
        return lambda path: needle in path.casefold()

    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        regex = re.compile(pattern, flags)
    except re.error as e:
        raise RuleValidationError(pattern, str(e))
    return lambda path: regex.search(path) is not None


class RuleStore:
    """Ordered set of firewall rules; stored order is evaluation order"""

    def __init__(self):
        self._rules: Dict[str, FirewallRule] = {}
        self._matchers: Dict[str, Matcher] = {}
        self._next_id = 1

    def add(self, rule_data: FirewallRuleCreate) -> FirewallRule:
        """Create rule at the end of the evaluation order"""
        matcher = compile_matcher(rule_data.pattern, rule_data.syntax, rule_data.case_sensitive)

        rule = FirewallRule(
            id=f"rule-{self._next_id}",
            created_at=datetime.utcnow(),
            **rule_data.model_dump(),
        )
        self._next_id += 1

        self._rules[rule.id] = rule
        self._matchers[rule.id] = matcher
        logger.info(f"Added rule {rule.id} ({rule.name})")
        return rule.model_copy()

    def update(self, rule_id: str, rule_data: FirewallRuleUpdate) -> FirewallRule:
        """Apply a partial update; the stored rule is untouched on failure"""
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)

        update_data = rule_data.model_dump(exclude_unset=True, exclude_none=True)
        updated = rule.model_copy(update=update_data)
        matcher = compile_matcher(updated.pattern, updated.syntax, updated.case_sensitive)

        # Keep insertion position, dicts preserve order on reassignment
        self._rules[rule_id] = updated
        self._matchers[rule_id] = matcher
        logger.info(f"Updated rule {rule_id}: {sorted(update_data)}")
        return updated.model_copy()

    def delete(self, rule_id: str) -> bool:
        """Delete rule"""
        if rule_id not in self._rules:
            return False

        del self._rules[rule_id]
        del self._matchers[rule_id]
        logger.info(f"Deleted rule {rule_id}")
        return True

    def get(self, rule_id: str) -> Optional[FirewallRule]:
        rule = self._rules.get(rule_id)
        return rule.model_copy() if rule else None

    def list(self) -> List[FirewallRule]:
        """Rules in evaluation order"""
        return [rule.model_copy() for rule in self._rules.values()]

    def iter_enabled(self):
        """Yield (rule, matcher) for enabled rules in evaluation order"""
        for rule_id, rule in self._rules.items():
            if rule.enabled:
                yield rule, self._matchers[rule_id]

    def load(self, rules: List[FirewallRule]) -> None:
        """Replace all rules, e.g. from a persisted snapshot"""
        compiled = {
            rule.id: compile_matcher(rule.pattern, rule.syntax, rule.case_sensitive)
            for rule in rules
        }
        self._rules = {rule.id: rule.model_copy() for rule in rules}
        self._matchers = compiled
        self._next_id = max(
            [self._next_id] + [sequence_of(rule.id) + 1 for rule in rules]
        )

    def __len__(self) -> int:
        return len(self._rules)


def sequence_of(identifier: str) -> int:
    """Numeric suffix of ids like rule-7 / req-42, 0 when absent"""
    _, _, suffix = identifier.rpartition("-")
    return int(suffix) if suffix.isdigit() else 0
