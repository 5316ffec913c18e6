"""Tests for the firewall rule store"""
import pytest

from app.core.exceptions import NotFoundError, RuleNotFoundError, RuleValidationError, ValidationError
from app.schemas.waf import (
    AttackType,
    FirewallRuleCreate,
    FirewallRuleUpdate,
    PatternSyntax,
    RuleAction,
)
from app.services.rule_service import RuleStore, compile_matcher


def rule(name="rule", pattern="admin", **kwargs) -> FirewallRuleCreate:
    return FirewallRuleCreate(name=name, pattern=pattern, **kwargs)


class TestCompileMatcher:

    def test_empty_pattern_never_matches(self):
        matches = compile_matcher("", PatternSyntax.REGEX, False)
        assert not matches("")
        assert not matches("/anything")

    def test_regex_is_case_insensitive_by_default(self):
        matches = compile_matcher(r"drop\s+table", PatternSyntax.REGEX, False)
        assert matches("/q?DROP  TABLE users")

    def test_case_sensitive_regex(self):
        matches = compile_matcher("Admin", PatternSyntax.REGEX, True)
        assert matches("/Admin")
        assert not matches("/admin")

    def test_literal_treats_metacharacters_verbatim(self):
        matches = compile_matcher("a.b(", PatternSyntax.LITERAL, False)
        assert matches("/A.B(/x")
        assert not matches("/axb(")

    def test_invalid_regex_raises_validation_error(self):
        with pytest.raises(RuleValidationError) as exc_info:
            compile_matcher("(unclosed", PatternSyntax.REGEX, False)
        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.details["pattern"] == "(unclosed"

    def test_invalid_regex_is_fine_as_literal(self):
        matches = compile_matcher("(unclosed", PatternSyntax.LITERAL, False)
        assert matches("/x(unclosed")


class TestRuleStore:

    def test_add_assigns_unique_ids_in_order(self):
        store = RuleStore()
        first = store.add(rule("a"))
        second = store.add(rule("b"))

        assert first.id != second.id
        assert [r.name for r in store.list()] == ["a", "b"]

    def test_add_invalid_pattern_stores_nothing(self):
        store = RuleStore()
        with pytest.raises(RuleValidationError):
            store.add(rule(pattern="[a-"))
        assert store.list() == []

    def test_ids_are_not_reused_after_delete(self):
        store = RuleStore()
        first = store.add(rule("a"))
        store.delete(first.id)
        second = store.add(rule("b"))
        assert second.id != first.id

    def test_update_keeps_position_and_id(self):
        store = RuleStore()
        a = store.add(rule("a"))
        store.add(rule("b"))

        updated = store.update(a.id, FirewallRuleUpdate(name="renamed", action=RuleAction.FLAG))

        assert updated.id == a.id
        assert updated.created_at == a.created_at
        assert updated.action == RuleAction.FLAG
        assert [r.name for r in store.list()] == ["renamed", "b"]

    def test_update_unknown_rule(self):
        store = RuleStore()
        with pytest.raises(RuleNotFoundError) as exc_info:
            store.update("rule-404", FirewallRuleUpdate(enabled=False))
        assert isinstance(exc_info.value, NotFoundError)

    def test_failed_update_leaves_rule_untouched(self):
        store = RuleStore()
        created = store.add(rule(pattern="admin"))

        with pytest.raises(RuleValidationError):
            store.update(created.id, FirewallRuleUpdate(pattern="(", name="broken"))

        stored = store.get(created.id)
        assert stored.pattern == "admin"
        assert stored.name == "rule"

    def test_switching_syntax_revalidates(self):
        store = RuleStore()
        created = store.add(rule(pattern="(", syntax=PatternSyntax.LITERAL))
        with pytest.raises(RuleValidationError):
            store.update(created.id, FirewallRuleUpdate(syntax=PatternSyntax.REGEX))

    def test_delete(self):
        store = RuleStore()
        created = store.add(rule())
        assert store.delete(created.id) is True
        assert store.delete(created.id) is False
        assert len(store) == 0

    def test_list_returns_copies(self):
        store = RuleStore()
        created = store.add(rule())
        listed = store.list()
        listed[0].enabled = False
        assert store.get(created.id).enabled is True

    def test_iter_enabled_skips_disabled(self):
        store = RuleStore()
        store.add(rule("on"))
        store.add(rule("off", enabled=False))
        assert [r.name for r, _ in store.iter_enabled()] == ["on"]

    def test_load_continues_id_sequence(self):
        source = RuleStore()
        source.add(rule("a"))
        source.add(rule("b", type=AttackType.XSS))

        restored = RuleStore()
        restored.load(source.list())
        added = restored.add(rule("c"))

        assert [r.name for r in restored.list()] == ["a", "b", "c"]
        assert added.id == "rule-3"
