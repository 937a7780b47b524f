# Tests for hierarchical scope checks.

from oauth.scopes import (
    DEFAULT_GRANT_SCOPES,
    SCOPE_DESCRIPTIONS,
    SUPPORTED_SCOPES,
    missing_scopes,
    parse_scope,
    scope_satisfied,
)


class TestParseScope:
    def test_space_delimited_string(self):
        assert parse_scope("tasks:read  calendar:write") == {"tasks:read", "calendar:write"}

    def test_iterable(self):
        assert parse_scope(["mcp", "mcp"]) == {"mcp"}

    def test_empty(self):
        assert parse_scope("") == frozenset()
        assert parse_scope(None) == frozenset()


class TestScopeHierarchy:
    def test_universal_scope_satisfies_everything(self):
        assert scope_satisfied({"mcp"}, "calendar:write")
        assert scope_satisfied({"mcp"}, "anything:else other")
        assert missing_scopes({"mcp"}, "tasks:write admin") == []

    def test_exact_match(self):
        assert scope_satisfied({"tasks:read"}, "tasks:read")

    def test_write_implies_read(self):
        assert scope_satisfied({"tasks:write"}, "tasks:read")

    def test_read_does_not_imply_write(self):
        assert not scope_satisfied({"tasks:read"}, "tasks:write")
        assert missing_scopes({"tasks:read"}, "tasks:write") == ["tasks:write"]

    def test_bare_resource_implies_read_and_write(self):
        assert scope_satisfied({"calendar"}, "calendar:read")
        assert scope_satisfied({"calendar"}, "calendar:write")

    def test_other_resource_does_not_satisfy(self):
        assert not scope_satisfied({"tasks:write", "tasks"}, "calendar:read")

    def test_bare_requirement_needs_bare_or_universal(self):
        assert not scope_satisfied({"tasks:write"}, "tasks")
        assert scope_satisfied({"tasks"}, "tasks")

    def test_all_required_scopes_must_be_covered(self):
        granted = {"tasks:write", "calendar:read"}
        assert scope_satisfied(granted, "tasks:read calendar:read")
        assert missing_scopes(granted, ["calendar:write", "tasks:read", "admin"]) == ["admin", "calendar:write"]

    def test_no_requirement_is_always_satisfied(self):
        assert scope_satisfied(set(), "")
        assert missing_scopes(set(), []) == []


class TestScopeConstants:
    def test_default_grant_scopes(self):
        assert DEFAULT_GRANT_SCOPES == {"tasks:read", "tasks:write", "calendar:read", "calendar:write"}

    def test_supported_scopes_are_described(self):
        assert set(SUPPORTED_SCOPES) == set(SCOPE_DESCRIPTIONS)
        assert DEFAULT_GRANT_SCOPES <= set(SUPPORTED_SCOPES)
        assert "mcp" in SUPPORTED_SCOPES
