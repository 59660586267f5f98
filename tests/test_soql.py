"""Tests for SOQL text helpers."""

from org_migrator.soql import add_in_filter, escape_literal, format_id_list, quote_literal


def test_escape_literal_escapes_backslash_before_quote():
    assert escape_literal("O'Brien\\x") == "O\\'Brien\\\\x"
    assert quote_literal("it's") == "'it\\'s'"


def test_format_id_list():
    assert format_id_list(["001A", "001B"]) == "'001A','001B'"


def test_format_id_list_empty_matches_nothing():
    assert format_id_list([]) == "''"


def test_add_in_filter_without_where():
    query = add_in_filter("SELECT Id FROM Contact", "AccountId", ["001A"])
    assert query == "SELECT Id FROM Contact WHERE AccountId IN ('001A')"


def test_add_in_filter_ands_existing_where():
    query = add_in_filter("SELECT Id FROM Contact WHERE IsDeleted = false", "AccountId", ["001A"])
    assert query == "SELECT Id FROM Contact WHERE (IsDeleted = false) AND AccountId IN ('001A')"


def test_add_in_filter_keeps_trailing_clauses():
    query = add_in_filter("SELECT Id FROM Contact ORDER BY Name LIMIT 10", "AccountId", ["001A", "001B"])
    assert query == "SELECT Id FROM Contact WHERE AccountId IN ('001A','001B') ORDER BY Name LIMIT 10"


def test_add_in_filter_ignores_subquery_where():
    query = add_in_filter(
        "SELECT Id, (SELECT Id FROM Contacts WHERE Email != null) FROM Account",
        "Id",
        ["001A"],
    )
    assert query.endswith("FROM Account WHERE Id IN ('001A')")
    assert "(SELECT Id FROM Contacts WHERE Email != null)" in query


def test_add_in_filter_ignores_keywords_in_literals():
    query = add_in_filter("SELECT Id FROM Case WHERE Subject = 'ORDER BY me'", "AccountId", ["001A"])
    assert query == "SELECT Id FROM Case WHERE (Subject = 'ORDER BY me') AND AccountId IN ('001A')"
