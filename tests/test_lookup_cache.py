"""Tests for the run-scoped lookup cache."""

import pytest

from org_migrator.exceptions import LookupCacheConflictError
from org_migrator.services.lookup_cache import LookupCache


def test_put_and_get_ignore_object_case():
    cache = LookupCache()
    cache.put("Account", "001A", "TGT1")

    assert cache.get("account", "001A") == "TGT1"
    assert cache.contains("ACCOUNT", "001A")
    assert cache.get("Account", "001Z") is None
    assert cache.get("Account", None) is None


def test_rewriting_same_id_is_a_no_op():
    cache = LookupCache()
    cache.put("Account", "001A", "TGT1")
    cache.put("Account", "001A", "TGT1")
    assert len(cache) == 1


def test_rewriting_different_id_raises():
    cache = LookupCache()
    cache.put("Account", "001A", "TGT1")

    with pytest.raises(LookupCacheConflictError) as excinfo:
        cache.put("Account", "001A", "TGT2")

    assert excinfo.value.existing == "TGT1"
    assert cache.get("Account", "001A") == "TGT1"


def test_missing_keys_are_distinct_and_ordered():
    cache = LookupCache()
    cache.put_many("Account", {"001A": "TGT1"})

    missing = cache.missing_keys("Account", ["001C", "001A", None, "001B", "001C"])

    assert missing == ["001C", "001B"]


def test_query_results_by_cache_key():
    cache = LookupCache()
    assert not cache.has_query_result("target_account")

    cache.store_query_result("target_account", [{"Id": "TGT1"}])

    assert cache.has_query_result("target_account")
    assert cache.query_result("target_account") == [{"Id": "TGT1"}]
    assert cache.query_result("other") is None


def test_key_fields_are_separate_namespaces():
    cache = LookupCache()
    cache.put("Account", "Acme", "TGT1", key_field="Name")
    cache.put("Account", "Acme", "TGT2", key_field="External_Id__c")

    assert cache.get("Account", "Acme", "name") == "TGT1"
    assert cache.get("Account", "Acme", "External_Id__c") == "TGT2"
    assert cache.get("Account", "Acme") is None
    assert cache.missing_keys("Account", ["Acme"], "Other__c") == ["Acme"]


def test_conflict_names_the_key_field():
    cache = LookupCache()
    cache.put("Account", "001A", "TGT1", key_field="Ext__c")

    with pytest.raises(LookupCacheConflictError, match=r"Account\.Ext__c\[001A\]"):
        cache.put("Account", "001A", "TGT2", key_field="Ext__c")
