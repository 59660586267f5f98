"""Tests for record transformation."""

import pytest

from org_migrator.models.record import SourceRecord
from org_migrator.models.template import ETLStep
from org_migrator.services.lookup_cache import LookupCache
from org_migrator.services.transformer import RecordTransformer

from .conftest import FakeOrg


def lead_step(lookup_overrides=None):
    lookup = {
        "sourceField": "Owner__r.External_Id__c",
        "targetField": "Owner__c",
        "lookupObject": "Agent__c",
        "lookupKeyField": "Ext__c",
    }
    lookup.update(lookup_overrides or {})
    return ETLStep.from_dict({
        "stepName": "Leads",
        "stepOrder": 1,
        "extractConfig": {"soqlQuery": "SELECT Id FROM Lead", "objectApiName": "Lead"},
        "transformConfig": {
            "fieldMappings": [
                {"sourceField": "Id", "targetField": "Ext__c"},
                {"sourceField": "LastName", "targetField": "LastName", "isRequired": True},
                {"sourceField": "Converted", "targetField": "Converted__c", "transformationType": "boolean"},
                {"sourceField": "Score", "targetField": "Score__c", "transformationType": "number"},
                {
                    "sourceField": "Rating",
                    "targetField": "Rating",
                    "transformationType": "picklist",
                    "transformationConfig": {"mappingDictionary": {"Hot": "High"}},
                },
            ],
            "lookupMappings": [lookup],
            "recordTypeMapping": {
                "sourceField": "RecordType.DeveloperName",
                "targetField": "RecordTypeId",
                "mappingDictionary": {"Retail": "012RETAIL"},
            },
        },
        "loadConfig": {"targetObject": "Lead", "externalIdField": "Ext__c"},
    })


def lead(**data):
    row = {
        "Id": "00QA",
        "LastName": "Smith",
        "Converted": "true",
        "Score": "12.5",
        "Rating": "Hot",
        "Owner__r": {"External_Id__c": "AG-1"},
        "RecordType": {"DeveloperName": "Retail"},
    }
    row.update(data)
    return SourceRecord.from_api("Lead", row)


@pytest.fixture
def cache():
    cache = LookupCache()
    cache.put("Agent__c", "AG-1", "a01TGT", "Ext__c")
    return cache


def test_transform_record_builds_payload(cache):
    record, problems = RecordTransformer().transform_record(lead_step(), lead(), cache, {})

    assert problems == []
    assert record.external_id == "00QA"
    assert record.data == {
        "Ext__c": "00QA",
        "LastName": "Smith",
        "Converted__c": True,
        "Score__c": 12.5,
        "Rating": "High",
        "Owner__c": "a01TGT",
        "RecordTypeId": "012RETAIL",
    }


@pytest.mark.parametrize("value,expected", [
    ("true", True),
    ("TRUE", False),
    (" true", False),
    ("yes", False),
    (1, True),
    (True, True),
    (0, False),
    (None, False),
])
def test_boolean_coercion(cache, value, expected):
    record, _ = RecordTransformer().transform_record(lead_step(), lead(Converted=value), cache, {})
    assert record.data["Converted__c"] is expected


def test_number_coercion(cache):
    transformer = RecordTransformer()

    record, _ = transformer.transform_record(lead_step(), lead(Score=""), cache, {})
    assert record.data["Score__c"] is None

    record, problems = transformer.transform_record(lead_step(), lead(Score="abc"), cache, {})
    assert record is None
    assert problems[0].code == "INVALID_NUMBER"


def test_unmapped_picklist_value_passes_through(cache):
    record, _ = RecordTransformer().transform_record(lead_step(), lead(Rating="Cold"), cache, {})
    assert record.data["Rating"] == "Cold"


def test_required_field_missing_excludes_record(cache):
    transformed, errors = RecordTransformer().transform(
        lead_step(), [lead(), lead(Id="00QB", LastName="")], cache
    )

    assert [r.source_id for r in transformed] == ["00QA"]
    assert errors[0].record_id == "00QB"
    assert errors[0].code == "REQUIRED_FIELD_MISSING"
    assert errors[0].phase == "transform"


def test_lookup_miss_excludes_record():
    record, problems = RecordTransformer().transform_record(lead_step(), lead(), LookupCache(), {})
    assert record is None
    assert problems[0].code == "LOOKUP_NOT_FOUND"


def test_lookup_ignores_entries_under_another_key_field():
    cache = LookupCache()
    cache.put("Agent__c", "AG-1", "a01BYNAME", "Name")

    record, problems = RecordTransformer().transform_record(lead_step(), lead(), cache, {})

    assert record is None
    assert problems[0].code == "LOOKUP_NOT_FOUND"


def test_lookup_miss_with_allow_null_writes_null():
    step = lead_step({"allowNull": True})
    record, problems = RecordTransformer().transform_record(step, lead(), LookupCache(), {})
    assert problems == []
    assert record.data["Owner__c"] is None


def test_null_lookup_value_writes_null():
    record, problems = RecordTransformer().transform_record(lead_step(), lead(Owner__r=None), LookupCache(), {})
    assert problems == []
    assert record.data["Owner__c"] is None


def test_missing_external_id_excludes_record(cache):
    record, problems = RecordTransformer().transform_record(lead_step(), lead(Id=None), cache, {})
    assert record is None
    assert problems[0].code == "MISSING_EXTERNAL_ID"


@pytest.mark.asyncio
async def test_prefetch_skips_cached_keys(cache):
    target = FakeOrg("00DT", tables={"Agent__c": [{"Id": "a01TGT", "Ext__c": "AG-1"}]})

    await RecordTransformer().prefetch_lookups(lead_step(), [lead(), lead(Id="00QB")], cache, target)

    assert target.queries == []


@pytest.mark.asyncio
async def test_prefetch_queries_missing_keys_once():
    target = FakeOrg("00DT", tables={"Agent__c": [
        {"Id": "a01A", "Ext__c": "AG-1"},
        {"Id": "a01B", "Ext__c": "AG-2"},
    ]})
    cache = LookupCache()
    records = [lead(), lead(Id="00QB", Owner__r={"External_Id__c": "AG-2"}), lead(Id="00QC")]

    local = await RecordTransformer().prefetch_lookups(lead_step(), records, cache, target)

    assert len(target.queries) == 1
    assert "Ext__c IN ('AG-1','AG-2')" in target.queries[0]
    assert cache.get("Agent__c", "AG-2", "Ext__c") == "a01B"
    assert local == {}


@pytest.mark.asyncio
async def test_prefetch_without_caching_keeps_results_local():
    target = FakeOrg("00DT", tables={"Agent__c": [{"Id": "a01A", "Ext__c": "AG-1"}]})
    cache = LookupCache()
    step = lead_step({"cacheResults": False})
    transformer = RecordTransformer()

    local = await transformer.prefetch_lookups(step, [lead()], cache, target)
    transformed, errors = transformer.transform(step, [lead()], cache, local)

    assert len(cache) == 0
    assert local == {("agent__c", "ext__c", "AG-1"): "a01A"}
    assert errors == []
    assert transformed[0].data["Owner__c"] == "a01A"
