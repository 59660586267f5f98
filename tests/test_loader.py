"""Tests for the bulk upsert loader."""

import asyncio

import pytest

from org_migrator.exceptions import AuthError, TransientApiError
from org_migrator.loaders.bulk_upsert_loader import BulkUpsertLoader
from org_migrator.models.record import TransformedRecord
from org_migrator.models.template import ConcurrencyMode, LoadConfig, RetryConfig

from .conftest import FakeOrg


def load_config(**kwargs):
    kwargs.setdefault("retry_config", RetryConfig(max_retries=3, retry_wait_seconds=0))
    return LoadConfig(target_object="Contact", external_id_field="Ext__c", **kwargs)


def records(*external_ids):
    return [
        TransformedRecord(source_id=f"src-{e}", target_object="Contact", data={"Ext__c": e}, external_id=e)
        for e in external_ids
    ]


@pytest.fixture
def target():
    return FakeOrg("00DT")


@pytest.mark.asyncio
async def test_retryable_error_is_attempted_max_retries_plus_one(target):
    target.upsert_errors["003A"] = ["UNABLE_TO_LOCK_ROW"] * 10

    result = await BulkUpsertLoader(target, load_config()).load_all(records("003A"))

    outcome = result.results[0]
    assert outcome.success is False
    assert outcome.attempts == 4
    assert outcome.error_code == "UNABLE_TO_LOCK_ROW"
    assert len(target.upsert_calls) == 4


@pytest.mark.asyncio
async def test_non_retryable_error_is_attempted_once(target):
    target.permanent_errors["003A"] = "FIELD_CUSTOM_VALIDATION_EXCEPTION"

    result = await BulkUpsertLoader(target, load_config()).load_all(records("003A"))

    assert result.results[0].attempts == 1
    assert len(target.upsert_calls) == 1
    assert result.errors[0].code == "FIELD_CUSTOM_VALIDATION_EXCEPTION"
    assert result.errors[0].record_id == "src-003A"


@pytest.mark.asyncio
async def test_only_failed_records_are_resubmitted(target):
    target.upsert_errors["003A"] = ["UNABLE_TO_LOCK_ROW", "UNABLE_TO_LOCK_ROW"]

    result = await BulkUpsertLoader(target, load_config()).load_all(records("003A", "003B"))

    assert [r.success for r in result.results] == [True, True]
    assert [r.attempts for r in result.results] == [3, 1]
    assert [len(call["records"]) for call in target.upsert_calls] == [2, 1, 1]


@pytest.mark.asyncio
async def test_upsert_is_idempotent(target):
    loader = BulkUpsertLoader(target, load_config())

    first = await loader.load_all(records("003A", "003B"))
    second = await loader.load_all(records("003A", "003B"))

    assert len(target.tables["Contact"]) == 2
    assert len(first.created_ids) == 2
    assert second.created_ids == []
    assert second.id_mappings == first.id_mappings


@pytest.mark.asyncio
async def test_records_are_split_into_batches(target):
    config = load_config(batch_size=200)
    many = records(*[f"003{i:04d}" for i in range(450)])

    result = await BulkUpsertLoader(target, config, max_parallel_batches=2).load_all(many)

    assert [len(call["records"]) for call in target.upsert_calls] == [200, 200, 50]
    assert result.total_succeeded == 450
    assert [r.external_id for r in result.results] == [r.external_id for r in many]


@pytest.mark.asyncio
async def test_serial_mode(target):
    loader = BulkUpsertLoader(target, load_config(concurrency_mode=ConcurrencyMode.SERIAL), max_parallel_batches=5)

    await loader.load_all(records("003A"))

    assert loader.max_parallel_batches == 1
    assert target.upsert_calls[0]["serial"] is True


@pytest.mark.asyncio
async def test_auth_error_in_outcome_raises(target):
    target.permanent_errors["003A"] = "INVALID_SESSION_ID"

    with pytest.raises(AuthError):
        await BulkUpsertLoader(target, load_config()).load_all(records("003A"))


class FlakyOrg(FakeOrg):
    """Rejects the first whole-batch call."""

    def __init__(self):
        super().__init__("00DF")
        self.failures = 1

    async def bulk_upsert(self, object_name, external_id_field, records, serial=False):
        if self.failures:
            self.failures -= 1
            raise TransientApiError("Record locked", code="UNABLE_TO_LOCK_ROW")
        return await super().bulk_upsert(object_name, external_id_field, records, serial)


@pytest.mark.asyncio
async def test_batch_level_error_is_retried_per_record():
    target = FlakyOrg()

    result = await BulkUpsertLoader(target, load_config()).load_all(records("003A", "003B"))

    assert result.total_succeeded == 2
    assert [r.attempts for r in result.results] == [2, 2]


@pytest.mark.asyncio
async def test_rollback_deletes_created_records(target):
    loader = BulkUpsertLoader(target, load_config())
    result = await loader.load_all(records("003A", "003B"))

    deleted = await loader.rollback(result.created_ids)

    assert deleted == 2
    assert target.tables["Contact"] == []


class SlowOrg(FakeOrg):
    """Rejects the session for 003A at once; every other batch takes a while."""

    def __init__(self):
        super().__init__("00DS")
        self.started = []

    async def bulk_upsert(self, object_name, external_id_field, records, serial=False):
        keys = [record[external_id_field] for record in records]
        self.started.extend(keys)
        if "003A" in keys:
            return [{"success": False, "errors": [{"statusCode": "INVALID_SESSION_ID", "message": "Session expired"}]}]
        await asyncio.sleep(0.05)
        return await super().bulk_upsert(object_name, external_id_field, records, serial)


@pytest.mark.asyncio
async def test_auth_error_cancels_batches_still_in_flight():
    target = SlowOrg()
    loader = BulkUpsertLoader(target, load_config(batch_size=1), max_parallel_batches=2)

    with pytest.raises(AuthError):
        await loader.load_all(records("003A", "003B", "003C"))
    await asyncio.sleep(0.1)

    assert "003B" in target.started
    assert target.tables.get("Contact", []) == []
    assert target.upsert_calls == []
