"""Tests for pre-flight validation."""

import pytest

from org_migrator.exceptions import ConfigurationError
from org_migrator.models.template import MigrationTemplate
from org_migrator.models.validation import Severity
from org_migrator.services.validation_rules import check_cache_keys, derive_cache_key, friendly_title

from .conftest import EXTERNAL_ID, account_contact_template


def with_validation(step_index, validation_config, **overrides):
    data = account_contact_template(**overrides)
    data["etlSteps"][step_index]["validationConfig"] = validation_config
    return data


def dependency_template(**check_overrides):
    check = {
        "checkName": "accountExists",
        "sourceField": "AccountId",
        "targetObject": "Account",
        "targetField": "{externalIdField}",
        "cacheKey": "target_accounts",
        "errorMessage": "Account {sourceValue} for {recordName} is missing",
    }
    check.update(check_overrides)
    return with_validation(1, {
        "preValidationQueries": [{
            "queryName": "existingAccounts",
            "soqlQuery": "SELECT Id, {externalIdField} FROM Account",
            "cacheKey": "target_accounts",
        }],
        "dependencyChecks": [check],
    })


def issues_for(result, check_name):
    return [i for i in result.issues if i.check_name == check_name]


def test_friendly_title_and_cache_key():
    assert friendly_title("checkOrphanedContacts") == "Check Orphaned Contacts"
    assert friendly_title("Pay_Code__c") == "Pay Code"
    assert friendly_title("largeBatch") == "Large Record Selection"
    assert derive_cache_key("tc9_pr__Pay_Code__c") == "target_pay_code"
    assert derive_cache_key("Account") == "target_account"


@pytest.mark.asyncio
async def test_missing_parent_gives_one_error_per_record(make_engine, request_for, target_org):
    target_org.tables["Account"] = [{"Id": "TGT1", EXTERNAL_ID: "001A"}]
    engine = make_engine(dependency_template())

    result = await engine.validate(request_for("001A", "001B"))

    issues = issues_for(result, "accountExists")
    assert sorted(i.record_id for i in issues) == ["003B", "003C"]
    assert all(i.severity == Severity.ERROR for i in issues)
    jones = next(i for i in issues if i.record_id == "003B")
    assert jones.message == "Account 001B for 003B is missing"
    assert jones.parent_record_id == "001B"
    assert jones.record_link == "https://source.my.salesforce.com/003B"
    assert jones.title == "Account Exists"
    assert not result.is_valid


@pytest.mark.asyncio
async def test_present_parent_gives_no_issue(make_engine, request_for, target_org):
    target_org.tables["Account"] = [{"Id": "TGT1", EXTERNAL_ID: "001A"}]
    engine = make_engine(dependency_template())

    result = await engine.validate(request_for("001A"))

    assert issues_for(result, "accountExists") == []
    assert result.is_valid


@pytest.mark.asyncio
async def test_optional_dependency_is_a_warning(make_engine, request_for):
    engine = make_engine(dependency_template(isRequired=False, warningMessage="No account {sourceValue}"))

    result = await engine.validate(request_for("001A"))

    issues = issues_for(result, "accountExists")
    assert [(i.severity, i.message) for i in issues] == [(Severity.WARNING, "No account 001A")]


def unfilled_cache_template():
    return with_validation(1, {"dependencyChecks": [{
        "checkName": "accountExists",
        "sourceField": "AccountId",
        "targetObject": "Account",
        "targetField": "{externalIdField}",
    }]})


@pytest.mark.asyncio
async def test_unfilled_cache_key_is_rejected_before_org_access(make_engine, request_for, source_org, target_org):
    engine = make_engine(unfilled_cache_template())

    with pytest.raises(ConfigurationError, match="target_account"):
        await engine.validate(request_for("001A"))
    with pytest.raises(ConfigurationError, match="target_account"):
        await engine.run(request_for("001A"))

    assert source_org.queries == []
    assert target_org.queries == []
    assert target_org.upsert_calls == []


def test_derived_cache_key_filled_by_any_step():
    data = with_validation(1, {"dependencyChecks": [{
        "checkName": "accountExists",
        "sourceField": "AccountId",
        "targetObject": "Account",
        "targetField": "{externalIdField}",
    }]})
    data["etlSteps"][0]["validationConfig"] = {"preValidationQueries": [{
        "queryName": "existingAccounts",
        "soqlQuery": "SELECT Id, {externalIdField} FROM Account",
        "cacheKey": "target_account",
    }]}

    check_cache_keys(MigrationTemplate.from_dict(data))

    with pytest.raises(ConfigurationError):
        check_cache_keys(MigrationTemplate.from_dict(unfilled_cache_template()))


@pytest.mark.asyncio
async def test_dependency_check_reads_rows_loaded_by_a_later_step(make_engine, request_for, target_org):
    target_org.tables["Account"] = [{"Id": "TGT1", EXTERNAL_ID: "001A"}]
    data = account_contact_template()
    data["etlSteps"][0]["validationConfig"] = {"dependencyChecks": [{
        "checkName": "accountAlreadyCopied",
        "sourceField": "Id",
        "targetObject": "Account",
        "targetField": "{externalIdField}",
        "cacheKey": "target_accounts",
    }]}
    data["etlSteps"][1]["validationConfig"] = {"preValidationQueries": [{
        "queryName": "existingAccounts",
        "soqlQuery": "SELECT Id, {externalIdField} FROM Account",
        "cacheKey": "target_accounts",
    }]}

    result = await make_engine(data).validate(request_for("001A", "001B"))

    issues = issues_for(result, "accountAlreadyCopied")
    assert [i.record_id for i in issues] == ["001B"]
    assert "not loaded" not in issues[0].message


@pytest.mark.asyncio
async def test_large_batch_threshold(make_engine, request_for):
    engine = make_engine()

    at_limit = await engine.validate(request_for(*[f"001{i:04d}" for i in range(200)]))
    over_limit = await engine.validate(request_for(*[f"001{i:04d}" for i in range(201)]))

    assert issues_for(at_limit, "largeBatch") == []
    large = issues_for(over_limit, "largeBatch")
    assert len(large) == 1
    assert large[0].severity == Severity.WARNING
    assert over_limit.is_valid


@pytest.mark.asyncio
async def test_count_match_defaults_to_selection_size(make_engine, request_for):
    data = with_validation(0, {"dataIntegrityChecks": [{
        "checkName": "allAccountsFound",
        "validationQuery": "SELECT COUNT() FROM Account WHERE Id IN ({selectedRecordIds})",
        "expectedResult": "count-match",
        "errorMessage": "Some selected accounts do not exist",
    }]})
    engine = make_engine(data)

    assert issues_for(await engine.validate(request_for("001A", "001B")), "allAccountsFound") == []
    issues = issues_for(await engine.validate(request_for("001A", "001Z")), "allAccountsFound")
    assert [i.message for i in issues] == ["Some selected accounts do not exist"]


@pytest.mark.asyncio
async def test_empty_check_reports_each_offending_row(make_engine, request_for):
    data = with_validation(0, {"dataIntegrityChecks": [{
        "checkName": "noPartners",
        "validationQuery": "SELECT Id, Name FROM Account WHERE Type = 'Partner'",
        "expectedResult": "empty",
        "severity": "warning",
    }]})

    result = await make_engine(data).validate(request_for("001A", "001B"))

    issues = issues_for(result, "noPartners")
    assert [(i.record_id, i.record_name, i.severity) for i in issues] == [("001B", "Globex", Severity.WARNING)]


@pytest.mark.asyncio
async def test_picklist_values_checked_against_target(make_engine, request_for, target_org):
    target_org.describes["Account"] = list(target_org.describes["Account"]) + [{
        "name": "Type",
        "picklistValues": [
            {"value": "Customer", "active": True},
            {"value": "Partner", "active": False},
        ],
    }]
    data = with_validation(0, {"picklistValidationChecks": [{"fieldName": "Type", "objectName": "Account"}]})

    result = await make_engine(data).validate(request_for("001A", "001B"))

    issues = issues_for(result, "picklistValidation_Type")
    assert len(issues) == 1
    assert issues[0].record_id == "001B"
    assert issues[0].severity == Severity.WARNING
    assert "'Partner'" in issues[0].message


@pytest.mark.asyncio
async def test_picklist_allowed_values_without_target(make_engine, request_for):
    data = with_validation(0, {"picklistValidationChecks": [{
        "fieldName": "Type",
        "objectName": "Account",
        "validateAgainstTarget": False,
        "allowedValues": ["Customer", "Partner"],
    }]})

    result = await make_engine(data).validate(request_for("001A", "001B"))

    assert issues_for(result, "picklistValidation_Type") == []


@pytest.mark.asyncio
async def test_validation_never_writes(make_engine, request_for, target_org):
    await make_engine(dependency_template()).validate(request_for("001A", "001B"))
    assert target_org.upsert_calls == []


@pytest.mark.asyncio
async def test_missing_external_id_field_is_an_error_issue(make_engine, request_for, target_org):
    target_org.describes["Account"] = ["Id", "Name"]

    result = await make_engine().validate(request_for("001A"))

    assert [i.title for i in result.errors] == ["Missing External ID Field"]


@pytest.mark.asyncio
async def test_result_groups_issues_by_severity(make_engine, request_for):
    result = await make_engine(dependency_template()).validate(request_for("001A", "001B"))
    data = result.to_dict()

    assert data["summary"] == {"errors": 3, "warnings": 0, "info": 0}
    assert {i["record_id"] for i in data["errors"]} == {"003A", "003B", "003C"}
