"""Tests for template models and the template store."""

import json
from pathlib import Path

import pytest

from org_migrator.exceptions import ConfigurationError
from org_migrator.models.template import (
    ConcurrencyMode,
    MigrationTemplate,
    TransformationType,
)
from org_migrator.services.dependency_graph import check_execution_order
from org_migrator.services.placeholder_resolver import check_placeholders
from org_migrator.services.template_store import TemplateStore

from .conftest import account_contact_template


def test_from_dict_applies_defaults():
    template = MigrationTemplate.from_dict(account_contact_template())
    contacts = template.get_step("Contacts")

    assert template.execution_order == ("Accounts", "Contacts")
    assert contacts.dependencies == frozenset({"Accounts"})
    assert contacts.extract_config.batch_size == 200
    assert contacts.load_config.concurrency_mode == ConcurrencyMode.PARALLEL
    assert contacts.load_config.allow_partial_success is False
    assert contacts.transform_config.field_mappings[0].transformation_type == TransformationType.DIRECT
    assert contacts.transform_config.lookup_mappings[0].cache_results is True


def test_execution_order_defaults_to_step_order():
    data = account_contact_template()
    del data["executionOrder"]
    data["etlSteps"].reverse()

    template = MigrationTemplate.from_dict(data)

    assert template.execution_order == ("Accounts", "Contacts")
    assert [s.step_name for s in template.ordered_steps()] == ["Accounts", "Contacts"]


def test_dict_round_trip_preserves_template():
    template = MigrationTemplate.from_dict(account_contact_template())
    assert MigrationTemplate.from_dict(template.to_dict()) == template


def test_register_rejects_duplicate_id():
    store = TemplateStore()
    store.register(MigrationTemplate.from_dict(account_contact_template()))

    with pytest.raises(ConfigurationError, match="already registered"):
        store.register(MigrationTemplate.from_dict(account_contact_template(name="Other")))


def test_register_rejects_duplicate_step_names():
    data = account_contact_template()
    data["etlSteps"][1]["stepName"] = "Accounts"

    with pytest.raises(ConfigurationError, match="duplicate steps"):
        TemplateStore().register(MigrationTemplate.from_dict(data))


def test_get_unknown_template():
    with pytest.raises(ConfigurationError, match="Unknown template"):
        TemplateStore().get("missing")


def test_load_from_directory_skips_malformed_files(tmp_path):
    nested = tmp_path / "sales"
    nested.mkdir()
    (nested / "accounts.json").write_text(json.dumps(account_contact_template()))
    (tmp_path / "broken.json").write_text(json.dumps({"name": "no id"}))

    store = TemplateStore(str(tmp_path))

    assert store.list_templates() == ["account-with-contacts"]
    assert "account-with-contacts" in store


def test_load_from_missing_directory(tmp_path):
    assert TemplateStore().load_from_directory(str(tmp_path / "nope")) == 0


def test_example_templates_load_and_pass_static_checks():
    store = TemplateStore(str(Path(__file__).parent.parent / "examples" / "templates"))
    template = store.get("account-with-contacts")

    check_execution_order(template)
    check_placeholders(template)
    assert [s.step_name for s in template.ordered_steps()] == ["Accounts", "Contacts"]
