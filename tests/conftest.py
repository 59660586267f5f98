"""Shared fixtures: an in-memory org and a two-step template."""

import copy
import re
from typing import Any, Dict, Iterable, List, Optional

import pytest

from org_migrator.connections.base import OrgConnection
from org_migrator.engine import MigrationEngine, MigrationRequest
from org_migrator.models.record import get_field_value
from org_migrator.models.template import MigrationTemplate
from org_migrator.orchestrator import RunLock
from org_migrator.services.template_store import TemplateStore

EXTERNAL_ID = "External_ID_Data_Creation__c"

_FROM = re.compile(r"\bFROM\s+(\w+)", re.IGNORECASE)
_IN = re.compile(r"([\w.]+)\s+IN\s*\(([^)]*)\)", re.IGNORECASE)
_EQUALS = re.compile(r"([\w.]+)\s*=\s*'((?:[^'\\]|\\.)*)'")
_LITERAL = re.compile(r"'((?:[^'\\]|\\.)*)'")


class FakeOrg(OrgConnection):
    """
    In-memory org.

    Queries are answered from ``tables`` by object name, honouring
    ``field IN (...)`` and ``field = '...'`` conditions and nothing else.
    Upserts match rows on the external id field. ``upsert_errors`` maps an
    external id value to error codes returned on successive attempts.
    """

    def __init__(
        self,
        org_id: str,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        describes: Optional[Dict[str, Iterable[Any]]] = None,
        instance_url: str = "https://fake.my.salesforce.com",
    ):
        super().__init__(org_id=org_id, instance_url=instance_url)
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.describes = copy.deepcopy(describes or {})
        self.queries: List[str] = []
        self.upsert_calls: List[Dict[str, Any]] = []
        self.delete_calls: List[str] = []
        self.upsert_errors: Dict[str, List[str]] = {}
        self.permanent_errors: Dict[str, str] = {}
        self.gate = None
        self._next_id = 1

    def _rows(self, soql: str) -> List[Dict[str, Any]]:
        match = _FROM.search(soql)
        rows = self.tables.get(match.group(1), []) if match else []
        where = re.split(r"\bWHERE\b", soql, maxsplit=1, flags=re.IGNORECASE)
        conditions = []
        if len(where) == 2:
            for field_name, values in _IN.findall(where[1]):
                conditions.append((field_name, set(_LITERAL.findall(values))))
            for field_name, value in _EQUALS.findall(where[1]):
                conditions.append((field_name, {value}))

        return [
            copy.deepcopy(row) for row in rows
            if all(str(get_field_value(row, f)) in allowed for f, allowed in conditions)
        ]

    async def query_pages(self, soql, page_size=200):
        self.queries.append(soql)
        if self.gate is not None:
            await self.gate.wait()
        rows = self._rows(soql)
        for i in range(0, len(rows), page_size):
            yield rows[i:i + page_size]

    async def describe(self, object_name):
        fields = []
        for f in self.describes.get(object_name, ()):
            fields.append(f if isinstance(f, dict) else {"name": f})
        return {"name": object_name, "fields": fields}

    def _new_id(self, object_name: str) -> str:
        record_id = f"{object_name[:3].upper()}{self._next_id:06d}"
        self._next_id += 1
        return record_id

    async def bulk_upsert(self, object_name, external_id_field, records, serial=False):
        self.upsert_calls.append({"object": object_name, "records": copy.deepcopy(records), "serial": serial})
        table = self.tables.setdefault(object_name, [])
        results = []

        for record in records:
            key = record.get(external_id_field)
            scripted = self.upsert_errors.get(key)
            if scripted:
                code = scripted.pop(0)
                results.append({"success": False, "errors": [{"statusCode": code, "message": f"{code} on {key}"}]})
                continue
            if key in self.permanent_errors:
                code = self.permanent_errors[key]
                results.append({"success": False, "errors": [{"statusCode": code, "message": f"{code} on {key}"}]})
                continue

            existing = next((row for row in table if row.get(external_id_field) == key), None)
            if existing is not None:
                existing.update(record)
                results.append({"success": True, "created": False, "id": existing["Id"], "errors": []})
            else:
                row = dict(record, Id=self._new_id(object_name))
                table.append(row)
                results.append({"success": True, "created": True, "id": row["Id"], "errors": []})

        return results

    async def bulk_delete(self, object_name, record_ids):
        self.delete_calls.append(object_name)
        table = self.tables.get(object_name, [])
        results = []
        for record_id in record_ids:
            before = len(table)
            table[:] = [row for row in table if row.get("Id") != record_id]
            results.append({"success": len(table) < before, "id": record_id, "errors": []})
        return results


def account_contact_template(**overrides) -> Dict[str, Any]:
    """Accounts selected by id, then their Contacts with a lookup to the account."""
    contact_load = {
        "targetObject": "Contact",
        "externalIdField": "{externalIdField}",
        "batchSize": 200,
        "retryConfig": {"maxRetries": 3, "retryWaitSeconds": 0},
    }
    contact_load.update(overrides.pop("contact_load", {}))
    data = {
        "id": "account-with-contacts",
        "name": "Account with Contacts",
        "description": "Copies accounts and their contacts",
        "category": "sales",
        "executionOrder": ["Accounts", "Contacts"],
        "etlSteps": [
            {
                "stepName": "Accounts",
                "stepOrder": 1,
                "extractConfig": {
                    "soqlQuery": "SELECT Id, Name, Type FROM Account WHERE Id IN ({selectedRecordIds})",
                    "objectApiName": "Account",
                },
                "transformConfig": {
                    "fieldMappings": [
                        {"sourceField": "Id", "targetField": "{externalIdField}"},
                        {"sourceField": "Name", "targetField": "Name", "isRequired": True},
                    ],
                },
                "loadConfig": {
                    "targetObject": "Account",
                    "externalIdField": "{externalIdField}",
                    "retryConfig": {"maxRetries": 3, "retryWaitSeconds": 0},
                },
            },
            {
                "stepName": "Contacts",
                "stepOrder": 2,
                "dependencies": ["Accounts"],
                "extractConfig": {
                    "soqlQuery": "SELECT Id, LastName, AccountId FROM Contact",
                    "objectApiName": "Contact",
                    "selectionField": "AccountId",
                },
                "transformConfig": {
                    "fieldMappings": [
                        {"sourceField": "Id", "targetField": "{externalIdField}"},
                        {"sourceField": "LastName", "targetField": "LastName"},
                    ],
                    "lookupMappings": [
                        {
                            "sourceField": "AccountId",
                            "targetField": "AccountId",
                            "lookupObject": "Account",
                            "lookupKeyField": "{externalIdField}",
                        }
                    ],
                },
                "loadConfig": contact_load,
            },
        ],
    }
    data.update(overrides)
    return data


SOURCE_TABLES = {
    "Account": [
        {"attributes": {"type": "Account"}, "Id": "001A", "Name": "Acme", "Type": "Customer"},
        {"attributes": {"type": "Account"}, "Id": "001B", "Name": "Globex", "Type": "Partner"},
    ],
    "Contact": [
        {"Id": "003A", "LastName": "Smith", "AccountId": "001A"},
        {"Id": "003B", "LastName": "Jones", "AccountId": "001B"},
        {"Id": "003C", "LastName": "Brown", "AccountId": "001B"},
    ],
}

TARGET_DESCRIBES = {
    "Account": ["Id", "Name", EXTERNAL_ID],
    "Contact": ["Id", "LastName", "AccountId", "RecordTypeId", EXTERNAL_ID],
}


@pytest.fixture
def source_org():
    return FakeOrg("00DSOURCE", tables=SOURCE_TABLES, instance_url="https://source.my.salesforce.com")


@pytest.fixture
def target_org():
    return FakeOrg("00DTARGET", describes=TARGET_DESCRIBES, instance_url="https://target.my.salesforce.com")


@pytest.fixture
def run_lock():
    return RunLock()


@pytest.fixture
def make_engine(source_org, target_org, run_lock):
    """Build an engine over the fake orgs with the given template dicts."""

    def factory(*templates: Dict[str, Any], **kwargs) -> MigrationEngine:
        store = TemplateStore()
        for data in templates or (account_contact_template(),):
            store.register(MigrationTemplate.from_dict(data))
        orgs = {source_org.org_id: source_org, target_org.org_id: target_org}
        kwargs.setdefault("run_lock", run_lock)
        return MigrationEngine(store, orgs.__getitem__, **kwargs)

    return factory


@pytest.fixture
def request_for(source_org, target_org):
    def factory(*record_ids: str, template_id: str = "account-with-contacts") -> MigrationRequest:
        return MigrationRequest(
            template_id=template_id,
            source_org_id=source_org.org_id,
            target_org_id=target_org.org_id,
            selected_record_ids=list(record_ids),
        )

    return factory
