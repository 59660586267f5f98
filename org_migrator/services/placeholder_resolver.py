"""Placeholder resolution: turns a stored template into an executable plan."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Set, Tuple

from .dependency_graph import check_execution_order
from .schema_resolver import SchemaResolver
from ..connections.base import OrgConnection
from ..exceptions import ConfigurationError, SchemaResolutionError
from ..models.template import MigrationTemplate
from ..soql import format_id_list

logger = logging.getLogger(__name__)

EXTERNAL_ID_FIELD = "externalIdField"
TARGET_RECORD_TYPE_ID = "targetRecordTypeId"
SELECTED_RECORD_IDS = "selectedRecordIds"

KNOWN_PLACEHOLDERS = frozenset({EXTERNAL_ID_FIELD, TARGET_RECORD_TYPE_ID, SELECTED_RECORD_IDS})

# Filled per record when an issue message is rendered, not at plan resolution
MESSAGE_KEYS = frozenset({"errorMessage", "warningMessage"})
MESSAGE_PARAMETERS = frozenset({"sourceValue", "recordName"})

# Values under these keys name source org fields; everything else is target-side
SOURCE_KEYS = frozenset({"extractConfig", "dataIntegrityChecks", "sourceField", "fieldName"})

PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
RECORD_TYPE_PLACEHOLDER = "{" + TARGET_RECORD_TYPE_ID + "}"


@dataclass(frozen=True)
class ResolvedValues:
    """Concrete values for every placeholder in a template.

    ``source_external_id_field`` fills ``{externalIdField}`` in source-side
    fields and falls back to the target name when empty.
    """
    external_id_field: str
    selected_record_ids: Tuple[str, ...] = ()
    source_external_id_field: str = ""
    record_type_ids: Dict[Tuple[str, str], str] = field(default_factory=dict)  # (object, name) -> id
    record_type_errors: Dict[str, str] = field(default_factory=dict)  # step name -> message


@dataclass(frozen=True)
class ResolvedPlan:
    """A template with every placeholder substituted.

    Steps whose record types could not be resolved are listed in
    ``unresolved_steps``; the orchestrator fails them without running them.
    """
    template: MigrationTemplate
    external_id_field: str
    selected_record_ids: Tuple[str, ...] = ()
    unresolved_steps: Dict[str, str] = field(default_factory=dict)
    source_external_id_field: str = ""

    @property
    def template_id(self) -> str:
        return self.template.id


def _iter_strings(
    value: Any,
    key: Optional[str] = None,
    source: bool = False,
) -> Iterable[Tuple[Optional[str], str, bool]]:
    if isinstance(value, str):
        yield key, value, source
    elif isinstance(value, dict):
        for k, v in value.items():
            yield from _iter_strings(v, k, source or k in SOURCE_KEYS)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_strings(item, key, source)


def find_placeholders(template: MigrationTemplate, source_side: Optional[bool] = None) -> Set[str]:
    """
    Names of every ``{placeholder}`` used outside issue message text.

    Args:
        template: Template to scan
        source_side: True for source org fields only, False for target only
    """
    names: Set[str] = set()
    for key, text, source in _iter_strings(template.to_dict()):
        if source_side is not None and source != source_side:
            continue
        for name in PLACEHOLDER_PATTERN.findall(text):
            if key in MESSAGE_KEYS and name in MESSAGE_PARAMETERS:
                continue
            names.add(name)
    return names


def check_placeholders(template: MigrationTemplate) -> None:
    """
    Reject templates that reference placeholders the engine cannot fill.

    Raises:
        ConfigurationError: If an unrecognized placeholder appears anywhere
    """
    unknown = sorted(find_placeholders(template) - KNOWN_PLACEHOLDERS)
    if unknown:
        raise ConfigurationError(
            f"Template '{template.id}' uses unrecognized placeholder(s): "
            + ", ".join("{" + name + "}" for name in unknown)
        )


def _substitute(
    value: Any,
    replacements: Dict[str, str],
    source_replacements: Dict[str, str],
    source: bool = False,
) -> Any:
    if isinstance(value, str):
        active = source_replacements if source else replacements

        def replace(match: "re.Match") -> str:
            return active.get(match.group(1), match.group(0))
        return PLACEHOLDER_PATTERN.sub(replace, value)
    if isinstance(value, dict):
        return {
            k: _substitute(v, replacements, source_replacements, source or k in SOURCE_KEYS)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_substitute(item, replacements, source_replacements, source) for item in value]
    return value


def resolve_plan(template: MigrationTemplate, values: ResolvedValues) -> ResolvedPlan:
    """
    Substitute every placeholder in a template.

    Pure function: the stored template is not modified and no org is accessed.

    Args:
        template: Stored template
        values: Concrete placeholder values

    Returns:
        The resolved plan

    Raises:
        ConfigurationError: On an invalid execution order or an unrecognized placeholder
    """
    check_execution_order(template)
    check_placeholders(template)
    if EXTERNAL_ID_FIELD in find_placeholders(template) and not values.external_id_field:
        raise ConfigurationError(f"Template '{template.id}' needs an external id field but none was resolved")

    replacements = {
        EXTERNAL_ID_FIELD: values.external_id_field,
        SELECTED_RECORD_IDS: format_id_list(values.selected_record_ids),
    }
    source_external_id_field = values.source_external_id_field or values.external_id_field
    source_replacements = dict(replacements, **{EXTERNAL_ID_FIELD: source_external_id_field})
    data = template.to_dict()
    unresolved = dict(values.record_type_errors)

    for step_data in data["etlSteps"]:
        record_type = step_data["transformConfig"].get("recordTypeMapping")
        if not record_type:
            continue

        target_object = step_data["loadConfig"]["targetObject"]
        resolved_dictionary = {}
        for source_name, target_value in record_type["mappingDictionary"].items():
            if target_value != RECORD_TYPE_PLACEHOLDER:
                resolved_dictionary[source_name] = target_value
                continue
            record_type_id = values.record_type_ids.get((target_object, source_name))
            if record_type_id:
                resolved_dictionary[source_name] = record_type_id
            else:
                unresolved.setdefault(
                    step_data["stepName"],
                    f"Record type '{source_name}' could not be resolved on {target_object}",
                )
        record_type["mappingDictionary"] = resolved_dictionary

    data = _substitute(data, replacements, source_replacements)
    resolved = MigrationTemplate.from_dict(data)

    leftover = find_placeholders(resolved) & KNOWN_PLACEHOLDERS
    if leftover:
        raise ConfigurationError(
            f"Placeholders left unresolved in '{template.id}': {', '.join(sorted(leftover))}"
        )

    return ResolvedPlan(
        template=resolved,
        external_id_field=values.external_id_field,
        selected_record_ids=tuple(values.selected_record_ids),
        unresolved_steps=unresolved,
        source_external_id_field=source_external_id_field,
    )


class PlaceholderResolver:
    """Gathers placeholder values from the orgs and resolves plans."""

    def __init__(self, schema_resolver: SchemaResolver):
        self.schema_resolver = schema_resolver

    async def collect_values(
        self,
        template: MigrationTemplate,
        target: OrgConnection,
        selected_record_ids: Sequence[str],
        source: Optional[OrgConnection] = None,
    ) -> ResolvedValues:
        """
        Look up everything the template's placeholders need.

        The external id field is looked up on the target object of the first
        step in execution order. When source-side fields use it too and a
        source connection is given, the source object of that step is checked
        separately; the two orgs may carry different variants. Each
        distinct record type name is resolved once per object; failures are
        attached to the steps that need them.

        Raises:
            SchemaResolutionError: If no external id field variant exists
        """
        external_id_field = ""
        source_external_id_field = ""
        if EXTERNAL_ID_FIELD in find_placeholders(template):
            first_step = (template.ordered_steps() or list(template.etl_steps))[0]
            external_id_field = await self.schema_resolver.resolve_external_id_field(
                target, first_step.load_config.target_object
            )
            if source is not None and EXTERNAL_ID_FIELD in find_placeholders(template, source_side=True):
                source_external_id_field = await self.schema_resolver.resolve_external_id_field(
                    source, first_step.extract_config.object_api_name
                )
                if source_external_id_field != external_id_field:
                    logger.info(
                        f"External id field is {source_external_id_field} in the source org "
                        f"and {external_id_field} in the target org"
                    )

        record_type_ids: Dict[Tuple[str, str], str] = {}
        record_type_errors: Dict[str, str] = {}
        failed: Dict[Tuple[str, str], str] = {}

        for step in template.etl_steps:
            mapping = step.transform_config.record_type_mapping
            if not mapping:
                continue
            target_object = step.load_config.target_object
            for source_name, target_value in mapping.mapping_dictionary.items():
                if target_value != RECORD_TYPE_PLACEHOLDER:
                    continue
                key = (target_object, source_name)
                if key not in record_type_ids and key not in failed:
                    try:
                        record_type_ids[key] = await self.schema_resolver.resolve_record_type_id(
                            target, target_object, source_name
                        )
                    except SchemaResolutionError as e:
                        logger.warning(f"Step {step.step_name}: {e}")
                        failed[key] = str(e)
                if key in failed:
                    record_type_errors.setdefault(step.step_name, failed[key])

        return ResolvedValues(
            external_id_field=external_id_field,
            selected_record_ids=tuple(selected_record_ids),
            source_external_id_field=source_external_id_field,
            record_type_ids=record_type_ids,
            record_type_errors=record_type_errors,
        )

    async def resolve(
        self,
        template: MigrationTemplate,
        target: OrgConnection,
        selected_record_ids: Sequence[str],
        source: Optional[OrgConnection] = None,
    ) -> ResolvedPlan:
        """Static checks, value collection and substitution in one call."""
        check_execution_order(template)
        check_placeholders(template)
        values = await self.collect_values(template, target, selected_record_ids, source)
        return resolve_plan(template, values)
