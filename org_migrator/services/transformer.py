"""Transformation of source records into target payloads."""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .lookup_cache import LookupCache
from ..connections.base import OrgConnection
from ..models.execution import RecordError
from ..models.record import SourceRecord, TransformedRecord
from ..models.template import ETLStep, FieldMapping, LookupMapping, TransformationType
from ..soql import format_id_list

logger = logging.getLogger(__name__)

# Max values per IN (...) clause when prefetching lookups
LOOKUP_QUERY_CHUNK = 200


class TransformError(ValueError):
    """A single field could not be transformed."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class RecordTransformer:
    """
    Builds target payloads from source records.

    Supports:
    - Field mappings with direct, boolean, number and picklist coercion
    - Lookup mappings resolved through the run's lookup cache
    - Record type mapping to resolved target record type ids

    A record that cannot be transformed is reported with a per-record error
    and left out of the load; the rest of the step proceeds.
    """

    def __init__(self):
        """Initialize the transformer."""
        self._transforms = self._register_builtin_transforms()

    def _register_builtin_transforms(self) -> Dict[TransformationType, Callable[[Any, FieldMapping], Any]]:
        """Register all built-in transformation functions."""
        return {
            TransformationType.DIRECT: self._transform_direct,
            TransformationType.BOOLEAN: self._transform_boolean,
            TransformationType.NUMBER: self._transform_number,
            TransformationType.PICKLIST: self._transform_picklist,
        }

    async def prefetch_lookups(
        self,
        step: ETLStep,
        records: List[SourceRecord],
        cache: LookupCache,
        target: OrgConnection,
    ) -> Dict[Tuple[str, str, str], str]:
        """
        Query the target for lookup keys the cache does not hold yet.

        Keys already cached cost no query. Resolutions for cacheable
        mappings are written to the cache; the rest are returned for use
        by this step only.

        Returns:
            (object, key field, key) -> target id for non-cacheable mappings
        """
        local: Dict[Tuple[str, str, str], str] = {}

        for mapping in step.transform_config.lookup_mappings:
            values = [record.get_field(mapping.source_field) for record in records]
            if mapping.cache_results:
                wanted = cache.missing_keys(mapping.lookup_object, values, mapping.lookup_key_field)
            else:
                wanted = LookupCache().missing_keys(mapping.lookup_object, values)
            if not wanted:
                continue

            found = await self._query_target_ids(target, mapping, wanted)
            logger.info(
                f"Resolved {len(found)}/{len(wanted)} {mapping.lookup_object} lookups from the target org"
            )
            for key, target_id in found.items():
                if mapping.cache_results:
                    cache.put(mapping.lookup_object, key, target_id, mapping.lookup_key_field)
                else:
                    local[(mapping.lookup_object.lower(), mapping.lookup_key_field.lower(), key)] = target_id

        return local

    async def _query_target_ids(
        self,
        target: OrgConnection,
        mapping: LookupMapping,
        keys: List[str],
    ) -> Dict[str, str]:
        found: Dict[str, str] = {}
        for i in range(0, len(keys), LOOKUP_QUERY_CHUNK):
            chunk = keys[i:i + LOOKUP_QUERY_CHUNK]
            query = (
                f"SELECT Id, {mapping.lookup_key_field} FROM {mapping.lookup_object} "
                f"WHERE {mapping.lookup_key_field} IN ({format_id_list(chunk)})"
            )
            result = await target.query_all(query)
            for row in result.records:
                key = row.get(mapping.lookup_key_field)
                if key is not None:
                    found.setdefault(str(key), row["Id"])
        return found

    def transform(
        self,
        step: ETLStep,
        records: Iterable[SourceRecord],
        cache: LookupCache,
        local_lookups: Optional[Dict[Tuple[str, str, str], str]] = None,
    ) -> Tuple[List[TransformedRecord], List[RecordError]]:
        """
        Transform a step's extracted records.

        Args:
            step: Resolved step
            records: Extracted source records
            cache: Run lookup cache
            local_lookups: Step-local resolutions from prefetch_lookups

        Returns:
            (records to load, per-record errors for excluded records)
        """
        transformed: List[TransformedRecord] = []
        errors: List[RecordError] = []

        for record in records:
            result, problems = self.transform_record(step, record, cache, local_lookups or {})
            if problems:
                errors.append(RecordError(
                    record_id=record.id,
                    message="; ".join(str(p) for p in problems),
                    phase="transform",
                    code=problems[0].code,
                ))
                logger.debug(f"Excluded {record.id} from {step.step_name}: {errors[-1].message}")
            else:
                transformed.append(result)

        logger.info(
            f"Transformed {len(transformed)} {step.load_config.target_object} records"
            f" ({len(errors)} excluded)"
        )
        return transformed, errors

    def transform_record(
        self,
        step: ETLStep,
        record: SourceRecord,
        cache: LookupCache,
        local_lookups: Dict[Tuple[str, str, str], str],
    ) -> Tuple[Optional[TransformedRecord], List[TransformError]]:
        """Transform one record, collecting every problem found."""
        config = step.transform_config
        data: Dict[str, Any] = {}
        problems: List[TransformError] = []

        for field_mapping in config.field_mappings:
            value = record.get_field(field_mapping.source_field)
            if field_mapping.is_required and (value is None or value == ""):
                problems.append(TransformError(
                    "REQUIRED_FIELD_MISSING",
                    f"Required field {field_mapping.source_field} is empty",
                ))
                continue
            try:
                transform = self._transforms[field_mapping.transformation_type]
                data[field_mapping.target_field] = transform(value, field_mapping)
            except TransformError as e:
                problems.append(e)

        for lookup in config.lookup_mappings:
            value = record.get_field(lookup.source_field)
            if value is None or value == "":
                data[lookup.target_field] = None
                continue

            key = (lookup.lookup_object.lower(), lookup.lookup_key_field.lower(), str(value))
            target_id = local_lookups.get(key) or cache.get(lookup.lookup_object, value, lookup.lookup_key_field)
            if target_id:
                data[lookup.target_field] = target_id
            elif lookup.allow_null:
                logger.debug(f"{lookup.lookup_object} '{value}' not found for {record.id}, writing null")
                data[lookup.target_field] = None
            else:
                problems.append(TransformError(
                    "LOOKUP_NOT_FOUND",
                    f"Referenced {lookup.lookup_object} '{value}' does not exist in target org",
                ))

        record_type = config.record_type_mapping
        if record_type:
            source_type = record.get_field(record_type.source_field)
            if source_type in record_type.mapping_dictionary:
                data[record_type.target_field] = record_type.mapping_dictionary[source_type]
            elif source_type is not None:
                logger.debug(f"No record type mapping for '{source_type}' on {record.id}")

        external_id_field = step.load_config.external_id_field
        external_id = data.get(external_id_field)
        if external_id is None or external_id == "":
            problems.append(TransformError(
                "MISSING_EXTERNAL_ID",
                f"No value for upsert key {external_id_field}",
            ))

        if problems:
            return None, problems

        return TransformedRecord(
            source_id=record.id,
            target_object=step.load_config.target_object,
            data=data,
            external_id=str(external_id),
        ), []

    # Built-in transformation functions

    def _transform_direct(self, value: Any, mapping: FieldMapping) -> Any:
        return value

    def _transform_boolean(self, value: Any, mapping: FieldMapping) -> bool:
        # Only the exact string "true" counts; "TRUE" and " true" are false
        return value is True or value == "true" or value == 1

    def _transform_number(self, value: Any, mapping: FieldMapping) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            raise TransformError(
                "INVALID_NUMBER",
                f"{mapping.source_field} value '{value}' is not a number",
            )

    def _transform_picklist(self, value: Any, mapping: FieldMapping) -> Any:
        if value is None:
            return None
        dictionary = mapping.transformation_config.get("mappingDictionary") or {}
        return dictionary.get(str(value), value)
