#!/usr/bin/env python3
"""
Schema Resolver - maps source custom field ids to target custom field ids

Resolution runs in stages so each one can be checked on its own:

1. fetch the referenced CustomField records from the source catalog
2. fetch the custom objects owning them from the source catalog
3. find those objects in the target catalog by namespace and developer name
4. find the fields in the target catalog by natural key

Every stage issues at most one catalog query. Owning-object ids differ
between orgs, so custom objects are translated before fields are compared.
"""

import logging
from typing import Dict, Iterable, List, Set, Tuple

from .exceptions import MissingSchemaReferenceError
from .models import (
    FieldMetadata, NaturalKey, ObjectMetadata, canonical_id, is_custom_object_id
)

logger = logging.getLogger(__name__)


def collect_custom_object_ids(fields: Iterable[FieldMetadata]) -> Set[str]:
    """Distinct owning-object ids that denote custom objects"""
    return {f.table_enum_or_id for f in fields if is_custom_object_id(f.table_enum_or_id)}


def match_target_objects(source_objects: Iterable[ObjectMetadata],
                         target_objects: Iterable[ObjectMetadata]
                         ) -> Tuple[Dict[str, ObjectMetadata], List[str]]:
    """Pair source objects with target objects by (namespace, developer name).

    Returns the target object for every matched source object id (15 chars),
    and a message for every source object the target does not have.
    """
    targets_by_key = {}
    for target in target_objects:
        if target.object_key in targets_by_key:
            logger.warning(f"Duplicate custom object {target.api_name} in target catalog, keeping first")
            continue
        targets_by_key[target.object_key] = target

    matched = {}
    missing = []
    for source in source_objects:
        target = targets_by_key.get(source.object_key)
        if target is None:
            missing.append(f"custom object missing in target org: {source.api_name}")
            continue
        logger.info(f"Object {source.api_name}: source id {source.id}, target id {target.id}")
        matched[canonical_id(source.id)] = target

    return matched, missing


def build_natural_keys(fields: Iterable[FieldMetadata],
                       target_objects: Dict[str, ObjectMetadata]
                       ) -> Tuple[Dict[str, NaturalKey], List[str]]:
    """Natural key for every field whose owning object is known in the target.

    ``target_objects`` maps source object ids (15 chars) to target objects, as
    returned by ``match_target_objects``. Fields on standard objects use the
    object name as is.
    """
    keys = {}
    skipped = []
    for field in fields:
        table = field.table_enum_or_id
        if is_custom_object_id(table):
            target_object = target_objects.get(canonical_id(table))
            if target_object is None:
                skipped.append(f"custom field {field.api_name} skipped, owning object {table} "
                               f"has no counterpart in target org")
                continue
            table = target_object.api_name
        keys[canonical_id(field.id)] = NaturalKey.for_field(field, table)
    return keys, skipped


def match_target_fields(keys: Dict[str, NaturalKey],
                        target_fields: Iterable[FieldMetadata],
                        table_names: Dict[str, str]
                        ) -> Tuple[Dict[str, str], List[str]]:
    """Pair source field ids with target field ids by natural key.

    ``table_names`` maps target object ids (15 chars) to object API names, so
    target records can be keyed the same way as source fields.
    """
    targets_by_key = {}
    for target in target_fields:
        table = target.table_enum_or_id
        if is_custom_object_id(table):
            table = table_names.get(canonical_id(table), table)
        key = NaturalKey.for_field(target, table)
        if key in targets_by_key:
            logger.warning(f"Duplicate custom field {key.qualified_name} in target catalog, keeping first")
            continue
        targets_by_key[key] = target

    id_map = {}
    missing = []
    for source_id, key in keys.items():
        target = targets_by_key.get(key)
        if target is None:
            missing.append(f"custom field {key.qualified_name} is missing in target org")
            continue
        id_map[source_id] = canonical_id(target.id)

    return id_map, missing


class SchemaResolver:
    """Resolve field references against a source and a target catalog"""

    def __init__(self, source_catalog, target_catalog):
        self.source_catalog = source_catalog
        self.target_catalog = target_catalog

    def resolve(self, references: Iterable[str]) -> Dict[str, str]:
        """Build the source id -> target id map for ``references``.

        Raises MissingSchemaReferenceError listing every object and field the
        target org lacks; no partial map is returned in that case.
        """
        references = sorted({canonical_id(ref) for ref in references})
        if not references:
            logger.info("No custom field references to resolve")
            return {}

        logger.info(f"Resolving {len(references)} custom field references")
        source_fields = self.source_catalog.fetch_custom_fields(references)

        known = {canonical_id(f.id) for f in source_fields}
        for ref in references:
            if ref not in known:
                logger.warning(f"Field {ref} not found in source catalog, leaving it unchanged")

        object_ids = sorted(collect_custom_object_ids(source_fields))
        missing = []
        target_objects = {}
        if object_ids:
            logger.info(f"Looking up {len(object_ids)} custom objects: {object_ids}")
            source_objects = self.source_catalog.fetch_custom_objects(object_ids)

            found = {canonical_id(o.id) for o in source_objects}
            for object_id in object_ids:
                if canonical_id(object_id) not in found:
                    missing.append(f"custom object {object_id} not found in source org")

            if source_objects:
                candidates = self.target_catalog.find_custom_objects(
                    sorted({o.object_key for o in source_objects})
                )
                target_objects, missing_objects = match_target_objects(source_objects, candidates)
                missing.extend(missing_objects)

        keys, skipped = build_natural_keys(source_fields, target_objects)
        for message in skipped:
            logger.warning(message)

        id_map = {}
        if keys:
            # Target fields on custom objects are filtered by the target object id
            table_ids = {o.api_name: o.id for o in target_objects.values()}
            lookups = sorted({(table_ids.get(k.table, k.table), k.namespace_prefix, k.developer_name)
                              for k in keys.values()})
            target_fields = self.target_catalog.find_custom_fields(lookups)
            table_names = {canonical_id(o.id): o.api_name for o in target_objects.values()}
            id_map, missing_fields = match_target_fields(keys, target_fields, table_names)
            missing.extend(missing_fields)

        if missing:
            raise MissingSchemaReferenceError(missing)

        for source_id, target_id in sorted(id_map.items()):
            logger.info(f"Target org id of source custom field {source_id}: {target_id}")
        return id_map
