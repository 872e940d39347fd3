#!/usr/bin/env python3
"""
Data model shared by the resolver, the catalog client and the pipeline
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

# Report templates only carry 15 character ids
CANONICAL_ID_LENGTH = 15

# Key prefix of CustomObject ids; anything else in TableEnumOrId is a standard object name
CUSTOM_OBJECT_ID_PREFIX = '01I'

SUPPORTED_SUBTYPES = {
    'SA_WO': 'Service Appointment for Work Order',
    'SA_WOLI': 'Service Appointment for Work Order Line Item',
    'WO': 'Work Order',
    'WOLI': 'Work Order Line Item',
}


def canonical_id(record_id: str) -> str:
    """Truncate an 18 character id to its 15 character form"""
    return record_id[:CANONICAL_ID_LENGTH]


def is_custom_object_id(table_enum_or_id: Optional[str]) -> bool:
    """True when TableEnumOrId holds a custom object id rather than a standard object name"""
    return bool(table_enum_or_id) and table_enum_or_id.startswith(CUSTOM_OBJECT_ID_PREFIX)


def report_version_name(report_name: str, subtype: str) -> str:
    """Name of one (report, subtype) pair, used in logs and dump file names"""
    return f"{report_name}_{subtype}"


def _api_name(namespace_prefix: Optional[str], developer_name: str) -> str:
    """API name of a custom field or object, e.g. ``ns__Name__c``"""
    namespace = f"{namespace_prefix}__" if namespace_prefix else ''
    return f"{namespace}{developer_name}__c"


@dataclass
class FieldMetadata:
    """CustomField record from a Tooling catalog"""
    id: str
    developer_name: str
    namespace_prefix: Optional[str]
    table_enum_or_id: str

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'FieldMetadata':
        return cls(
            id=record['Id'],
            developer_name=record['DeveloperName'],
            namespace_prefix=record.get('NamespacePrefix'),
            table_enum_or_id=record['TableEnumOrId'],
        )

    @property
    def api_name(self) -> str:
        return _api_name(self.namespace_prefix, self.developer_name)


@dataclass
class ObjectMetadata:
    """CustomObject record from a Tooling catalog"""
    id: str
    developer_name: str
    namespace_prefix: Optional[str]

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'ObjectMetadata':
        return cls(
            id=record['Id'],
            developer_name=record['DeveloperName'],
            namespace_prefix=record.get('NamespacePrefix'),
        )

    @property
    def api_name(self) -> str:
        return _api_name(self.namespace_prefix, self.developer_name)

    @property
    def object_key(self) -> tuple:
        """Org-independent identity of the object"""
        return (self.namespace_prefix or '', self.developer_name)


@dataclass(frozen=True)
class NaturalKey:
    """Org-independent identity of a custom field"""
    table: str
    namespace_prefix: str
    developer_name: str

    @classmethod
    def for_field(cls, field: FieldMetadata, table: str) -> 'NaturalKey':
        return cls(
            table=table,
            namespace_prefix=field.namespace_prefix or '',
            developer_name=field.developer_name,
        )

    @property
    def qualified_name(self) -> str:
        return f"{self.table}.{_api_name(self.namespace_prefix, self.developer_name)}"


@dataclass
class ImagePolicy:
    """What to do with images embedded in source layouts"""
    strip: bool = False
    replacement: str = ''
