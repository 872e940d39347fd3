"""Shared fakes for catalog, browser and HTTP tests."""

import pytest

from template_migrator.core.models import (
    FieldMetadata, ImagePolicy, ObjectMetadata, canonical_id
)
from template_migrator.config import MigrationConfig, OrgSettings


class FakeCatalog:
    """In-memory catalog that records every lookup it receives."""

    def __init__(self, fields=(), objects=()):
        self.fields = list(fields)
        self.objects = list(objects)
        self.calls = []

    def fetch_custom_fields(self, field_ids):
        self.calls.append(('fetch_custom_fields', list(field_ids)))
        wanted = {canonical_id(i) for i in field_ids}
        return [f for f in self.fields if canonical_id(f.id) in wanted]

    def fetch_custom_objects(self, object_ids):
        self.calls.append(('fetch_custom_objects', list(object_ids)))
        wanted = {canonical_id(i) for i in object_ids}
        return [o for o in self.objects if canonical_id(o.id) in wanted]

    def find_custom_objects(self, keys):
        keys = list(keys)
        self.calls.append(('find_custom_objects', keys))
        return [o for o in self.objects if o.object_key in set(keys)]

    def find_custom_fields(self, keys):
        keys = list(keys)
        self.calls.append(('find_custom_fields', keys))
        wanted = {(canonical_id(table), namespace, name) for table, namespace, name in keys}
        return [
            f for f in self.fields
            if (canonical_id(f.table_enum_or_id), f.namespace_prefix or '', f.developer_name) in wanted
        ]

    def calls_to(self, name):
        return [args for call, args in self.calls if call == name]


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=''):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        return self._payload


class FakeSession:
    """Stand-in for requests.Session returning queued responses."""

    def __init__(self, get_responses=(), post_responses=()):
        self.headers = {}
        self.get_responses = list(get_responses)
        self.post_responses = list(post_responses)
        self.get_calls = []
        self.post_calls = []

    def get(self, url, params=None, timeout=None):
        self.get_calls.append((url, params))
        return self.get_responses.pop(0)

    def post(self, url, data=None, headers=None, timeout=None):
        self.post_calls.append((url, data, headers))
        return self.post_responses.pop(0)


def make_field(field_id, developer_name, table, namespace=None):
    return FieldMetadata(id=field_id, developer_name=developer_name,
                         namespace_prefix=namespace, table_enum_or_id=table)


def make_object(object_id, developer_name, namespace=None):
    return ObjectMetadata(id=object_id, developer_name=developer_name, namespace_prefix=namespace)


def layout_param(json_text):
    """Percent-encode a JSON snippet the way the editor posts it."""
    from urllib.parse import quote
    return 'j_id0%3Af%3AjsonLayout=' + quote(json_text, safe='')


@pytest.fixture
def migration_config(tmp_path):
    return MigrationConfig(
        report_names=['Visit Report'],
        subtypes=['WO'],
        timeout_between_actions=0,
        error_log_filename=str(tmp_path / 'errors.log'),
        image_policy=ImagePolicy(),
    )


@pytest.fixture
def orgs():
    return {
        'source': OrgSettings(label='source', login_url='https://source.example.com', access_token='SRC'),
        'target': OrgSettings(label='target', login_url='https://target.example.com', access_token='TGT'),
    }
