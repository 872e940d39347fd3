#!/usr/bin/env python3
"""
Tooling API catalog client

Reads CustomField and CustomObject metadata from an org through the Tooling
query endpoint. Each lookup method issues a single SOQL query for the whole
batch of ids or keys it is given.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
from xml.sax.saxutils import escape

import requests
from bs4 import BeautifulSoup

from ..core.exceptions import AuthenticationError, CatalogQueryError
from ..core.models import FieldMetadata, ObjectMetadata

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = '55.0'
REQUEST_TIMEOUT = 60

SOAP_LOGIN_ENVELOPE = """<?xml version="1.0" encoding="utf-8"?>
<env:Envelope xmlns:xsd="http://www.w3.org/2001/XMLSchema"
    xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
    xmlns:env="http://schemas.xmlsoap.org/soap/envelope/">
  <env:Body>
    <n1:login xmlns:n1="urn:partner.soap.sforce.com">
      <n1:username>{username}</n1:username>
      <n1:password>{password}</n1:password>
    </n1:login>
  </env:Body>
</env:Envelope>"""


def soql_literal(value: Optional[str]) -> str:
    """Quote a value for use in a SOQL string comparison"""
    value = value or ''
    return "'" + value.replace('\\', '\\\\').replace("'", "\\'") + "'"


def _soap_value(soup: BeautifulSoup, tag: str) -> Optional[str]:
    """Text of the first ``tag`` element, whatever its namespace prefix"""
    element = soup.find(tag)
    text = element.get_text(strip=True) if element else ''
    return text or None


class ToolingCatalog:
    """Metadata catalog of one org"""

    def __init__(self, instance_url: str, access_token: str,
                 api_version: str = DEFAULT_API_VERSION,
                 session: Optional[requests.Session] = None,
                 label: str = 'org'):
        self.instance_url = instance_url.rstrip('/')
        self.access_token = access_token
        self.api_version = api_version
        self.label = label
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {access_token}',
            'Accept': 'application/json',
        })

    @classmethod
    def connect(cls, org, api_version: str = DEFAULT_API_VERSION,
                session: Optional[requests.Session] = None) -> 'ToolingCatalog':
        """Open a catalog for ``org``, logging in with a password when it has no token"""
        session = session or requests.Session()

        if org.access_token:
            logger.info(f"Using access token for {org.label} org")
            return cls(org.instance_url or org.login_url, org.access_token, api_version,
                       session=session, label=org.label)

        logger.info(f"Logging in to {org.label} org as {org.username}")
        access_token, server_url = cls.soap_login(
            session, org.login_url, org.username,
            f"{org.password}{org.security_token or ''}", api_version
        )
        parsed = urlparse(server_url)
        instance_url = f"{parsed.scheme}://{parsed.netloc}"
        org.access_token = access_token
        org.instance_url = instance_url
        return cls(instance_url, access_token, api_version, session=session, label=org.label)

    @staticmethod
    def soap_login(session: requests.Session, login_url: str, username: str,
                   password: str, api_version: str) -> Tuple[str, str]:
        """Username/password login; returns (session id, server url)"""
        url = f"{login_url.rstrip('/')}/services/Soap/u/{api_version}"
        body = SOAP_LOGIN_ENVELOPE.format(username=escape(username), password=escape(password))
        try:
            response = session.post(
                url,
                data=body.encode('utf-8'),
                headers={'Content-Type': 'text/xml; charset=UTF-8', 'SOAPAction': 'login'},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise AuthenticationError(f"Login request to {login_url} failed: {e}") from e

        soup = BeautifulSoup(response.text or '', 'xml')

        if response.status_code != 200:
            fault = _soap_value(soup, 'faultstring') or f"HTTP {response.status_code}"
            raise AuthenticationError(f"Login to {login_url} failed: {fault}")

        session_id = _soap_value(soup, 'sessionId')
        server_url = _soap_value(soup, 'serverUrl')
        if not session_id or not server_url:
            raise AuthenticationError(f"Login to {login_url} returned no session")
        return session_id, server_url

    @property
    def query_url(self) -> str:
        return f"{self.instance_url}/services/data/v{self.api_version}/tooling/query/"

    def _get(self, url: str, params: Optional[Dict] = None) -> Dict:
        try:
            response = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise CatalogQueryError(f"{self.label} org query failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError(f"{self.label} org rejected the session: {response.text}")
        if not response.ok:
            raise CatalogQueryError(
                f"{self.label} org query failed with HTTP {response.status_code}: {response.text}"
            )
        return response.json()

    def query(self, soql: str) -> List[Dict]:
        """Run a Tooling SOQL query and return all records, following pagination"""
        logger.debug(f"{self.label} org query: {soql}")
        payload = self._get(self.query_url, params={'q': soql})
        records = list(payload.get('records', []))

        while not payload.get('done', True) and payload.get('nextRecordsUrl'):
            payload = self._get(f"{self.instance_url}{payload['nextRecordsUrl']}")
            records.extend(payload.get('records', []))

        return records

    def fetch_custom_fields(self, field_ids: Sequence[str]) -> List[FieldMetadata]:
        if not field_ids:
            return []
        id_list = ', '.join(soql_literal(i) for i in field_ids)
        records = self.query(
            "SELECT Id, DeveloperName, NamespacePrefix, TableEnumOrId "
            f"FROM CustomField WHERE Id IN ({id_list})"
        )
        return [FieldMetadata.from_record(r) for r in records]

    def fetch_custom_objects(self, object_ids: Sequence[str]) -> List[ObjectMetadata]:
        if not object_ids:
            return []
        id_list = ', '.join(soql_literal(i) for i in object_ids)
        records = self.query(
            "SELECT Id, DeveloperName, NamespacePrefix "
            f"FROM CustomObject WHERE Id IN ({id_list})"
        )
        return [ObjectMetadata.from_record(r) for r in records]

    def find_custom_objects(self, keys: Iterable[Tuple[str, str]]) -> List[ObjectMetadata]:
        """Objects matching any (namespace prefix, developer name) pair"""
        clauses = [
            f"(DeveloperName = {soql_literal(name)} AND NamespacePrefix = {soql_literal(namespace)})"
            for namespace, name in keys
        ]
        if not clauses:
            return []
        records = self.query(
            "SELECT Id, DeveloperName, NamespacePrefix "
            f"FROM CustomObject WHERE {' OR '.join(clauses)}"
        )
        return [ObjectMetadata.from_record(r) for r in records]

    def find_custom_fields(self, keys: Iterable[Tuple[str, str, str]]) -> List[FieldMetadata]:
        """Fields matching any (table enum or id, namespace prefix, developer name) triple"""
        clauses = [
            f"(DeveloperName = {soql_literal(name)} AND TableEnumOrId = {soql_literal(table)} "
            f"AND NamespacePrefix = {soql_literal(namespace)})"
            for table, namespace, name in keys
        ]
        if not clauses:
            return []
        records = self.query(
            "SELECT Id, DeveloperName, NamespacePrefix, TableEnumOrId "
            f"FROM CustomField WHERE {' OR '.join(clauses)}"
        )
        return [FieldMetadata.from_record(r) for r in records]
