"""
Error kinds raised by the migration pipeline.

Every fatal condition carries the full batch of messages collected in its
stage, so a single run reports all missing reports or fields at once.
"""

from typing import Iterable, List, Union


class MigrationError(Exception):
    """Base class for fatal migration errors"""

    def __init__(self, messages: Union[str, Iterable[str]]):
        if isinstance(messages, str):
            messages = [messages]
        self.messages: List[str] = list(messages)
        super().__init__("\n".join(self.messages))


class ConfigurationError(MigrationError):
    """Config file or environment is missing or malformed"""


class AuthenticationError(MigrationError):
    """Login to an org failed (API or browser)"""


class MissingReportError(MigrationError):
    """One or more report templates do not exist in an org"""


class MissingSchemaReferenceError(MigrationError):
    """Custom fields or objects with no counterpart in the target org"""


class ExtractionError(MigrationError):
    """Layout data was never captured or submitted for some report versions"""


class CatalogQueryError(MigrationError):
    """Metadata query request failed"""
