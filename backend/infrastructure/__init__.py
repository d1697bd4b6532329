"""Infrastructure layer exports."""

from .action_log import ActionLog
from .classifier import (
    ClassifierClient,
    ClassifierError,
    HttpClassifierClient,
    close_classifier_client,
    configure_classifier_client,
    get_classifier_client,
)
from .meta_store import FileMetaStore, InMemoryMetaStore, MetaStore

__all__ = [
    "ActionLog",
    "ClassifierClient",
    "ClassifierError",
    "FileMetaStore",
    "HttpClassifierClient",
    "InMemoryMetaStore",
    "MetaStore",
    "close_classifier_client",
    "configure_classifier_client",
    "get_classifier_client",
]
