"""Application services."""

from .documents import DocumentService, get_document_service, reset_document_service

__all__ = [
    "DocumentService",
    "get_document_service",
    "reset_document_service",
]
