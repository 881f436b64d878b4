"""Error hierarchy shared by every pipeline component.

Each error renders as a short ``title`` plus ``message`` pair so a caller can
show it directly and offer a retry action.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class PipelineError(Exception):
    """Base class for project-specific exceptions."""

    title = "Unexpected Error"

    def __init__(self, message: str = "", *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message or self.title)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    @property
    def message(self) -> str:
        text = str(self.args[0]) if self.args else ""
        if self.cause is not None and text == self.title:
            return str(self.cause) or self.title
        return text


class ConfigurationError(PipelineError):
    """Missing API key or malformed endpoint. Never retried."""

    title = "Configuration Error"


class TransportError(PipelineError):
    """Network failure, timeout or non-success HTTP status."""

    title = "Network Error"

    def __init__(self, message: str = "", *, status_code: Optional[int] = None, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, cause=cause)
        self.status_code = status_code


class DecodingError(PipelineError):
    """Response body could not be decoded into the expected shape."""

    title = "Invalid Response"


class CollaboratorError(PipelineError):
    """Reminder or calendar store rejected the request."""

    title = "Reminder Error"


class PermissionsMissing(CollaboratorError):
    title = "Check Permissions in Settings"


class TranscriptionFailed(PipelineError):
    title = "Transcription Error"


class EmbeddingsFailed(PipelineError):
    title = "Embeddings Error"


class ClassificationFailed(PipelineError):
    title = "Classification Error"


class ResponseFailed(PipelineError):
    title = "GPT Error"


class VectorStoreErrorKind(str, Enum):
    UPSERT_FAILED = "upsert_failed"
    DELETE_FAILED = "delete_failed"
    QUERY_FAILED = "query_failed"
    REFRESH_FAILED = "refresh_failed"


_VECTOR_TITLES = {
    VectorStoreErrorKind.UPSERT_FAILED: "Save Error",
    VectorStoreErrorKind.DELETE_FAILED: "Delete Error",
    VectorStoreErrorKind.QUERY_FAILED: "Search Error",
    VectorStoreErrorKind.REFRESH_FAILED: "Load Error",
}


class VectorStoreError(PipelineError):
    def __init__(self, kind: VectorStoreErrorKind, message: str = "", *, cause: Optional[BaseException] = None) -> None:
        self.kind = kind
        super().__init__(message or _VECTOR_TITLES[kind], cause=cause)

    @property
    def title(self) -> str:  # type: ignore[override]
        return _VECTOR_TITLES[self.kind]

    @classmethod
    def upsert_failed(cls, cause: BaseException) -> "VectorStoreError":
        return cls(VectorStoreErrorKind.UPSERT_FAILED, cause=cause)

    @classmethod
    def delete_failed(cls, cause: BaseException) -> "VectorStoreError":
        return cls(VectorStoreErrorKind.DELETE_FAILED, cause=cause)

    @classmethod
    def query_failed(cls, cause: BaseException) -> "VectorStoreError":
        return cls(VectorStoreErrorKind.QUERY_FAILED, cause=cause)

    @classmethod
    def refresh_failed(cls, cause: BaseException) -> "VectorStoreError":
        return cls(VectorStoreErrorKind.REFRESH_FAILED, cause=cause)
