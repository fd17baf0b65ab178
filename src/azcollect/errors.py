"""Collector exceptions and remote error classification.

Public API (the "studs"):
    CollectorError: Base exception
    ParallelFetchError: One or more items of a parallel pass failed
    StackClassificationError: A stack was classified twice
    ResourceSourceConflictError: Stack resources from two sources
    ConfigError: Invalid collector configuration
    SnapshotStoreError: Snapshot store could not be read
    ErrorKind: Classes of remote errors the collector understands
    classify_error: Map an exception to its ErrorKind
"""

from enum import StrEnum
from typing import Any

import requests
from azure.core.exceptions import HttpResponseError, ResourceExistsError, ResourceNotFoundError


class CollectorError(Exception):
    """Base exception for inventory collection failures."""

    pass


class ParallelFetchError(CollectorError):
    """Raised after a parallel pass in which at least one item failed.

    Sibling items always run to completion, so ``results`` holds every
    successful item and ``failures`` every failed one, both keyed by item.
    """

    def __init__(self, name: str, results: dict[Any, Any], failures: dict[Any, BaseException]):
        self.name = name
        self.results = results
        self.failures = failures
        first_key, first_error = next(iter(failures.items()))
        super().__init__(
            f"{name}: {len(failures)} of {len(failures) + len(results)} items failed "
            f"(first: {first_key!r}: {type(first_error).__name__}: {first_error})"
        )


class StackClassificationError(CollectorError):
    """Raised when a stack that already has a classification is classified again."""

    pass


class ResourceSourceConflictError(CollectorError):
    """Raised when stack resources would be stored from both the snapshot and the API."""

    pass


class ConfigError(CollectorError):
    """Raised when configuration loading or validation fails."""

    pass


class SnapshotStoreError(CollectorError):
    """Raised when the snapshot store cannot be queried."""

    pass


class ErrorKind(StrEnum):
    """Error classes that may be converted into soft failures."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSPORT = "transport"
    MALFORMED = "malformed"


def classify_error(error: BaseException) -> ErrorKind | None:
    """Classify an exception raised by a remote call.

    Args:
        error: Exception raised by the Cloud API client or template download

    Returns:
        Matching ErrorKind, or None for errors the collector never softens
        (authentication, throttling, server errors, programming errors)

    Example:
        >>> classify_error(ResourceNotFoundError("gone"))
        <ErrorKind.NOT_FOUND: 'not_found'>
    """
    if isinstance(error, ResourceNotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(error, ResourceExistsError):
        return ErrorKind.CONFLICT
    if isinstance(error, HttpResponseError):
        if error.status_code == 404:
            return ErrorKind.NOT_FOUND
        if error.status_code == 409:
            return ErrorKind.CONFLICT
        return None
    if isinstance(error, requests.RequestException):
        return ErrorKind.TRANSPORT
    # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
    if isinstance(error, ValueError):
        return ErrorKind.MALFORMED
    return None


__all__ = [
    "CollectorError",
    "ConfigError",
    "ErrorKind",
    "ParallelFetchError",
    "ResourceSourceConflictError",
    "SnapshotStoreError",
    "StackClassificationError",
    "classify_error",
]
