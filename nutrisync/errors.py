# -*- coding: utf-8 -*-
"""Failure types shared by the cache, the gateways and the stores."""

from __future__ import annotations

from typing import Optional


class SyncFailure(Exception):
    """Base for failures that are surfaced to callers as result values."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NetworkFailure(SyncFailure):
    """The remote service could not be reached or timed out."""


class RejectedByServer(SyncFailure):
    """The remote service refused the request (constraint, validation, auth)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


class StorageFailure(SyncFailure):
    """The durable cache could not be read or written."""


class StoreStateError(RuntimeError):
    pass


class RecordNotFound(KeyError):
    pass


class NotAuthenticated(PermissionError):
    pass
