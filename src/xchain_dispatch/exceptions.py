"""Exception hierarchy for the cross-chain dispatch core."""

from typing import Any


class DispatchError(Exception):
    """Base exception for all dispatch core errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DispatchError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class BuildError(DispatchError):
    """Raised when an action block cannot be turned into transactions."""

    def __init__(
        self,
        message: str,
        block_id: str | None = None,
        block_type: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.block_id = block_id
        self.block_type = block_type


class EstimationError(DispatchError):
    """Raised when a cost estimate cannot be produced."""

    def __init__(self, message: str, chain_id: int | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.chain_id = chain_id


class SubmissionError(DispatchError):
    """Raised when a signer or gateway refuses a submission."""

    def __init__(self, message: str, chain_id: int | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.chain_id = chain_id


class ReconciliationError(DispatchError):
    """Raised when the chain cannot be queried for a submitted transaction."""

    def __init__(
        self,
        message: str,
        chain_id: int | None = None,
        hash: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.chain_id = chain_id
        self.hash = hash


class NetworkError(DispatchError):
    """Raised when network/connection issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class StorageError(DispatchError):
    """Raised when the persisted ledger cannot be decoded or encoded."""

    def __init__(self, message: str, key: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.key = key


class LeaseError(DispatchError):
    """Raised when another dispatcher owns the ledger lease."""

    def __init__(self, message: str, owner: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.owner = owner
