"""
Typed errors raised along the generation path.

Every error carries a stable ``code`` (returned to the client), the HTTP
status it maps to, and optional diagnostic ``details`` (upstream payloads,
size limits...). ``main.py`` renders them as::

    {"detail": {"error": <message>, "code": <code>, ...details}}
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Codes d'erreur exposés aux clients."""

    # Entrée
    BAD_FORMDATA = "BAD_FORMDATA"
    BAD_MODEL_TIER = "BAD_MODEL_TIER"
    BAD_ACTION = "BAD_ACTION"
    SCENE_TOO_LARGE = "SCENE_TOO_LARGE"
    REF_TOO_LARGE = "REF_TOO_LARGE"

    # Accès / financement
    UNAUTH = "UNAUTH"
    NOT_ENOUGH_TOKENS = "NOT_ENOUGH_TOKENS"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"

    # Fournisseur
    PROVIDER_ERROR = "PROVIDER_ERROR"
    NO_IMAGE_RETURNED = "NO_IMAGE_RETURNED"
    MODEL_TIMEOUT = "MODEL_TIMEOUT"

    # Persistance
    UPLOAD_FAILED = "UPLOAD_FAILED"
    DB_INSERT_FAILED = "DB_INSERT_FAILED"

    # Internes
    LEDGER_FAILURE = "LEDGER_FAILURE"
    PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"
    SIGN_FAILED = "SIGN_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class GenerationError(Exception):
    status_code: int = 500
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ):
        if code is not None:
            self.code = code
        self.message = message or self.code.value
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code.value, **self.details}


class InvalidInput(GenerationError):
    status_code = 400
    code = ErrorCode.BAD_FORMDATA


class PayloadTooLarge(GenerationError):
    status_code = 413
    code = ErrorCode.SCENE_TOO_LARGE


class NotEnoughTokens(GenerationError):
    status_code = 403
    code = ErrorCode.NOT_ENOUGH_TOKENS


class Forbidden(GenerationError):
    status_code = 403
    code = ErrorCode.FORBIDDEN


class NotFound(GenerationError):
    status_code = 404
    code = ErrorCode.NOT_FOUND


class RateLimited(GenerationError):
    status_code = 429
    code = ErrorCode.RATE_LIMITED


class ProviderError(GenerationError):
    status_code = 502
    code = ErrorCode.PROVIDER_ERROR


class NoImageReturned(ProviderError):
    code = ErrorCode.NO_IMAGE_RETURNED


class ModelTimeout(GenerationError):
    status_code = 504
    code = ErrorCode.MODEL_TIMEOUT


class UploadFailed(GenerationError):
    code = ErrorCode.UPLOAD_FAILED


class DbInsertFailed(GenerationError):
    code = ErrorCode.DB_INSERT_FAILED


class LedgerFailure(GenerationError):
    code = ErrorCode.LEDGER_FAILURE


class ProviderNotConfigured(GenerationError):
    code = ErrorCode.PROVIDER_NOT_CONFIGURED


class InternalError(GenerationError):
    code = ErrorCode.INTERNAL_ERROR
