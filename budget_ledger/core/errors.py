"""Error taxonomy of the ledger.

Every error carries a human message and a machine-readable ``kind``; the API
layer renders them as ``{"detail": message, "kind": kind, ...extra}`` with the
class' HTTP status.
"""


class LedgerError(Exception):
    kind = "ledger_error"
    status_code = 400

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict:
        payload = {"detail": self.message, "kind": self.kind}
        payload.update(self.extra)
        return payload


class ValidationError(LedgerError):
    kind = "validation_error"
    status_code = 400


class NotFoundError(LedgerError):
    kind = "not_found"
    status_code = 404


class SystemTransactionImmutable(LedgerError):
    kind = "system_transaction_immutable"
    status_code = 403

    def __init__(self, message: str = "System transactions cannot be modified or deleted.", **extra):
        super().__init__(message, **extra)


class OverdraftBlocked(LedgerError):
    kind = "overdraft_blocked"
    status_code = 409


class ExchangeRateRequired(LedgerError):
    kind = "exchange_rate_required"
    status_code = 409


class ConsistencyError(LedgerError):
    kind = "consistency_error"
    status_code = 500


class StorageUnavailable(LedgerError):
    kind = "storage_unavailable"
    status_code = 503

    def __init__(self, message: str = "Service is busy. Please retry in a moment.", **extra):
        extra.setdefault("retryable", True)
        super().__init__(message, **extra)


def describe_validation_errors(errors) -> str:
    """One readable sentence from pydantic's error list."""
    if not errors:
        return "Invalid request."
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "header")]
    message = str(first.get("msg") or "Invalid value")
    if location:
        return f"{'.'.join(location)}: {message}"
    return message
