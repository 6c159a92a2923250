import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from budget_ledger.core.config import get_settings
from budget_ledger.core.errors import ValidationError
from budget_ledger.models import IdempotencyKey


settings = get_settings()
logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_idempotency_key(key: str | None, *, required: bool = True) -> str | None:
    key = (key or "").strip()
    if not key:
        if required:
            raise ValidationError("Idempotency-Key header is required.")
        return None
    if len(key) < settings.idempotency_key_min_length or len(key) > 255:
        raise ValidationError(
            f"Idempotency-Key must be between {settings.idempotency_key_min_length} and 255 characters."
        )
    return key


def _find(db: Session, user_id: int, key: str) -> IdempotencyKey | None:
    return (
        db.query(IdempotencyKey)
        .filter(IdempotencyKey.user_id == user_id, IdempotencyKey.key == key)
        .first()
    )


def _replay(record: IdempotencyKey, method: str, path: str) -> tuple[int, dict, bool]:
    if record.request_method != method or record.request_path != path:
        raise ValidationError("Idempotency-Key was already used for a different request.")
    logger.info("Replaying stored response for idempotency key on %s %s", method, path)
    return record.response_status, record.response_body, True


def execute_idempotent(
    db: Session,
    *,
    user_id: int,
    key: str | None,
    method: str,
    path: str,
    operation: Callable[[], tuple[int, dict]],
) -> tuple[int, dict, bool]:
    """Run ``operation`` at most once per ``(user_id, key)`` within the TTL.

    The key row commits together with the operation's writes. A concurrent
    duplicate loses on the unique constraint, rolls its writes back and
    replays the winner's response. Returns ``(status, body, replayed)``.
    """
    if key is None:
        try:
            status_code, body = operation()
            db.commit()
        except Exception:
            db.rollback()
            raise
        return status_code, body, False

    now = _utcnow()
    existing = _find(db, user_id, key)
    if existing is not None:
        if _as_utc(existing.expires_at) > now:
            return _replay(existing, method, path)
        db.delete(existing)
        db.flush()

    try:
        status_code, body = operation()
        if 200 <= status_code < 300:
            db.add(
                IdempotencyKey(
                    user_id=user_id,
                    key=key,
                    request_method=method,
                    request_path=path,
                    response_status=status_code,
                    response_body=body,
                    expires_at=now + timedelta(hours=settings.idempotency_ttl_hours),
                )
            )
        db.commit()
    except IntegrityError:
        db.rollback()
        stored = _find(db, user_id, key)
        if stored is None:
            raise
        return _replay(stored, method, path)
    except Exception:
        db.rollback()
        raise
    return status_code, body, False


def purge_expired_idempotency_keys(db: Session, now: datetime | None = None) -> int:
    cutoff = now or _utcnow()
    deleted = (
        db.query(IdempotencyKey)
        .filter(IdempotencyKey.expires_at <= cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info("Purged %s expired idempotency key(s)", deleted)
    return deleted
