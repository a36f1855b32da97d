# clinic_core/billing/exceptions.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from uuid import UUID

from django.db import DatabaseError, IntegrityError

from clinic_core.common.api.exceptions import ConflictError, StorageError

logger = logging.getLogger(__name__)


class DuplicateBillError(ConflictError):
    """
    A live bill already exists for the visit/appointment.
    Recoverable: callers should show the existing bill instead.
    """
    default_detail = "Bill already exists for this appointment."
    default_code = "duplicate_bill"

    def __init__(self, existing_bill_id: UUID, detail: str | None = None):
        self.existing_bill_id = existing_bill_id
        super().__init__(
            detail={
                "detail": detail or self.default_detail,
                "existing_bill_id": str(existing_bill_id),
            },
            code=self.default_code,
        )


@contextmanager
def storage_errors(action: str):
    """
    Translate persistence failures into StorageError.
    IntegrityError passes through so callers can map constraint conflicts.
    """
    try:
        yield
    except IntegrityError:
        raise
    except DatabaseError as exc:
        logger.exception("Storage failure while %s", action)
        raise StorageError() from exc
