from sqlalchemy.orm import Session

from .models import UsageAnalytics
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .usage import UsageRecord


def log_usage(db: Session, record: "UsageRecord") -> UsageAnalytics:
    row = UsageAnalytics(
        provider=record.provider[:32],
        model=record.model[:64],
        tokens_used=max(0, int(record.tokens_used or 0)),
        processing_time_ms=max(0, int(record.processing_time_ms or 0)),
        success=record.success,
        error_message=record.error_message,
        extra=dict(record.metadata),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
