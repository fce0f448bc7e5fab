"""
Best-effort side effects.

Audit log writes, attachment restores and settings restores must never fail
the operation that triggered them. Every such call goes through
best_effort(), which turns any exception into a warning issue.
"""

from typing import Callable, Optional, TypeVar

import structlog

from models.transfer import EntityType, ImportIssue, IssueSeverity

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def best_effort(
    operation: str,
    fn: Callable[[], T],
    warnings: Optional[list[ImportIssue]] = None,
    *,
    code: str = "SIDE_EFFECT_FAILED",
    entity_type: EntityType = EntityType.SETTING,
    entity_id: Optional[str] = None,
    entity_name: Optional[str] = None,
    message: Optional[str] = None,
) -> Optional[T]:
    """
    Run fn(); on failure log, append a warning, and return None.

    Args:
        operation: Event name used in the log line
        fn: Zero-argument callable performing the side effect
        warnings: List to append the warning to (omit to only log)
        code: Warning code
        entity_type: Entity the warning refers to
        entity_id: Optional entity id
        entity_name: Optional display name
        message: Warning text; defaults to "<operation> failed: <error>"

    Returns:
        fn()'s return value, or None if it raised
    """
    try:
        return fn()
    except Exception as e:
        logger.warning(
            f"{operation}_failed",
            error=str(e),
            error_type=type(e).__name__,
            entity_id=entity_id,
        )
        if warnings is not None:
            warnings.append(ImportIssue(
                severity=IssueSeverity.WARNING,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=entity_name,
                message=message or f"{operation.replace('_', ' ')} failed: {e}",
                code=code,
            ))
        return None
