"""Central soft-failure policy.

Every remote call whose failure may be converted into an empty or default
value is listed here, together with the error kinds that qualify and the
value substituted. Call sites wrap the remote call in ``guarded()``; any
error not matched by the table propagates unchanged.

Policy:
    STACK_TEMPLATE     CONFLICT             -> None   (template not stored for legacy deployments)
    STACK_OPERATIONS   NOT_FOUND            -> []     (deployment removed during collection)
    INSTANCE_VIEW      NOT_FOUND            -> "off"  (instance deleted during collection)
    STACK_GET          NOT_FOUND            -> None   (targeted stack no longer exists)
    TEMPLATE_DOWNLOAD  TRANSPORT, MALFORMED -> None   (linked template unreachable or not JSON)
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

from azcollect.errors import ErrorKind, classify_error
from azcollect.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

R = TypeVar("R")

POWER_STATE_OFF = "off"


class Operation(StrEnum):
    """Remote operations with a declared soft-failure behavior."""

    STACK_TEMPLATE = "stack_template"
    STACK_OPERATIONS = "stack_operations"
    INSTANCE_VIEW = "instance_view"
    STACK_GET = "stack_get"
    TEMPLATE_DOWNLOAD = "template_download"


@dataclass(frozen=True)
class SoftFailure:
    """Fallback applied when ``operation`` fails with one of ``kinds``."""

    operation: Operation
    kinds: frozenset[ErrorKind]
    fallback: Callable[[], Any]
    log_level: int = logging.DEBUG


FALLBACK_POLICY: dict[Operation, SoftFailure] = {
    rule.operation: rule
    for rule in (
        SoftFailure(Operation.STACK_TEMPLATE, frozenset({ErrorKind.CONFLICT}), lambda: None),
        SoftFailure(Operation.STACK_OPERATIONS, frozenset({ErrorKind.NOT_FOUND}), list),
        SoftFailure(
            Operation.INSTANCE_VIEW, frozenset({ErrorKind.NOT_FOUND}), lambda: POWER_STATE_OFF
        ),
        SoftFailure(Operation.STACK_GET, frozenset({ErrorKind.NOT_FOUND}), lambda: None),
        SoftFailure(
            Operation.TEMPLATE_DOWNLOAD,
            frozenset({ErrorKind.TRANSPORT, ErrorKind.MALFORMED}),
            lambda: None,
            log_level=logging.ERROR,
        ),
    )
}


def soft_failure_for(operation: Operation, error: BaseException) -> SoftFailure | None:
    """Return the policy rule that softens ``error`` for ``operation``, if any."""
    rule = FALLBACK_POLICY.get(operation)
    if rule is None:
        return None
    kind = classify_error(error)
    if kind is None or kind not in rule.kinds:
        return None
    return rule


def guarded(operation: Operation, func: Callable[..., R], *args: Any, **kwargs: Any) -> R:
    """Call ``func`` and apply the soft-failure policy of ``operation``.

    Args:
        operation: Operation being performed (selects the policy rule)
        func: Remote call
        *args: Positional arguments for ``func``
        **kwargs: Keyword arguments for ``func``

    Returns:
        The call's result, or the rule's fallback value for a softened error

    Raises:
        Exception: Any error the policy does not list for ``operation``

    Example:
        >>> guarded(Operation.STACK_OPERATIONS, client.list_stack_operations, "rg", "d1")
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        rule = soft_failure_for(operation, e)
        if rule is None:
            raise
        logger.log(
            rule.log_level,
            LogSanitizer.create_safe_error_message(e, f"Soft failure in {operation}")
            + f" (args={LogSanitizer.sanitize(repr(args))})",
        )
        return rule.fallback()


__all__ = [
    "FALLBACK_POLICY",
    "POWER_STATE_OFF",
    "Operation",
    "SoftFailure",
    "guarded",
    "soft_failure_for",
]
