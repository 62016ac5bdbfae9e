"""
Version Lifecycle.

Transition table of the flow version state machine:

    draft -> staged -> live -> archived
      |                 ^
      +-----------------+

`archived` is terminal. A live version only leaves `live` by being
superseded when another version is promoted to live.
"""

from typing import Dict, FrozenSet

from .base import InvalidStateError, VersionStatus

PROMOTION_TARGETS: FrozenSet[VersionStatus] = frozenset({
    VersionStatus.STAGED,
    VersionStatus.LIVE,
})

# Direct transitions a caller may request
TRANSITIONS: Dict[VersionStatus, FrozenSet[VersionStatus]] = {
    VersionStatus.DRAFT: frozenset({
        VersionStatus.STAGED,
        VersionStatus.LIVE,
        VersionStatus.ARCHIVED,
    }),
    VersionStatus.STAGED: frozenset({
        VersionStatus.LIVE,
        VersionStatus.ARCHIVED,
    }),
    VersionStatus.LIVE: frozenset(),
    VersionStatus.ARCHIVED: frozenset(),
}


def can_transition(current: VersionStatus, target: VersionStatus) -> bool:
    """Check whether a caller may move a version from current to target."""
    return target in TRANSITIONS.get(current, frozenset())


def check_transition(current: VersionStatus, target: VersionStatus) -> None:
    """
    Guard a requested transition.

    Raises:
        InvalidStateError: the transition is not permitted
    """
    if can_transition(current, target):
        return

    if current == VersionStatus.LIVE and target == VersionStatus.ARCHIVED:
        message = "Live versions cannot be archived; promote another version to live instead"
    elif current == VersionStatus.ARCHIVED:
        message = "Archived versions cannot change status"
    else:
        message = f"Cannot move version from {current.value} to {target.value}"

    raise InvalidStateError(
        message,
        details={"current_status": current.value, "target_status": target.value},
    )


def check_promotion_target(target: VersionStatus) -> VersionStatus:
    """
    Normalize and guard a promotion target.

    Raises:
        InvalidStateError: target is not staged or live
    """
    try:
        target = VersionStatus(target)
    except ValueError:
        raise InvalidStateError(
            f"Unknown promotion target: {target}",
            details={"target_status": str(target)},
        )

    if target not in PROMOTION_TARGETS:
        raise InvalidStateError(
            f"Versions can only be promoted to staged or live, not {target.value}",
            details={"target_status": target.value},
        )
    return target


__all__ = [
    "PROMOTION_TARGETS",
    "TRANSITIONS",
    "can_transition",
    "check_transition",
    "check_promotion_target",
]
