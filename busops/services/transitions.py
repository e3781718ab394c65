"""
Mission status transition table.

Each trigger names the source statuses it accepts and the status it produces.
Kilometrage phases, the confirmation handshake and administrative actions all
go through apply_transition so an illegal move always fails the same way.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

import structlog

from ..errors import PreconditionError
from ..models.models import Mission
from ..schemas.missions import MissionStatus


logger = structlog.get_logger(__name__)

ALL_STATUSES: FrozenSet[MissionStatus] = frozenset(MissionStatus)
ACTIVE_STATUSES: FrozenSet[MissionStatus] = frozenset(
    {MissionStatus.PENDING, MissionStatus.ASSIGNED, MissionStatus.IN_PROGRESS}
)
# Statuses an administrator may force without kilometrage checks
OVERRIDE_TARGETS: FrozenSet[MissionStatus] = frozenset(
    {MissionStatus.PENDING, MissionStatus.IN_PROGRESS, MissionStatus.COMPLETED, MissionStatus.CANCELLED}
)


class Trigger(str, Enum):
    propose = "propose"
    accept = "accept"
    refuse = "refuse"
    unassign = "unassign"
    start = "start"
    complete = "complete"
    cancel = "cancel"
    override = "override"


_UNASSIGNED = frozenset({MissionStatus.PENDING, MissionStatus.ASSIGNED})

TRANSITIONS: Dict[Trigger, Tuple[FrozenSet[MissionStatus], Optional[MissionStatus]]] = {
    Trigger.propose: (_UNASSIGNED, MissionStatus.ASSIGNED),
    Trigger.accept: (_UNASSIGNED, MissionStatus.ASSIGNED),
    Trigger.refuse: (_UNASSIGNED, MissionStatus.PENDING),
    Trigger.unassign: (_UNASSIGNED, MissionStatus.PENDING),
    Trigger.start: (_UNASSIGNED, MissionStatus.IN_PROGRESS),
    Trigger.complete: (frozenset({MissionStatus.IN_PROGRESS}), MissionStatus.COMPLETED),
    Trigger.cancel: (ALL_STATUSES, MissionStatus.CANCELLED),
    # target supplied by the caller, restricted to OVERRIDE_TARGETS
    Trigger.override: (ALL_STATUSES, None),
}


def current_status(mission: Mission) -> MissionStatus:
    return MissionStatus(mission.status)


def resolve_target(trigger: Trigger, target: Optional[MissionStatus] = None) -> MissionStatus:
    sources, fixed_target = TRANSITIONS[trigger]
    if fixed_target is not None:
        return fixed_target
    if target is None or target not in OVERRIDE_TARGETS:
        raise PreconditionError(
            "Status cannot be forced to this value",
            current=None,
            requested=target.value if target is not None else None,
        )
    return target


def check_transition(mission: Mission, trigger: Trigger, target: Optional[MissionStatus] = None) -> MissionStatus:
    """Return the resulting status or raise PreconditionError."""
    sources, _ = TRANSITIONS[trigger]
    requested = resolve_target(trigger, target)
    current = current_status(mission)
    if current not in sources:
        raise PreconditionError(
            f"Cannot {trigger.value} mission {mission.id}",
            current=current.value,
            requested=requested.value,
        )
    return requested


def apply_transition(mission: Mission, trigger: Trigger, target: Optional[MissionStatus] = None) -> MissionStatus:
    """Set mission.status per the table; returns the previous status."""
    new_status = check_transition(mission, trigger, target)
    previous = current_status(mission)
    mission.status = new_status.value
    logger.info(
        "mission_status_changed",
        mission_id=mission.id,
        trigger=trigger.value,
        from_status=previous.value,
        to_status=new_status.value,
    )
    return previous


def is_active(mission: Mission) -> bool:
    return current_status(mission) in ACTIVE_STATUSES
