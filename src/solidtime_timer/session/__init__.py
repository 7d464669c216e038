"""Timer session: state machine, member resolution, cache and triggers."""

from solidtime_timer.session.cache import DataCache
from solidtime_timer.session.controller import TimerController, TimerStatus
from solidtime_timer.session.members import MemberResolver, membership_for_organization
from solidtime_timer.session.scheduler import PeriodicTrigger, RefreshScheduler
from solidtime_timer.session.session import TimerSession

__all__ = [
    "DataCache",
    "MemberResolver",
    "PeriodicTrigger",
    "RefreshScheduler",
    "TimerController",
    "TimerSession",
    "TimerStatus",
    "membership_for_organization",
]
