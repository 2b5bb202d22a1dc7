import enum
from datetime import timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from app.db.models import ChannelType, NotificationKind


class AnchorType(enum.Enum):
    CREATED_AT = "created_at"
    # Local midnight of the first booking day
    EVENT_DATE = "event_date"
    # First booking day at its appointment time
    APPOINTMENT = "appointment"


class RuleGroup(enum.Enum):
    """Groups of kinds sharing one suppression rule."""

    INITIAL = "initial"
    QUOTE_CHASER = "quote_chaser"
    EVENT_REMINDER = "event_reminder"


class PastGuard(enum.Enum):
    NONE = "none"
    CANCEL_IF_PAST = "cancel_if_past"
    # Same-day reminders are kept so they still go out on the day
    CANCEL_IF_PAST_UNLESS_EVENT_TODAY = "cancel_if_past_unless_event_today"


class NotificationRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: NotificationKind
    channel: ChannelType
    group: RuleGroup
    anchor: AnchorType
    # Elapsed offset, applied as absolute time
    elapsed: timedelta = timedelta(0)
    # Civil offset in days, applied to wall-clock time in the business zone
    civil_days: int = 0
    past_guard: PastGuard = PastGuard.NONE
    # Minimum time between now and the anchor for the kind to be scheduled
    min_lead: Optional[timedelta] = None
    same_day: bool = False

    @property
    def creation_relative(self) -> bool:
        return self.group == RuleGroup.QUOTE_CHASER and self.anchor == AnchorType.CREATED_AT


def _chaser(kind, channel=ChannelType.EMAIL, hours=0, days=0) -> NotificationRule:
    return NotificationRule(
        kind=kind,
        channel=channel,
        group=RuleGroup.QUOTE_CHASER,
        anchor=AnchorType.CREATED_AT,
        elapsed=timedelta(hours=hours),
        civil_days=days,
    )


class NotificationRuleRegistry:
    """Kind to rule table driving scheduling, suppression and dispatch"""

    _rules: Dict[NotificationKind, NotificationRule] = {
        rule.kind: rule
        for rule in (
            NotificationRule(
                kind=NotificationKind.INITIAL,
                channel=ChannelType.EMAIL,
                group=RuleGroup.INITIAL,
                anchor=AnchorType.CREATED_AT,
            ),
            _chaser(NotificationKind.FOLLOWUP_3H, hours=3),
            _chaser(NotificationKind.FOLLOWUP_6H, hours=6),
            _chaser(NotificationKind.FOLLOWUP_24H, hours=24),
            _chaser(NotificationKind.FOLLOWUP_3D, days=3),
            _chaser(NotificationKind.FOLLOWUP_6D, days=6),
            _chaser(NotificationKind.FOLLOWUP_30D, days=30),
            _chaser(NotificationKind.URGENCY_7D, channel=ChannelType.WHATSAPP, days=7),
            NotificationRule(
                kind=NotificationKind.URGENCY_2W,
                channel=ChannelType.WHATSAPP,
                group=RuleGroup.QUOTE_CHASER,
                anchor=AnchorType.EVENT_DATE,
                civil_days=-14,
                min_lead=timedelta(days=14),
            ),
            NotificationRule(
                kind=NotificationKind.URGENCY_1W,
                channel=ChannelType.WHATSAPP,
                group=RuleGroup.QUOTE_CHASER,
                anchor=AnchorType.EVENT_DATE,
                civil_days=-7,
                past_guard=PastGuard.CANCEL_IF_PAST,
            ),
            NotificationRule(
                kind=NotificationKind.EVENT_REMINDER_24H,
                channel=ChannelType.EMAIL,
                group=RuleGroup.EVENT_REMINDER,
                anchor=AnchorType.EVENT_DATE,
                elapsed=timedelta(hours=-24),
                past_guard=PastGuard.CANCEL_IF_PAST,
            ),
            NotificationRule(
                kind=NotificationKind.APPOINTMENT_DAY_REMINDER,
                channel=ChannelType.EMAIL,
                group=RuleGroup.EVENT_REMINDER,
                anchor=AnchorType.APPOINTMENT,
                elapsed=timedelta(hours=-2, minutes=-30),
                past_guard=PastGuard.CANCEL_IF_PAST_UNLESS_EVENT_TODAY,
                same_day=True,
            ),
            NotificationRule(
                kind=NotificationKind.POST_APPOINTMENT_FOLLOWUP,
                channel=ChannelType.EMAIL,
                group=RuleGroup.EVENT_REMINDER,
                anchor=AnchorType.APPOINTMENT,
                elapsed=timedelta(hours=6),
                same_day=True,
            ),
        )
    }

    @classmethod
    def get_rule(cls, kind: NotificationKind) -> NotificationRule:
        return cls._rules[kind]

    @classmethod
    def list_rules(cls) -> List[NotificationRule]:
        """All rules in declaration order"""
        return list(cls._rules.values())

    @classmethod
    def creation_relative_kinds(cls) -> List[NotificationKind]:
        return [rule.kind for rule in cls._rules.values() if rule.creation_relative]
