"""
Badge Model - Sender roles parsed from message tags
===================================================

Badges arrive as a `badges` tag in the form `name/level,name/level`.
Roles that imply other roles get the implied badge synthesized so
rules only need to list the lowest role they allow.
"""

from typing import Dict, Iterable, Optional

from core.message import ChatMessage


BADGE_BROADCASTER = "broadcaster"
BADGE_FOUNDER = "founder"
BADGE_LEAD_MODERATOR = "lead_moderator"
BADGE_MODERATOR = "moderator"
BADGE_SUBSCRIBER = "subscriber"
BADGE_VIP = "vip"

KNOWN_BADGES = [
    BADGE_BROADCASTER,
    BADGE_FOUNDER,
    BADGE_LEAD_MODERATOR,
    BADGE_MODERATOR,
    BADGE_SUBSCRIBER,
    BADGE_VIP,
]


class BadgeCollection:
    """
    Badges a user holds, mapped to their level.

    Holding a badge at level 0 is different from not holding it.
    """

    def __init__(self, badges: Optional[Dict[str, int]] = None):
        self._badges: Dict[str, int] = dict(badges or {})

    def add(self, badge: str, level: int) -> None:
        self._badges[badge] = level

    def get(self, badge: str) -> int:
        """Level of the badge, 0 when not held."""
        return self._badges.get(badge, 0)

    def has(self, badge: str) -> bool:
        return badge in self._badges

    def has_any(self, badges: Iterable[str]) -> bool:
        return any(self.has(b) for b in badges)

    def to_dict(self) -> Dict[str, int]:
        return dict(self._badges)

    def __contains__(self, badge: str) -> bool:
        return self.has(badge)

    def __len__(self) -> int:
        return len(self._badges)

    def __repr__(self) -> str:
        return f"BadgeCollection({self._badges!r})"


def parse_badges(value: str) -> BadgeCollection:
    """
    Parse a badge tag value.

    Malformed entries are skipped. Implied badges are added afterwards:
    founders are subscribers at their founder level, broadcasters and
    lead moderators are moderators.

    Args:
        value: Raw tag value like "broadcaster/1,subscriber/12"

    Returns:
        BadgeCollection with literal and implied badges
    """
    out = BadgeCollection()

    for entry in (value or "").split(","):
        parts = entry.split("/")
        if len(parts) != 2:
            continue

        try:
            level = int(parts[1])
        except ValueError:
            continue

        out.add(parts[0], level)

    if out.has(BADGE_FOUNDER) and not out.has(BADGE_SUBSCRIBER):
        out.add(BADGE_SUBSCRIBER, out.get(BADGE_FOUNDER))

    if out.has(BADGE_BROADCASTER) and not out.has(BADGE_MODERATOR):
        out.add(BADGE_MODERATOR, 1)

    if out.has(BADGE_LEAD_MODERATOR) and not out.has(BADGE_MODERATOR):
        out.add(BADGE_MODERATOR, 1)

    return out


def parse_badge_levels(message: Optional[ChatMessage]) -> BadgeCollection:
    """Parse the badges of the message sender."""
    if message is None:
        return BadgeCollection()
    return parse_badges(message.tags.get("badges", ""))
