from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class SubscriptionStatus(str, Enum):
    FREE = "free"
    PAID = "paid"


@dataclass(frozen=True, slots=True)
class Viewer:
    is_paid: bool = False
    user_id: str | None = None


ANONYMOUS = Viewer()


def viewer_from_user(user: dict, *, now: datetime | None = None) -> Viewer:
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        return ANONYMOUS

    if user.get("subscription_status") != SubscriptionStatus.PAID.value:
        return Viewer(is_paid=False, user_id=user_id)

    expires_at = _parse_timestamp(user.get("subscription_expires_at"))
    current = now or datetime.now(timezone.utc)
    if expires_at is not None and expires_at <= current:
        return Viewer(is_paid=False, user_id=user_id)
    return Viewer(is_paid=True, user_id=user_id)


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
