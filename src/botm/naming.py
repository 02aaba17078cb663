from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

# Before this day of the month a playlist holds mostly last month's listening,
# so it is named after the previous month.
CUTOFF_DAY = 15

# Fixed English names, independent of the process locale
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


@dataclass(frozen=True)
class PlaylistTarget:
    name: str
    description: str


def attributed_month(today: date) -> date:
    """Return the first day of the month a playlist generated on ``today`` is named after."""
    first = today.replace(day=1)
    if today.day >= CUTOFF_DAY:
        return first
    if first.month == 1:
        return first.replace(year=first.year - 1, month=12)
    return first.replace(month=first.month - 1)


def playlist_target(now: Optional[datetime] = None) -> PlaylistTarget:
    now = now or datetime.now()
    month = attributed_month(now.date())
    month_name = MONTH_NAMES[month.month - 1]
    name = f"{month.year:04d}-{month.month:02d} ({month_name[:3]}) BOTM"
    description = "Bangers of the month for {} {:04d}, (generated on {})".format(
        month_name,
        month.year,
        now.strftime("%Y-%m-%d"),
    )
    return PlaylistTarget(name=name, description=description)
