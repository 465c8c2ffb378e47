from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import MonthDayPolicy, RecurringSchedule, Transaction


class OccurrenceStatus(str, Enum):
    paid = "paid"
    due_today = "due_today"
    upcoming = "upcoming"


@dataclass(frozen=True)
class UpcomingPayment:
    date: date
    amount_cents: int
    schedule: RecurringSchedule
    status: OccurrenceStatus
    transaction_id: Optional[int] = None

    @property
    def is_paid(self) -> bool:
        return self.status == OccurrenceStatus.paid


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    total_months = month - 1 + months
    return year + total_months // 12, total_months % 12 + 1


def occurrence_for_month(
    year: int, month: int, day_of_month: int, policy: MonthDayPolicy
) -> Optional[date]:
    """Due date for ``day_of_month`` in the given month.

    Short months are handled by ``policy``: ``snap_to_end`` uses the last day
    of the month, ``roll_forward`` spills the extra days into the next month
    (Jan 31 -> Mar 2 style arithmetic) and ``skip`` returns None.
    """
    dim = days_in_month(year, month)
    if day_of_month <= dim:
        return date(year, month, day_of_month)
    if policy == MonthDayPolicy.skip:
        return None
    if policy == MonthDayPolicy.roll_forward:
        return date(year, month, 1) + timedelta(days=day_of_month - 1)
    return date(year, month, dim)


def iter_candidate_dates(
    schedule: RecurringSchedule, months: int, today: Optional[date] = None
) -> Iterator[date]:
    today = today or local_today()
    for offset in range(months):
        year, month = _shift_month(today.year, today.month, offset)
        candidate = occurrence_for_month(
            year, month, schedule.day_of_month, schedule.month_day_policy
        )
        if candidate is None:
            continue
        if candidate < schedule.start_date:
            continue
        if schedule.end_date and candidate > schedule.end_date:
            continue
        # This month's date already went by; it is not surfaced retroactively.
        if offset == 0 and candidate < today:
            continue
        yield candidate


def _same_target(schedule: RecurringSchedule, txn: Transaction) -> bool:
    if schedule.asset_id is not None:
        return txn.asset_id == schedule.asset_id
    return txn.liability_id == schedule.liability_id


def find_payment(
    schedule: RecurringSchedule,
    occurrence: date,
    transactions: Iterable[Transaction],
) -> Optional[Transaction]:
    """Transaction that settles ``occurrence``, if any.

    An explicit (schedule, occurrence date) link wins. Otherwise a transaction
    on the same target with exactly the same date and amount counts as paid,
    unless it is already linked to another schedule.
    """
    fallback = None
    for txn in transactions:
        if txn.schedule_id == schedule.id and txn.occurrence_date == occurrence:
            return txn
        if (
            fallback is None
            and txn.schedule_id in (None, schedule.id)
            and _same_target(schedule, txn)
            and txn.date == occurrence
            and txn.amount_cents == schedule.amount_cents
        ):
            fallback = txn
    return fallback


def project_upcoming(
    schedules: Iterable[RecurringSchedule],
    transactions: Iterable[Transaction],
    months: int = 12,
    today: Optional[date] = None,
) -> list[UpcomingPayment]:
    today = today or local_today()
    ledger = list(transactions)
    upcoming: list[UpcomingPayment] = []
    for schedule in schedules:
        if not schedule.is_active:
            continue
        for occurrence in iter_candidate_dates(schedule, months, today):
            txn = find_payment(schedule, occurrence, ledger)
            if txn is not None:
                status = OccurrenceStatus.paid
            elif occurrence == today:
                status = OccurrenceStatus.due_today
            else:
                status = OccurrenceStatus.upcoming
            upcoming.append(
                UpcomingPayment(
                    date=occurrence,
                    amount_cents=schedule.amount_cents,
                    schedule=schedule,
                    status=status,
                    transaction_id=txn.id if txn is not None else None,
                )
            )
    upcoming.sort(key=lambda item: (item.date, item.schedule.id or 0))
    return upcoming
