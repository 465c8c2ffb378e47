from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import ConflictError, ValidationError
from models import MonthDayPolicy, RecurringSchedule, Transaction, TransactionType
from recurrence import (
    OccurrenceStatus,
    iter_candidate_dates,
    occurrence_for_month,
    project_upcoming,
)
from schemas import (
    AssetIn,
    LiabilityIn,
    RecordOccurrenceIn,
    RecurringScheduleIn,
    RecurringScheduleUpdate,
)
from services import (
    AssetService,
    LiabilityService,
    RecurringScheduleService,
    TransactionService,
)


def _schedule(
    day_of_month: int = 15,
    start_date: date = date(2024, 1, 1),
    end_date=None,
    policy: MonthDayPolicy = MonthDayPolicy.snap_to_end,
    schedule_id: int = 1,
    is_active: bool = True,
) -> RecurringSchedule:
    return RecurringSchedule(
        id=schedule_id,
        user_id=1,
        liability_id=7,
        amount_cents=15000,
        day_of_month=day_of_month,
        start_date=start_date,
        end_date=end_date,
        is_active=is_active,
        month_day_policy=policy,
    )


def test_occurrence_for_month_policies() -> None:
    assert occurrence_for_month(2024, 2, 31, MonthDayPolicy.snap_to_end) == date(
        2024, 2, 29
    )
    assert occurrence_for_month(2023, 2, 29, MonthDayPolicy.snap_to_end) == date(
        2023, 2, 28
    )
    assert occurrence_for_month(2024, 2, 31, MonthDayPolicy.skip) is None
    assert occurrence_for_month(2024, 2, 31, MonthDayPolicy.roll_forward) == date(
        2024, 3, 2
    )
    assert occurrence_for_month(2024, 4, 30, MonthDayPolicy.skip) == date(2024, 4, 30)


def test_projection_window_drops_already_passed_date() -> None:
    dates = list(iter_candidate_dates(_schedule(), 3, today=date(2024, 3, 20)))

    assert dates == [date(2024, 4, 15), date(2024, 5, 15)]


def test_projection_respects_start_and_end_dates() -> None:
    schedule = _schedule(start_date=date(2024, 5, 1), end_date=date(2024, 7, 15))

    dates = list(iter_candidate_dates(schedule, 12, today=date(2024, 3, 1)))

    assert dates == [date(2024, 5, 15), date(2024, 6, 15), date(2024, 7, 15)]


def test_projection_crosses_year_end() -> None:
    dates = list(iter_candidate_dates(_schedule(day_of_month=31), 3, today=date(2024, 11, 2)))

    assert dates == [date(2024, 11, 30), date(2024, 12, 31), date(2025, 1, 31)]


def test_skip_policy_leaves_out_short_months() -> None:
    schedule = _schedule(day_of_month=31, policy=MonthDayPolicy.skip)

    dates = list(iter_candidate_dates(schedule, 4, today=date(2024, 1, 1)))

    assert dates == [date(2024, 1, 31), date(2024, 3, 31)]


def test_occurrence_linked_to_transaction_is_paid() -> None:
    schedule = _schedule()
    linked = Transaction(
        id=10,
        liability_id=7,
        type=TransactionType.emi_payment,
        amount_cents=14000,
        date=date(2024, 4, 13),
        schedule_id=schedule.id,
        occurrence_date=date(2024, 4, 15),
    )

    items = project_upcoming([schedule], [linked], months=3, today=date(2024, 3, 20))

    assert [(i.date, i.status) for i in items] == [
        (date(2024, 4, 15), OccurrenceStatus.paid),
        (date(2024, 5, 15), OccurrenceStatus.upcoming),
    ]
    assert items[0].transaction_id == 10
    assert items[0].is_paid


def test_exact_date_and_amount_match_counts_as_paid() -> None:
    schedule = _schedule()
    exact = Transaction(
        id=11,
        liability_id=7,
        type=TransactionType.payment,
        amount_cents=15000,
        date=date(2024, 4, 15),
    )
    wrong_amount = Transaction(
        id=12,
        liability_id=7,
        type=TransactionType.payment,
        amount_cents=15001,
        date=date(2024, 5, 15),
    )
    other_target = Transaction(
        id=13,
        liability_id=8,
        type=TransactionType.payment,
        amount_cents=15000,
        date=date(2024, 6, 15),
    )

    items = project_upcoming(
        [schedule], [exact, wrong_amount, other_target], months=4, today=date(2024, 3, 20)
    )

    assert [i.status for i in items] == [
        OccurrenceStatus.paid,
        OccurrenceStatus.upcoming,
        OccurrenceStatus.upcoming,
    ]
    assert items[0].transaction_id == 11


def test_occurrence_due_today() -> None:
    items = project_upcoming([_schedule()], [], months=2, today=date(2024, 4, 15))

    assert items[0].date == date(2024, 4, 15)
    assert items[0].status == OccurrenceStatus.due_today
    assert items[1].status == OccurrenceStatus.upcoming


def test_inactive_schedules_are_not_projected_and_results_are_sorted() -> None:
    late = _schedule(day_of_month=20, schedule_id=1)
    early = _schedule(day_of_month=5, schedule_id=2)
    paused = _schedule(day_of_month=1, schedule_id=3, is_active=False)

    items = project_upcoming([late, early, paused], [], months=2, today=date(2024, 4, 1))

    assert [(i.date, i.schedule.id) for i in items] == [
        (date(2024, 4, 5), 2),
        (date(2024, 4, 20), 1),
        (date(2024, 5, 5), 2),
        (date(2024, 5, 20), 1),
    ]


def _engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def _loan(session: Session):
    return LiabilityService(session, 1).create(
        LiabilityIn(name="Car Loan", category="loan", balance_cents=200000, owner="Bob")
    )


def test_schedule_listing_filters_by_target_or_shows_active_only() -> None:
    with Session(_engine()) as session:
        loan = _loan(session)
        schedules = RecurringScheduleService(session, 1)
        active = schedules.create(
            RecurringScheduleIn(
                liability_id=loan.id,
                amount_cents=15000,
                day_of_month=5,
                start_date=date(2024, 1, 1),
            )
        )
        paused = schedules.create(
            RecurringScheduleIn(
                liability_id=loan.id,
                amount_cents=500,
                day_of_month=1,
                start_date=date(2024, 1, 1),
            )
        )
        schedules.deactivate(paused.id)

        assert [s.id for s in schedules.list(liability_id=loan.id)] == [
            paused.id,
            active.id,
        ]
        assert [s.id for s in schedules.list()] == [active.id]


def test_schedule_update_checks_merged_dates() -> None:
    with Session(_engine()) as session:
        loan = _loan(session)
        schedules = RecurringScheduleService(session, 1)
        schedule = schedules.create(
            RecurringScheduleIn(
                liability_id=loan.id,
                amount_cents=15000,
                day_of_month=5,
                start_date=date(2024, 6, 1),
            )
        )

        with pytest.raises(ValidationError):
            schedules.update(
                schedule.id, RecurringScheduleUpdate(end_date=date(2024, 5, 1))
            )

        updated = schedules.update(
            schedule.id,
            RecurringScheduleUpdate(
                day_of_month=31, month_day_policy=MonthDayPolicy.skip
            ),
        )
        assert updated.day_of_month == 31
        assert updated.month_day_policy == MonthDayPolicy.skip
        assert updated.end_date is None


def test_recording_an_occurrence_pays_it_once() -> None:
    with Session(_engine()) as session:
        loan = _loan(session)
        schedules = RecurringScheduleService(session, 1)
        schedule = schedules.create(
            RecurringScheduleIn(
                liability_id=loan.id,
                amount_cents=15000,
                day_of_month=15,
                start_date=date(2024, 1, 1),
            )
        )

        txn = schedules.record_occurrence(
            schedule.id, RecordOccurrenceIn(occurrence_date=date(2024, 4, 15))
        )

        assert txn.type == TransactionType.emi_payment
        assert txn.schedule_id == schedule.id
        assert txn.description == "Scheduled payment - April 2024"
        assert loan.balance_cents == 185000

        with pytest.raises(ConflictError):
            schedules.record_occurrence(
                schedule.id, RecordOccurrenceIn(occurrence_date=date(2024, 4, 15))
            )

        items = schedules.upcoming(
            liability_id=loan.id, months=3, today=date(2024, 3, 20)
        )
        assert [(i.date, i.status) for i in items] == [
            (date(2024, 4, 15), OccurrenceStatus.paid),
            (date(2024, 5, 15), OccurrenceStatus.upcoming),
        ]


def test_recording_outside_the_schedule_window_is_rejected() -> None:
    with Session(_engine()) as session:
        loan = _loan(session)
        schedules = RecurringScheduleService(session, 1)
        schedule = schedules.create(
            RecurringScheduleIn(
                liability_id=loan.id,
                amount_cents=15000,
                day_of_month=15,
                start_date=date(2024, 2, 1),
                end_date=date(2024, 6, 30),
            )
        )

        for day in (date(2024, 1, 15), date(2024, 7, 15)):
            with pytest.raises(ValidationError):
                schedules.record_occurrence(
                    schedule.id, RecordOccurrenceIn(occurrence_date=day)
                )
        assert loan.balance_cents == 200000


def test_asset_schedule_records_deposits() -> None:
    with Session(_engine()) as session:
        fund = AssetService(session, 1).create(
            AssetIn(name="Gold Scheme", category="gold_scheme", value_cents=0, owner="Alice")
        )
        schedules = RecurringScheduleService(session, 1)
        schedule = schedules.create(
            RecurringScheduleIn(
                asset_id=fund.id,
                amount_cents=2500,
                day_of_month=1,
                start_date=date(2024, 1, 1),
                description="Monthly instalment",
            )
        )

        txn = schedules.record_occurrence(
            schedule.id,
            RecordOccurrenceIn(occurrence_date=date(2024, 2, 1), amount_cents=3000),
        )

        assert txn.type == TransactionType.deposit
        assert txn.amount_cents == 3000
        assert txn.description == "Monthly instalment"
        assert fund.value_cents == 3000


def test_deleting_a_schedule_keeps_its_recorded_payments() -> None:
    with Session(_engine()) as session:
        loan = _loan(session)
        schedules = RecurringScheduleService(session, 1)
        schedule = schedules.create(
            RecurringScheduleIn(
                liability_id=loan.id,
                amount_cents=15000,
                day_of_month=15,
                start_date=date(2024, 1, 1),
            )
        )
        txn = schedules.record_occurrence(
            schedule.id, RecordOccurrenceIn(occurrence_date=date(2024, 1, 15))
        )

        schedules.delete(schedule.id)

        kept = TransactionService(session, 1).get(txn.id)
        assert kept.schedule_id is None
        assert loan.balance_cents == 185000


def test_payment_linked_to_another_schedule_does_not_settle_by_amount() -> None:
    schedule = _schedule(schedule_id=1)
    other_payment = Transaction(
        id=20,
        liability_id=7,
        type=TransactionType.emi_payment,
        amount_cents=15000,
        date=date(2024, 4, 15),
        schedule_id=2,
        occurrence_date=date(2024, 4, 15),
    )

    items = project_upcoming([schedule], [other_payment], months=2, today=date(2024, 3, 20))

    assert items[0].date == date(2024, 4, 15)
    assert items[0].status == OccurrenceStatus.upcoming
    assert items[0].transaction_id is None
