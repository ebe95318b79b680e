"""
Тесты сервиса управления запланированными операциями.

Проверяют создание с валидацией, изоляцию по пользователю,
частичное обновление, отмену, удаление и постраничный список.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from household_ledger.config import settings
from household_ledger.models import (
    ScheduledTransactionDB,
    ScheduledTransactionUpdate,
    ScheduledTransactionFilter,
    TransactionDB,
    TransactionType,
    Frequency,
    ScheduledStatus,
)
from household_ledger.services.scheduled_transaction_service import (
    create_scheduled_transaction,
    get_scheduled_transaction,
    update_scheduled_transaction,
    list_scheduled_transactions,
    cancel_scheduled_transaction,
    delete_scheduled_transaction,
)
from household_ledger.services.execution_service import execute_scheduled_transaction
from household_ledger.utils.exceptions import ValidationError, NotFoundError, InvalidStateError

from test_factories import (
    create_test_account,
    create_test_category,
    create_test_scheduled_transaction,
    make_schedule_create,
)


class TestCreateScheduledTransaction:
    """Тесты создания."""

    def test_create_pending(self, db_session, user_id, account, category):
        data = make_schedule_create(
            account.id,
            category_id=category.id,
            is_recurring=True,
            frequency=Frequency.MONTHLY,
            notes="Договор аренды",
        )

        scheduled = create_scheduled_transaction(db_session, user_id, data)

        assert scheduled.id is not None
        assert scheduled.user_id == user_id
        assert scheduled.status == ScheduledStatus.PENDING
        assert scheduled.is_reminder_sent is False
        assert scheduled.amount == Decimal("15000")
        assert scheduled.frequency == Frequency.MONTHLY
        assert scheduled.completed_at is None

    def test_currency_is_normalized(self, db_session, user_id, usd_account):
        data = make_schedule_create(usd_account.id, currency="usd", amount=Decimal("12.34"))

        scheduled = create_scheduled_transaction(db_session, user_id, data)

        assert scheduled.currency == "USD"
        assert scheduled.amount == Decimal("12.34")

    def test_recurring_requires_frequency(self, db_session, user_id, account):
        data = make_schedule_create(account.id, is_recurring=True, frequency=None)

        with pytest.raises(ValidationError):
            create_scheduled_transaction(db_session, user_id, data)

        assert db_session.query(ScheduledTransactionDB).count() == 0

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-100")])
    def test_amount_must_be_positive(self, account, amount):
        with pytest.raises(PydanticValidationError):
            make_schedule_create(account.id, amount=amount)

    def test_reminder_days_bounds(self, account):
        with pytest.raises(PydanticValidationError):
            make_schedule_create(account.id, reminder_days=31)

    def test_unknown_currency(self, db_session, user_id, account):
        data = make_schedule_create(account.id, currency="XXX")

        with pytest.raises(ValidationError):
            create_scheduled_transaction(db_session, user_id, data)

    def test_foreign_account(self, db_session, other_user_id, account):
        data = make_schedule_create(account.id)

        with pytest.raises(NotFoundError):
            create_scheduled_transaction(db_session, other_user_id, data)

    def test_foreign_category(self, db_session, user_id, other_user_id, account):
        foreign_category = create_test_category(other_user_id)
        db_session.add(foreign_category)
        db_session.commit()

        data = make_schedule_create(account.id, category_id=foreign_category.id)

        with pytest.raises(NotFoundError):
            create_scheduled_transaction(db_session, user_id, data)

    def test_end_date_before_due_date(self, db_session, user_id, account):
        due = datetime(2025, 5, 1)
        data = make_schedule_create(
            account.id,
            due_date=due,
            is_recurring=True,
            frequency=Frequency.MONTHLY,
            end_date=due - timedelta(days=1),
        )

        with pytest.raises(ValidationError):
            create_scheduled_transaction(db_session, user_id, data)

    def test_sub_cent_amount_rejected_by_model(self, usd_account):
        with pytest.raises(PydanticValidationError):
            make_schedule_create(usd_account.id, currency="USD", amount=Decimal("0.004"))

    def test_fractional_yen_rejected(self, db_session, user_id, account):
        data = make_schedule_create(account.id, amount=Decimal("100.5"))

        with pytest.raises(ValidationError):
            create_scheduled_transaction(db_session, user_id, data)

        assert db_session.query(ScheduledTransactionDB).count() == 0

    def test_cents_allowed_for_usd(self, db_session, user_id, usd_account):
        data = make_schedule_create(usd_account.id, currency="USD", amount=Decimal("500.75"))

        scheduled = create_scheduled_transaction(db_session, user_id, data)

        assert scheduled.amount == Decimal("500.75")

    def test_aware_due_date_stored_as_local_time(self, db_session, user_id, account):
        data = make_schedule_create(
            account.id,
            due_date=datetime(2030, 1, 1, tzinfo=timezone.utc),
            is_recurring=True,
            frequency=Frequency.MONTHLY,
            end_date=datetime(2031, 1, 1),
        )

        scheduled = create_scheduled_transaction(db_session, user_id, data)

        expected = datetime(2030, 1, 1, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert data.due_date.tzinfo is None
        assert scheduled.due_date == expected

    def test_empty_user_id(self, db_session, account):
        with pytest.raises(ValidationError):
            create_scheduled_transaction(db_session, "", make_schedule_create(account.id))


class TestGetScheduledTransaction:
    """Тесты получения и изоляции по пользователю."""

    def test_get_own(self, db_session, user_id, account):
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))

        fetched = get_scheduled_transaction(db_session, created.id, user_id)

        assert fetched.id == created.id

    def test_foreign_is_indistinguishable_from_missing(self, db_session, user_id, other_user_id, account):
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))

        with pytest.raises(NotFoundError):
            get_scheduled_transaction(db_session, created.id, other_user_id)
        with pytest.raises(NotFoundError):
            get_scheduled_transaction(db_session, str(uuid.uuid4()), user_id)

    def test_malformed_id(self, db_session, user_id):
        with pytest.raises(ValidationError):
            get_scheduled_transaction(db_session, "not-a-uuid", user_id)


class TestUpdateScheduledTransaction:
    """Тесты частичного обновления."""

    def test_only_set_fields_are_applied(self, db_session, user_id, account):
        created = create_scheduled_transaction(
            db_session, user_id, make_schedule_create(account.id, notes="Старая заметка")
        )

        updated = update_scheduled_transaction(
            db_session, created.id, user_id,
            ScheduledTransactionUpdate(amount=Decimal("16000"))
        )

        assert updated.amount == Decimal("16000")
        assert updated.notes == "Старая заметка"
        assert updated.description == "Аренда"

    def test_due_date_change_resets_reminder(self, db_session, user_id, account):
        scheduled = create_test_scheduled_transaction(user_id, account.id, is_reminder_sent=True)
        db_session.add(scheduled)
        db_session.commit()

        updated = update_scheduled_transaction(
            db_session, scheduled.id, user_id,
            ScheduledTransactionUpdate(due_date=datetime.now() + timedelta(days=20))
        )

        assert updated.is_reminder_sent is False

    def test_overdue_rescheduled_to_future_returns_to_pending(self, db_session, user_id, account):
        scheduled = create_test_scheduled_transaction(
            user_id, account.id,
            due_date=datetime.now() - timedelta(days=3),
            status=ScheduledStatus.OVERDUE
        )
        db_session.add(scheduled)
        db_session.commit()

        updated = update_scheduled_transaction(
            db_session, scheduled.id, user_id,
            ScheduledTransactionUpdate(due_date=datetime.now() + timedelta(days=3))
        )

        assert updated.status == ScheduledStatus.PENDING

    def test_overdue_rescheduled_with_aware_date(self, db_session, user_id, account):
        scheduled = create_test_scheduled_transaction(
            user_id, account.id,
            due_date=datetime.now() - timedelta(days=3),
            status=ScheduledStatus.OVERDUE
        )
        db_session.add(scheduled)
        db_session.commit()

        updated = update_scheduled_transaction(
            db_session, scheduled.id, user_id,
            ScheduledTransactionUpdate.model_validate({"due_date": "2030-01-01T00:00:00Z"})
        )

        assert updated.status == ScheduledStatus.PENDING
        assert updated.due_date.tzinfo is None

    def test_fractional_yen_amount_rejected(self, db_session, user_id, account):
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))

        with pytest.raises(ValidationError):
            update_scheduled_transaction(
                db_session, created.id, user_id,
                ScheduledTransactionUpdate(amount=Decimal("100.5"))
            )

        db_session.expire_all()
        assert db_session.get(ScheduledTransactionDB, created.id).amount == Decimal("15000")

    def test_terminal_status_rejected(self, db_session, user_id, account):
        scheduled = create_test_scheduled_transaction(
            user_id, account.id, status=ScheduledStatus.COMPLETED
        )
        db_session.add(scheduled)
        db_session.commit()

        with pytest.raises(InvalidStateError):
            update_scheduled_transaction(
                db_session, scheduled.id, user_id,
                ScheduledTransactionUpdate(amount=Decimal("1"))
            )

    def test_required_field_cannot_be_cleared(self, db_session, user_id, account):
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))

        with pytest.raises(ValidationError):
            update_scheduled_transaction(
                db_session, created.id, user_id,
                ScheduledTransactionUpdate(amount=None)
            )

    def test_invariants_checked_on_merged_state(self, db_session, user_id, account):
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))

        with pytest.raises(ValidationError):
            update_scheduled_transaction(
                db_session, created.id, user_id,
                ScheduledTransactionUpdate(is_recurring=True)
            )

        db_session.expire_all()
        assert db_session.get(ScheduledTransactionDB, created.id).is_recurring is False

    def test_new_account_must_belong_to_user(self, db_session, user_id, other_user_id, account):
        foreign_account = create_test_account(other_user_id)
        db_session.add(foreign_account)
        db_session.commit()
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))

        with pytest.raises(NotFoundError):
            update_scheduled_transaction(
                db_session, created.id, user_id,
                ScheduledTransactionUpdate(account_id=foreign_account.id)
            )


class TestCancelAndDelete:
    """Тесты отмены и удаления."""

    def test_cancel(self, db_session, user_id, account):
        scheduled = create_test_scheduled_transaction(user_id, account.id, is_reminder_sent=True)
        db_session.add(scheduled)
        db_session.commit()

        cancelled = cancel_scheduled_transaction(db_session, scheduled.id, user_id)

        assert cancelled.status == ScheduledStatus.CANCELLED
        assert cancelled.is_reminder_sent is False

    def test_cancel_twice(self, db_session, user_id, account):
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))
        cancel_scheduled_transaction(db_session, created.id, user_id)

        with pytest.raises(InvalidStateError):
            cancel_scheduled_transaction(db_session, created.id, user_id)

    def test_delete_keeps_realized_transactions(self, db_session, user_id, account):
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))
        result = execute_scheduled_transaction(db_session, created.id, user_id)
        transaction_id = result.transaction.id

        assert delete_scheduled_transaction(db_session, created.id, user_id) is True

        assert db_session.get(ScheduledTransactionDB, created.id) is None
        transaction = db_session.get(TransactionDB, transaction_id)
        assert transaction is not None
        assert transaction.scheduled_transaction_id is None

    def test_delete_foreign(self, db_session, user_id, other_user_id, account):
        created = create_scheduled_transaction(db_session, user_id, make_schedule_create(account.id))

        with pytest.raises(NotFoundError):
            delete_scheduled_transaction(db_session, created.id, other_user_id)


class TestListScheduledTransactions:
    """Тесты списка, сортировки и постраничного вывода."""

    def _add(self, session, *schedules):
        session.add_all(schedules)
        session.commit()
        return schedules

    def test_urgency_ordering(self, db_session, user_id, account):
        now = datetime.now()
        pending_late, pending_soon, overdue_old, overdue_recent, done_old, done_future, cancelled = self._add(
            db_session,
            create_test_scheduled_transaction(user_id, account.id, due_date=now + timedelta(days=5)),
            create_test_scheduled_transaction(user_id, account.id, due_date=now + timedelta(days=1)),
            create_test_scheduled_transaction(
                user_id, account.id, due_date=now - timedelta(days=3), status=ScheduledStatus.OVERDUE
            ),
            create_test_scheduled_transaction(
                user_id, account.id, due_date=now - timedelta(days=1), status=ScheduledStatus.OVERDUE
            ),
            create_test_scheduled_transaction(
                user_id, account.id, due_date=now - timedelta(days=10), status=ScheduledStatus.COMPLETED
            ),
            create_test_scheduled_transaction(
                user_id, account.id, due_date=now + timedelta(days=2), status=ScheduledStatus.COMPLETED
            ),
            create_test_scheduled_transaction(
                user_id, account.id, due_date=now - timedelta(days=20), status=ScheduledStatus.CANCELLED
            ),
        )

        page = list_scheduled_transactions(db_session, user_id)

        assert [item.id for item in page.items] == [
            pending_soon.id, pending_late.id,
            overdue_old.id, overdue_recent.id,
            done_old.id, done_future.id,
            cancelled.id,
        ]

    def test_listing_sweeps_overdue_first(self, db_session, user_id, account):
        (late,) = self._add(
            db_session,
            create_test_scheduled_transaction(user_id, account.id, due_date=datetime.now() - timedelta(hours=2))
        )

        page = list_scheduled_transactions(
            db_session, user_id, ScheduledTransactionFilter(status=ScheduledStatus.OVERDUE)
        )

        assert [item.id for item in page.items] == [late.id]

    def test_only_own_schedules(self, db_session, user_id, other_user_id, account):
        foreign_account = create_test_account(other_user_id)
        db_session.add(foreign_account)
        db_session.commit()
        self._add(
            db_session,
            create_test_scheduled_transaction(user_id, account.id),
            create_test_scheduled_transaction(other_user_id, foreign_account.id),
        )

        page = list_scheduled_transactions(db_session, user_id)

        assert page.total == 1
        assert all(item.user_id == user_id for item in page.items)

    def test_filters(self, db_session, user_id, account, category):
        now = datetime.now()
        income, recurring, _ = self._add(
            db_session,
            create_test_scheduled_transaction(
                user_id, account.id, type=TransactionType.INCOME, due_date=now + timedelta(days=3)
            ),
            create_test_scheduled_transaction(
                user_id, account.id, is_recurring=True, frequency=Frequency.WEEKLY,
                category_id=category.id, due_date=now + timedelta(days=10)
            ),
            create_test_scheduled_transaction(user_id, account.id, due_date=now + timedelta(days=40)),
        )

        by_type = list_scheduled_transactions(
            db_session, user_id, ScheduledTransactionFilter(type=TransactionType.INCOME)
        )
        by_recurring = list_scheduled_transactions(
            db_session, user_id, ScheduledTransactionFilter(is_recurring=True)
        )
        by_category = list_scheduled_transactions(
            db_session, user_id, ScheduledTransactionFilter(category_id=category.id)
        )
        by_range = list_scheduled_transactions(
            db_session, user_id,
            ScheduledTransactionFilter(start_date=now, end_date=now + timedelta(days=30))
        )

        assert [item.id for item in by_type.items] == [income.id]
        assert [item.id for item in by_recurring.items] == [recurring.id]
        assert [item.id for item in by_category.items] == [recurring.id]
        assert [item.id for item in by_range.items] == [income.id, recurring.id]

    def test_pagination(self, db_session, user_id, account):
        now = datetime.now()
        schedules = self._add(
            db_session,
            *[
                create_test_scheduled_transaction(user_id, account.id, due_date=now + timedelta(days=i + 1))
                for i in range(5)
            ]
        )

        page = list_scheduled_transactions(
            db_session, user_id, ScheduledTransactionFilter(page=3, limit=2)
        )

        assert page.total == 5
        assert page.pages == 3
        assert [item.id for item in page.items] == [schedules[4].id]

    def test_limit_is_capped(self, db_session, user_id, account):
        page = list_scheduled_transactions(
            db_session, user_id, ScheduledTransactionFilter(limit=settings.max_page_size + 500)
        )

        assert page.limit == settings.max_page_size

    def test_default_limit(self, db_session, user_id):
        page = list_scheduled_transactions(db_session, user_id)

        assert page.limit == settings.default_page_size
        assert page.total == 0
        assert page.items == []
