"""
Integration tests for the account, ledger and messaging flows.

Flows never raise: every failure is checked through the returned
ActionResult and its ErrorKind tag.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from smart_prise.audit import AuditLogger
from smart_prise.models.ledger import BOOTSTRAP_ADMIN_ID, Theme
from smart_prise.models.results import ErrorKind
from smart_prise.orchestrator import (
    AccountFlow,
    LedgerFlow,
    MessagingFlow,
    create_app_components,
)
from smart_prise.services.storage import InMemoryDocumentStore, LocalFileDocumentStore
from smart_prise.sync import SyncMediator

NOW = datetime(2025, 1, 15, 10, 0)


class App:
    """All flows wired to one store, as create_app_components does."""

    def __init__(self, store):
        self.store = store
        audit_logger = AuditLogger(store)
        self.mediator = SyncMediator(store, audit_logger=audit_logger)
        self.accounts = AccountFlow(self.mediator, audit_logger)
        self.ledger = LedgerFlow(self.mediator, audit_logger, locale="en", clock=lambda: NOW)
        self.messaging = MessagingFlow(self.mediator, audit_logger, clock=lambda: NOW)

    async def start(self):
        await self.mediator.start(timeout=1)
        return self

    async def login(self, username="admin", password="admin"):
        result, session = await self.accounts.login(username, password)
        assert result.success, result.message
        return session


async def _app(store) -> App:
    return await App(store).start()


class TestAccountFlow:
    """Login, logout and user administration."""

    @pytest.mark.asyncio
    async def test_admin_can_log_in(self, store):
        app = await _app(store)
        result, session = await app.accounts.login("admin", "admin")
        assert result.success
        assert session.user_id == BOOTSTRAP_ADMIN_ID
        assert session.ledger_ready

    @pytest.mark.asyncio
    async def test_denial_does_not_reveal_which_part_was_wrong(self, store):
        app = await _app(store)
        wrong_password, session = await app.accounts.login("admin", "nope")
        unknown_user, _ = await app.accounts.login("ghost", "admin")

        assert session is None
        assert wrong_password.error_kind == ErrorKind.AUTHENTICATION
        assert wrong_password.message == unknown_user.message

    @pytest.mark.asyncio
    async def test_login_before_sync(self, store):
        app = App(store)
        result, session = await app.accounts.login("admin", "admin")
        assert result.error_kind == ErrorKind.SYNC_UNAVAILABLE
        assert session is None

    @pytest.mark.asyncio
    async def test_login_is_audited(self, store):
        app = await _app(store)
        await app.login()
        events = (await store.get("audit")).values()
        assert "login_succeeded" in {event["event_type"] for event in events}

    @pytest.mark.asyncio
    async def test_admin_creates_user(self, store):
        app = await _app(store)
        admin = await app.login()

        result = await app.accounts.create_user(admin, "sara", "pw")

        assert result.success
        assert app.mediator.users[result.entity_id].username == "sara"
        sara = await app.login("sara", "pw")
        assert not sara.user.is_admin

    @pytest.mark.asyncio
    async def test_duplicate_username_rejected(self, store):
        app = await _app(store)
        admin = await app.login()
        await app.accounts.create_user(admin, "sara", "pw")

        result = await app.accounts.create_user(admin, "sara", "other")
        assert result.error_kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_non_admin_cannot_manage_users(self, store):
        app = await _app(store)
        admin = await app.login()
        created = await app.accounts.create_user(admin, "sara", "pw")
        sara = await app.login("sara", "pw")

        assert (await app.accounts.create_user(sara, "omar", "pw")).error_kind == ErrorKind.PERMISSION_DENIED
        assert (await app.accounts.delete_user(sara, created.entity_id)).error_kind == ErrorKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_delete_user_removes_ledger(self, store):
        app = await _app(store)
        admin = await app.login()
        created = await app.accounts.create_user(admin, "sara", "pw")
        sara = await app.login("sara", "pw")
        await app.ledger.set_salary(sara, "3000")
        assert await store.get(f"data/{sara.user_id}") is not None

        result = await app.accounts.delete_user(admin, created.entity_id)

        assert result.success
        assert created.entity_id not in app.mediator.users
        assert await store.get(f"data/{sara.user_id}") is None

    @pytest.mark.asyncio
    async def test_bootstrap_admin_cannot_be_deleted(self, store):
        app = await _app(store)
        admin = await app.login()
        result = await app.accounts.delete_user(admin, BOOTSTRAP_ADMIN_ID)
        assert result.error_kind == ErrorKind.PERMISSION_DENIED
        assert BOOTSTRAP_ADMIN_ID in app.mediator.users

    @pytest.mark.asyncio
    async def test_delete_unknown_user_is_noop(self, store):
        app = await _app(store)
        admin = await app.login()
        assert (await app.accounts.delete_user(admin, "missing")).success

    @pytest.mark.asyncio
    async def test_change_password(self, store):
        app = await _app(store)
        admin = await app.login()

        assert (await app.accounts.change_password(admin, "new-secret")).success

        old, _ = await app.accounts.login("admin", "admin")
        assert old.error_kind == ErrorKind.AUTHENTICATION
        await app.login("admin", "new-secret")

    @pytest.mark.asyncio
    async def test_change_password_does_not_restore_deleted_account(self, store):
        app = await _app(store)
        admin = await app.login()
        created = await app.accounts.create_user(admin, "sara", "pw")
        sara = await app.login("sara", "pw")
        await app.accounts.delete_user(admin, created.entity_id)

        result = await app.accounts.change_password(sara, "new")

        assert result.success
        assert app.mediator.find_user_by_name("sara") is None
        assert await store.get(f"users/{created.entity_id}") is None

    @pytest.mark.asyncio
    async def test_logout_stops_delivery(self, store):
        app = await _app(store)
        session = await app.login()

        assert (await app.accounts.logout(session)).success
        await store.set("data/admin/salary", 999)

        assert session.closed
        assert session.ledger.salary == Decimal("0")
        result = await app.ledger.set_salary(session, "10")
        assert result.error_kind == ErrorKind.SYNC_UNAVAILABLE


class TestLedgerFlow:
    """Salary, expenses, commitments and archival through the store."""

    @pytest.mark.asyncio
    async def test_household_month(self, store):
        app = await _app(store)
        session = await app.login()

        await app.ledger.set_salary(session, "5000")
        await app.ledger.add_expense(session, "1200", "الكهرباء")
        added = await app.ledger.add_expense(session, "300", "المياه")
        assert app.ledger.summary(session).balance == Decimal("3500")

        result = await app.ledger.toggle_expense_paid(session, added.entity_id)

        assert result.success
        assert app.ledger.summary(session).balance == Decimal("3800")
        stored = await store.get("data/admin")
        assert stored["salary"] == 5000
        assert [e["paid"] for e in stored["expenses"]] == [False, True]

    @pytest.mark.asyncio
    async def test_expense_defaults(self, store):
        app = await _app(store)
        session = await app.login()
        result = await app.ledger.add_expense(session, "100", "الغاز")
        expense = result.ledger.expenses[0]
        assert expense.name == "الغاز"
        assert expense.due_date == date(2025, 1, 15)
        assert expense.owner_id == BOOTSTRAP_ADMIN_ID
        assert app.ledger.summary(session).has_due_today

    @pytest.mark.asyncio
    async def test_invalid_input_leaves_state_untouched(self, store):
        app = await _app(store)
        session = await app.login()

        result = await app.ledger.add_expense(session, "-5", "الغاز")

        assert result.error_kind == ErrorKind.VALIDATION
        assert result.issues
        assert session.ledger.expenses == []
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back(self, store):
        app = await _app(store)
        session = await app.login()
        store.fail_updates = True

        result = await app.ledger.set_salary(session, "5000")

        assert result.error_kind == ErrorKind.STORAGE
        assert session.ledger.salary == Decimal("0")

    @pytest.mark.asyncio
    async def test_delete_expense(self, store):
        app = await _app(store)
        session = await app.login()
        added = await app.ledger.add_expense(session, "100", "الغاز")

        assert (await app.ledger.delete_expense(session, added.entity_id)).success
        assert session.ledger.expenses == []
        assert await store.get("data/admin/expenses") is None

    @pytest.mark.asyncio
    async def test_unknown_ids_are_noops(self, store):
        app = await _app(store)
        session = await app.login()

        for result in [
            await app.ledger.toggle_expense_paid(session, "missing"),
            await app.ledger.delete_expense(session, "missing"),
            await app.ledger.pay_installment(session, "missing"),
            await app.ledger.delete_commitment(session, "missing"),
        ]:
            assert result.success
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_installments_until_completed(self, store):
        app = await _app(store)
        session = await app.login()
        added = await app.ledger.add_commitment(session, "جمعيات", "1200", "12", duration="12 شهر")

        first = await app.ledger.pay_installment(session, added.entity_id)
        commitment = first.ledger.commitments[0]
        assert commitment.paid_amount == Decimal("100")
        assert commitment.remaining_amount == Decimal("1100")

        for _ in range(11):
            result = await app.ledger.pay_installment(session, added.entity_id)
        assert result.message == "Commitment completed"
        assert session.ledger.commitments[0].completed

        writes = len(store.updates)
        extra = await app.ledger.pay_installment(session, added.entity_id)
        assert extra.success
        assert extra.message == "Commitment already completed"
        assert len(store.updates) == writes

    @pytest.mark.asyncio
    async def test_invalid_commitment_rejected(self, store):
        app = await _app(store)
        session = await app.login()
        result = await app.ledger.add_commitment(session, "جمعيات", "1200", "0")
        assert result.error_kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_delete_commitment(self, store):
        app = await _app(store)
        session = await app.login()
        added = await app.ledger.add_commitment(session, "اقساط بنك", "600", "3")
        await app.ledger.delete_commitment(session, added.entity_id)
        assert session.ledger.commitments == []

    @pytest.mark.asyncio
    async def test_archive_month_is_one_write(self, store):
        app = await _app(store)
        session = await app.login()
        await app.ledger.set_salary(session, "4000")
        await app.ledger.add_expense(session, "1000", "الكهرباء")
        await app.ledger.add_expense(session, "500", "المياه")

        seen = []
        await store.subscribe("data/admin", seen.append)
        store.updates.clear()

        result = await app.ledger.archive_month(session)

        assert result.success
        assert store.updates == [
            ("data/admin", {"history": store.updates[0][1]["history"], "expenses": []})
        ]
        # No snapshot ever shows the record while expenses are still active
        assert not any(v.get("history") and v.get("expenses") for v in seen)

        record = session.ledger.history[0]
        assert record.total_expenses == Decimal("1500")
        assert record.salary == Decimal("4000")
        assert record.month_name == "January 2025"
        assert session.ledger.expenses == []
        assert session.ledger.salary == Decimal("4000")

    @pytest.mark.asyncio
    async def test_archive_empty_month_is_noop(self, store):
        app = await _app(store)
        session = await app.login()
        await app.ledger.set_salary(session, "4000")
        store.updates.clear()

        result = await app.ledger.archive_month(session)

        assert result.success
        assert store.updates == []
        assert session.ledger.history == []

    @pytest.mark.asyncio
    async def test_set_theme(self, store):
        app = await _app(store)
        session = await app.login()

        assert (await app.ledger.set_theme(session, "dark")).success
        assert session.theme == Theme.DARK
        assert await store.get("data/admin/theme") == "dark"

        assert (await app.ledger.set_theme(session, "neon")).error_kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_change_reaches_other_session(self, store):
        app = await _app(store)
        phone = await app.login()
        laptop = await app.login()

        await app.ledger.set_salary(phone, "2500")

        assert laptop.ledger.salary == Decimal("2500")


class TestMessagingFlow:
    """Broadcast and direct messages."""

    @pytest.mark.asyncio
    async def test_broadcast_and_direct(self, store):
        app = await _app(store)
        admin = await app.login()
        created = await app.accounts.create_user(admin, "sara", "pw")
        sara = await app.login("sara", "pw")

        await app.messaging.send_message(admin, "hello all")
        await app.messaging.send_message(admin, "hi sara", recipient=sara.user_id)
        await app.messaging.send_message(sara, "hi admin", recipient=admin.user_id)

        assert [m.text for m in app.messaging.visible_messages(sara)] == ["hello all"]
        assert [m.text for m in app.messaging.visible_messages(sara, admin.user_id)] == [
            "hi sara",
            "hi admin",
        ]
        assert [m.text for m in app.messaging.visible_messages(admin, created.entity_id)] == [
            "hi sara",
            "hi admin",
        ]
        assert app.messaging.conversation_partners(admin) == [sara.user_id]

    @pytest.mark.asyncio
    async def test_unknown_recipient_rejected(self, store):
        app = await _app(store)
        admin = await app.login()
        result = await app.messaging.send_message(admin, "hi", recipient="ghost")
        assert result.error_kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, store):
        app = await _app(store)
        admin = await app.login()
        result = await app.messaging.send_message(admin, "   ")
        assert result.error_kind == ErrorKind.VALIDATION
        assert app.mediator.messages == []

    @pytest.mark.asyncio
    async def test_only_sender_deletes(self, store):
        app = await _app(store)
        admin = await app.login()
        await app.accounts.create_user(admin, "sara", "pw")
        sara = await app.login("sara", "pw")
        sent = await app.messaging.send_message(admin, "hello all")

        denied = await app.messaging.delete_message(sara, sent.entity_id)
        assert denied.error_kind == ErrorKind.PERMISSION_DENIED
        assert len(app.mediator.messages) == 1

        assert (await app.messaging.delete_message(admin, sent.entity_id)).success
        assert app.mediator.messages == []

    @pytest.mark.asyncio
    async def test_delete_unknown_message_is_noop(self, store):
        app = await _app(store)
        admin = await app.login()
        assert (await app.messaging.delete_message(admin, "missing")).success


class TestLocalFileFailures:
    """Disk failures come back as storage errors with nothing left behind."""

    @pytest.mark.asyncio
    async def test_unwritable_directory_is_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        app = await _app(LocalFileDocumentStore(blocker / "ledger.json"))
        session = await app.login()

        result = await app.ledger.set_salary(session, "3000")

        assert result.error_kind == ErrorKind.STORAGE
        assert session.ledger.salary == Decimal("0")

    @pytest.mark.asyncio
    async def test_failed_save_rolls_back_session(self, tmp_path):
        path = tmp_path / "ledger.json"
        app = await _app(LocalFileDocumentStore(path))
        session = await app.login()
        assert (await app.ledger.set_salary(session, "1000")).success

        path.unlink()
        path.mkdir()
        result = await app.ledger.set_salary(session, "3000")

        assert result.error_kind == ErrorKind.STORAGE
        assert session.ledger.salary == Decimal("1000")
        assert await app.store.get("data/admin/salary") == 1000.0


class TestAppComponents:
    """Factory wiring."""

    @pytest.mark.asyncio
    async def test_memory_backend(self):
        accounts, ledger, messaging, mediator = create_app_components("memory")
        assert isinstance(mediator.store, InMemoryDocumentStore)

        await mediator.start(timeout=1)
        result, session = await accounts.login(mediator.admin_username, "admin")
        assert result.success
        assert (await ledger.set_salary(session, "100")).success
        assert (await messaging.send_message(session, "hi")).success
        await mediator.stop()
