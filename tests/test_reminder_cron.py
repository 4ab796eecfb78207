"""
Tests for the reminder jobs.

These tests verify:
1. Only active projects without today's site log trigger reminders
2. A recipient missing logs on several projects gets ONE reminder naming all of them
3. Site log and briefing reminders never create inbox records
4. One broken project does not abort the sweep; a broken sweep does not raise
5. The daily briefing counts due-today and overdue tasks per assignee
6. Tasks starting within the lead time remind their assignee, inbox included
"""

import json
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import func, select

from studio_notifications.core.config import Settings
from studio_notifications.jobs import reminder_cron
from studio_notifications.jobs.reminder_cron import (
    DAILY_BRIEFING,
    SITE_LOG_REMINDER,
    TASK_REMINDERS,
    ReminderConfig,
    ReminderScheduler,
    briefing_message,
    jobs_for,
    start_time_label,
)
from studio_notifications.models import (
    Notification,
    NotificationType,
    Project,
    ProjectMember,
    ProjectStatus,
    SiteLog,
    Task,
    TaskStatus,
)
from studio_notifications.services.channels import ChannelKind, InAppChannel
from studio_notifications.services.dispatcher import FanOutDispatcher
from studio_notifications.services.entities import SqlEntityStore

from test_dispatcher import RecordingChannel

TODAY = date(2026, 3, 10)


@pytest.fixture
def alerts(monkeypatch) -> list[dict]:
    sent = []

    async def fake_send_alert(title, message, severity="error", details=None):
        sent.append({"title": title, "severity": severity, "details": details})

    monkeypatch.setattr(reminder_cron, "send_alert", fake_send_alert)
    return sent


@pytest.fixture
async def portfolio(session, studio):
    """Two more active projects for Ravi, one logged today, one completed."""
    kitchen = Project(title="Kitchen Remodel", status=ProjectStatus.IN_PROGRESS, created_by=studio.owner.id)
    office = Project(title="Office Fit-out", status=ProjectStatus.ACTIVE, created_by=studio.owner.id)
    logged = Project(title="Loft Conversion", status=ProjectStatus.ACTIVE, created_by=studio.owner.id)
    closed = Project(title="Old Showroom", status=ProjectStatus.COMPLETED, created_by=studio.owner.id)
    session.add_all([kitchen, office, logged, closed])
    await session.flush()

    for project in (kitchen, office, logged, closed):
        session.add(ProjectMember(project_id=project.id, user_id=studio.supervisor.id))
    session.add(SiteLog(project_id=logged.id, log_date=TODAY, submitted_by=studio.supervisor.id))
    await session.commit()
    return {"kitchen": kitchen, "office": office, "logged": logged, "closed": closed}


def push_by_user(push: RecordingChannel) -> dict:
    return {recipient.id: (title, body) for recipient, title, body, _ in push.sent}


# =============================================================================
# SITE LOG SWEEP
# =============================================================================


class TestSiteLogSweep:
    """Tests for the missing-site-log reminder."""

    async def test_groups_projects_per_recipient(self, session, studio, portfolio, alerts):
        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(SqlEntityStore(session), FanOutDispatcher([push]))

        summary = await scheduler.run_site_log_sweep(TODAY)

        assert summary.scanned == 4
        assert summary.missing == 3
        assert summary.recipients == 2
        assert summary.reminders_sent == 2

        messages = push_by_user(push)
        assert set(messages) == {studio.supervisor.id, studio.owner.id}
        title, body = messages[studio.supervisor.id]
        assert title == "Missing Site Logs (3)"
        for name in ("Villa Renovation", "Kitchen Remodel", "Office Fit-out"):
            assert name in body
        assert "Loft Conversion" not in body
        assert "Old Showroom" not in body

    async def test_single_project_reminder_wording(self, session, studio, alerts):
        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(SqlEntityStore(session), FanOutDispatcher([push]))

        await scheduler.run_site_log_sweep(TODAY)

        title, body = push_by_user(push)[studio.supervisor.id]
        assert title == "Missing Site Log"
        assert body.startswith('Reminder: No site log has been submitted for project "Villa Renovation" today.')

    async def test_plain_members_are_not_reminded(self, session, studio, portfolio, alerts):
        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(SqlEntityStore(session), FanOutDispatcher([push]))

        await scheduler.run_site_log_sweep(TODAY)

        assert studio.carpenter.id not in push_by_user(push)
        assert studio.designer.id not in push_by_user(push)

    async def test_project_role_counts_as_designation(self, session, studio, alerts):
        member = (await session.execute(
            select(ProjectMember).where(ProjectMember.user_id == studio.carpenter.id)
        )).scalar_one()
        member.role = "Project Manager"
        await session.commit()

        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(SqlEntityStore(session), FanOutDispatcher([push]))
        await scheduler.run_site_log_sweep(TODAY)

        assert studio.carpenter.id in push_by_user(push)

    async def test_reminders_create_no_inbox_records(self, session, session_factory, studio, alerts):
        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(
            SqlEntityStore(session),
            FanOutDispatcher([InAppChannel(session_factory), push]),
        )

        summary = await scheduler.run_site_log_sweep(TODAY)

        assert summary.reminders_sent == 2
        count = (await session.execute(select(func.count(Notification.id)))).scalar_one()
        assert count == 0

    async def test_failing_project_is_skipped(self, session, studio, portfolio, alerts):
        broken_id = portfolio["kitchen"].id

        class FlakyStore(SqlEntityStore):
            async def get_project_members(self, project_id):
                if project_id == broken_id:
                    raise RuntimeError("timeout")
                return await super().get_project_members(project_id)

        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(FlakyStore(session), FanOutDispatcher([push]))

        summary = await scheduler.run_site_log_sweep(TODAY)

        assert summary.skipped == 1
        assert len(summary.errors) == 1
        title, body = push_by_user(push)[studio.supervisor.id]
        assert "Kitchen Remodel" not in body
        assert "Office Fit-out" in body

    async def test_sweep_failure_is_reported_not_raised(self, session, alerts):
        class DownStore(SqlEntityStore):
            async def list_projects_by_status(self, statuses):
                raise RuntimeError("database unavailable")

        scheduler = ReminderScheduler(DownStore(session), FanOutDispatcher([]))

        summary = await scheduler.run_site_log_sweep(TODAY)

        assert summary.success is False
        assert summary.completed_at is not None
        assert alerts[0]["severity"] == "critical"

    async def test_owner_can_be_excluded(self, session, studio, alerts):
        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(
            SqlEntityStore(session),
            FanOutDispatcher([push]),
            config=ReminderConfig(include_owner=False),
        )

        await scheduler.run_site_log_sweep(TODAY)

        assert set(push_by_user(push)) == {studio.supervisor.id}


# =============================================================================
# DAILY BRIEFING
# =============================================================================


class TestDailyBriefing:
    """Tests for the per-user task briefing."""

    async def test_counts_due_today_and_overdue(self, session, studio, alerts):
        session.add_all([
            Task(title="Order tiles", assigned_to=studio.carpenter.id, due_date=TODAY),
            Task(title="Fix hinge", assigned_to=studio.carpenter.id, due_date=TODAY - timedelta(days=2)),
            Task(title="Done already", assigned_to=studio.carpenter.id, due_date=TODAY, status=TaskStatus.DONE),
            Task(title="Next week", assigned_to=studio.designer.id, due_date=TODAY + timedelta(days=7)),
            Task(title="Late moodboard", assigned_to=studio.designer.id, due_date=TODAY - timedelta(days=1)),
        ])
        await session.commit()

        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(SqlEntityStore(session), FanOutDispatcher([push]))

        summary = await scheduler.run_daily_briefing(TODAY)

        messages = push_by_user(push)
        assert summary.reminders_sent == 2
        assert messages[studio.carpenter.id][1].startswith("Good Morning! You have 1 tasks due today and")
        assert messages[studio.designer.id] == (
            "Daily Briefing", "Reminder: You have 1 overdue tasks to catch up on.",
        )
        assert studio.supervisor.id not in messages

    def test_briefing_message_variants(self):
        assert briefing_message(2, 0) == "Good Morning! You have 2 tasks due today."
        assert briefing_message(1, 3) == "Good Morning! You have 1 tasks due today and 3 overdue tasks."
        assert briefing_message(0, 4) == "Reminder: You have 4 overdue tasks to catch up on."


# =============================================================================
# TASK REMINDERS
# =============================================================================


NOW = datetime(2026, 3, 10, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
async def upcoming(session, studio):
    """Calendar tasks around NOW; only "Site visit" starts within the half hour."""
    session.add_all([
        Task(title="Site visit", assigned_to=studio.carpenter.id, start_at=NOW + timedelta(minutes=10)),
        Task(title="Client call", assigned_to=studio.designer.id, start_at=NOW + timedelta(minutes=45)),
        Task(title="Already started", assigned_to=studio.carpenter.id, start_at=NOW - timedelta(minutes=5)),
        Task(
            title="Finished early", assigned_to=studio.designer.id,
            start_at=NOW + timedelta(minutes=5), status=TaskStatus.DONE,
        ),
        Task(title="Nobody's job", start_at=NOW + timedelta(minutes=5)),
    ])
    await session.commit()


class TestTaskReminders:
    """Tests for the task-starting-soon reminder."""

    async def test_reminds_assignee_of_task_starting_soon(self, session, studio, upcoming, alerts):
        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(SqlEntityStore(session), FanOutDispatcher([push]))

        summary = await scheduler.run_task_reminders(NOW)

        assert summary.success
        assert summary.scanned == 1
        assert summary.reminders_sent == 1
        # 12:40 UTC is 6:10 PM in Asia/Kolkata
        assert push_by_user(push) == {
            studio.carpenter.id: ("Task Starting Soon", 'Reminder: "Site visit" starts at 6:10 PM.'),
        }

    async def test_lead_time_and_timezone_are_configurable(self, session, studio, upcoming, alerts):
        push = RecordingChannel(ChannelKind.PUSH)
        config = ReminderConfig(task_lead_time=timedelta(hours=1), display_timezone="UTC")
        scheduler = ReminderScheduler(SqlEntityStore(session), FanOutDispatcher([push]), config=config)

        summary = await scheduler.run_task_reminders(NOW)

        assert summary.scanned == 2
        assert push_by_user(push)[studio.designer.id][1] == 'Reminder: "Client call" starts at 1:15 PM.'

    async def test_task_reminders_reach_the_inbox(self, session, session_factory, studio, upcoming, alerts):
        scheduler = ReminderScheduler(
            SqlEntityStore(session),
            FanOutDispatcher([InAppChannel(session_factory), RecordingChannel(ChannelKind.PUSH)]),
        )

        await scheduler.run_task_reminders(NOW)

        async with session_factory() as check:
            records = (await check.execute(
                select(Notification).where(Notification.title == "Task Starting Soon")
            )).scalars().all()
        assert [(r.user_id, r.type, r.related_type) for r in records] == [
            (studio.carpenter.id, NotificationType.TASK_ASSIGNED, "task"),
        ]

    async def test_nothing_upcoming(self, session, studio, alerts):
        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(SqlEntityStore(session), FanOutDispatcher([push]))

        summary = await scheduler.run(TASK_REMINDERS)

        assert summary.success
        assert summary.reminders_sent == 0
        assert push.sent == []

    def test_start_time_label(self):
        assert start_time_label(datetime(2026, 3, 10, 4, 30, tzinfo=timezone.utc), "Asia/Kolkata") == "10:00 AM"
        assert start_time_label(datetime(2026, 3, 10, 0, 5), "UTC") == "12:05 AM"
        assert start_time_label(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc), "UTC") == "12:00 PM"


# =============================================================================
# CONFIGURATION
# =============================================================================


class TestReminderConfig:
    def test_unknown_statuses_are_dropped(self):
        settings = Settings(_env_file=None, REMINDER_ACTIVE_STATUSES="active, actve, IN_PROGRESS")

        config = ReminderConfig.from_settings(settings)

        assert config.active_statuses == ("active", "in_progress")

    async def test_sweep_runs_with_misconfigured_status(self, session, studio, alerts):
        settings = Settings(_env_file=None, REMINDER_ACTIVE_STATUSES="actve,in_progress")
        push = RecordingChannel(ChannelKind.PUSH)
        scheduler = ReminderScheduler(
            SqlEntityStore(session), FanOutDispatcher([push]), config=ReminderConfig.from_settings(settings),
        )

        summary = await scheduler.run_site_log_sweep(TODAY)

        assert summary.success
        assert alerts == []


# =============================================================================
# ALERTING
# =============================================================================


class TestSendAlert:
    """Operational alerts go to every configured webhook and never raise."""

    @pytest.fixture
    def posted(self, monkeypatch) -> list[tuple[str, dict]]:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append((request.url.host, json.loads(request.content)))
            # Slack is down; the generic webhook must still be tried
            return httpx.Response(500 if request.url.host == "hooks.slack.test" else 200)

        settings = Settings(
            _env_file=None,
            SLACK_ALERTS_WEBHOOK_URL="https://hooks.slack.test/T0/B0",
            ALERT_WEBHOOK_URL="https://alerts.test/hook",
        )
        monkeypatch.setattr(reminder_cron, "get_settings", lambda: settings)
        monkeypatch.setattr(
            reminder_cron, "alert_client",
            lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        return requests

    async def test_posts_to_both_webhooks(self, posted):
        await reminder_cron.send_alert("Sweep failed", "boom", severity="critical", details={"job": "x"})

        assert [host for host, _ in posted] == ["hooks.slack.test", "alerts.test"]
        slack, webhook = posted[0][1], posted[1][1]
        assert slack["text"].startswith("*Sweep failed* (CRITICAL)\nboom")
        assert "• *job*: x" in slack["text"]
        assert webhook["severity"] == "critical"
        assert webhook["details"] == {"job": "x"}
        assert webhook["source"] == "studio-reminders"

    async def test_nothing_posted_without_webhooks(self, monkeypatch):
        monkeypatch.setattr(reminder_cron, "get_settings", lambda: Settings(_env_file=None))

        def fail():
            raise AssertionError("no client expected")

        monkeypatch.setattr(reminder_cron, "alert_client", fail)

        await reminder_cron.send_alert("Quiet", "nothing configured")


# =============================================================================
# TRIGGER
# =============================================================================


class TestJobSelection:
    """Which job the master trigger runs."""

    def test_by_utc_hour(self):
        assert jobs_for(now=datetime(2026, 3, 10, 2, 5, tzinfo=timezone.utc)) == [DAILY_BRIEFING]
        assert jobs_for(now=datetime(2026, 3, 10, 11, 30, tzinfo=timezone.utc)) == [SITE_LOG_REMINDER]
        assert jobs_for(now=datetime(2026, 3, 10, 12, 30, tzinfo=timezone.utc)) == [TASK_REMINDERS]
        assert jobs_for(now=datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)) == []

    def test_explicit_job_wins(self):
        now = datetime(2026, 3, 10, 2, 0, tzinfo=timezone.utc)
        assert jobs_for(SITE_LOG_REMINDER, now) == [SITE_LOG_REMINDER]
        assert jobs_for("all", now) == [DAILY_BRIEFING, SITE_LOG_REMINDER, TASK_REMINDERS]

    def test_unknown_job_rejected(self):
        with pytest.raises(ValueError):
            jobs_for("weekly-digest")
