"""
Reminder Cron Job: scheduled nudges about projects and tasks.

Jobs:
- site-log-reminder: active projects with no site log today, grouped so each
  recipient receives one reminder listing all of their projects
- daily-briefing: per-user count of open tasks due today and overdue
- task-reminders: to-do tasks starting within the next half hour, one
  reminder per task to its assignee

No job is self-scheduling. An external trigger (the /cron/master route,
or this module's CLI from crontab) decides when they run.

Typical cron schedule:
    0 2 * * *   --job daily-briefing
    30 11 * * * --job site-log-reminder
    30 12 * * * --job task-reminders
"""

import asyncio
import logging
import traceback
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable
from uuid import UUID
from zoneinfo import ZoneInfo

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ..core.config import Settings, get_settings
from ..core.database import async_session_factory, get_session_context
from ..models import NotificationType, Project, ProjectStatus, Task
from ..services.dispatcher import DispatchReport, FanOutDispatcher
from ..services.entities import EntityStore, SqlEntityStore
from ..services.notification_service import build_dispatcher
from ..services.stakeholders import InclusionReason, Recipient, StakeholderSet
from ..services.templates import NotificationTemplate

logger = logging.getLogger(__name__)

SITE_LOG_REMINDER = "site-log-reminder"
DAILY_BRIEFING = "daily-briefing"
TASK_REMINDERS = "task-reminders"
ALL_JOBS = (DAILY_BRIEFING, SITE_LOG_REMINDER, TASK_REMINDERS)

# UTC hour -> job run by the master trigger
JOB_SCHEDULE = {
    2: DAILY_BRIEFING,
    11: SITE_LOG_REMINDER,
    12: TASK_REMINDERS,
}


@dataclass
class ReminderConfig:
    """Which projects count as active, who is reminded, and how tasks are announced."""
    active_statuses: tuple[str, ...] = ("active", "in_progress")
    designations: tuple[str, ...] = ("project manager", "site supervisor", "site engineer")
    include_owner: bool = True
    task_lead_time: timedelta = timedelta(minutes=30)
    display_timezone: str = "Asia/Kolkata"

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ReminderConfig":
        settings = settings or get_settings()
        return cls(
            active_statuses=valid_statuses(settings.reminder_active_statuses),
            designations=tuple(settings.reminder_designations),
            task_lead_time=timedelta(minutes=settings.task_reminder_lead_minutes),
            display_timezone=settings.reminder_timezone,
        )


def valid_statuses(values: Iterable[str]) -> tuple[str, ...]:
    """Known project statuses from configuration; unknown entries are dropped."""
    statuses = []
    for value in values:
        try:
            statuses.append(ProjectStatus(value.strip().lower()).value)
        except ValueError:
            logger.warning(f"Ignoring unknown project status in REMINDER_ACTIVE_STATUSES: {value!r}")
    return tuple(statuses)


@dataclass
class ReminderSummary:
    """Counts reported by one job run."""
    job: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    scanned: int = 0
    missing: int = 0
    skipped: int = 0
    recipients: int = 0
    reminders_sent: int = 0
    deliveries_sent: int = 0
    deliveries_failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        end = self.completed_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    @property
    def success(self) -> bool:
        return not self.errors

    def record(self, report: DispatchReport) -> None:
        self.reminders_sent += 1
        for tally in report.channels.values():
            self.deliveries_sent += tally.sent
            self.deliveries_failed += tally.failed

    def finish(self) -> "ReminderSummary":
        self.completed_at = datetime.now(timezone.utc)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "scanned": self.scanned,
            "missing": self.missing,
            "skipped": self.skipped,
            "recipients": self.recipients,
            "reminders_sent": self.reminders_sent,
            "deliveries_sent": self.deliveries_sent,
            "deliveries_failed": self.deliveries_failed,
            "errors": self.errors,
        }


# =============================================================================
# ALERTING
# =============================================================================


def alert_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=10)


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
) -> None:
    """
    Raise an operational alert about a reminder job.

    Always logged; also posted to Slack and/or a generic webhook when
    SLACK_ALERTS_WEBHOOK_URL / ALERT_WEBHOOK_URL are set. Never raises.
    """
    log_message = f"[CRON ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"

    if severity == "critical":
        logger.critical(log_message)
    else:
        logger.error(log_message)

    settings = get_settings()
    if not settings.alerts_enabled:
        return

    details = details or {}
    timestamp = datetime.now(timezone.utc).isoformat()
    targets = []
    if settings.slack_alerts_webhook_url:
        lines = [f"*{title}* ({severity.upper()})", message]
        lines += [f"• *{k}*: {v}" for k, v in details.items()]
        targets.append(("Slack", settings.slack_alerts_webhook_url, {"text": "\n".join(lines)}))
    if settings.alert_webhook_url:
        targets.append(("webhook", settings.alert_webhook_url, {
            "title": title,
            "message": message,
            "severity": severity,
            "timestamp": timestamp,
            "source": "studio-reminders",
            "details": details,
        }))

    async with alert_client() as client:
        for name, url, payload in targets:
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to send {name} alert: {e}")


# =============================================================================
# MESSAGES
# =============================================================================


def site_log_template(projects: list[Project]) -> NotificationTemplate:
    """One reminder covering every project a recipient has to log."""
    if len(projects) == 1:
        project = projects[0]
        return NotificationTemplate(
            title="Missing Site Log",
            message=(
                f'Reminder: No site log has been submitted for project "{project.title}" today. '
                f"Please update the work status."
            ),
            type=NotificationType.GENERAL,
            related_id=project.id,
            related_type="project",
        )

    titles = ", ".join(f'"{p.title}"' for p in projects)
    return NotificationTemplate(
        title=f"Missing Site Logs ({len(projects)})",
        message=(
            f"Reminder: No site log has been submitted today for {len(projects)} projects: "
            f"{titles}. Please update the work status."
        ),
        type=NotificationType.GENERAL,
    )


def briefing_message(due_today: int, overdue: int) -> str:
    if due_today and overdue:
        return f"Good Morning! You have {due_today} tasks due today and {overdue} overdue tasks."
    if due_today:
        return f"Good Morning! You have {due_today} tasks due today."
    return f"Reminder: You have {overdue} overdue tasks to catch up on."


def start_time_label(start_at: datetime, tz_name: str) -> str:
    """12-hour wall-clock time in the studio's timezone, e.g. ``10:30 AM``."""
    if start_at.tzinfo is None:
        start_at = start_at.replace(tzinfo=timezone.utc)
    local = start_at.astimezone(ZoneInfo(tz_name))
    return f"{local.hour % 12 or 12}:{local.minute:02d} {'AM' if local.hour < 12 else 'PM'}"



# =============================================================================
# SCHEDULER
# =============================================================================


class ReminderScheduler:
    """
    Runs the reminder sweeps against an EntityStore.

    Project and briefing nudges are ephemeral and skip the in-app inbox;
    task start reminders are kept there too.
    Sweeps never raise: failures are logged, alerted and returned in the
    summary.
    """

    def __init__(
        self,
        entities: EntityStore,
        dispatcher: FanOutDispatcher,
        config: ReminderConfig | None = None,
    ):
        self._entities = entities
        self._dispatcher = dispatcher
        self._config = config or ReminderConfig()

    async def run(self, job: str, today: date | None = None) -> ReminderSummary:
        if job == SITE_LOG_REMINDER:
            return await self.run_site_log_sweep(today)
        if job == DAILY_BRIEFING:
            return await self.run_daily_briefing(today)
        if job == TASK_REMINDERS:
            return await self.run_task_reminders()
        raise ValueError(f"Unknown reminder job: {job}")

    async def run_site_log_sweep(self, today: date | None = None) -> ReminderSummary:
        today = today or datetime.now(timezone.utc).date()
        summary = ReminderSummary(job=SITE_LOG_REMINDER)
        logger.info(f"Starting site log sweep for {today.isoformat()}")

        try:
            projects = await self._entities.list_projects_by_status(self._config.active_statuses)
            logged = await self._entities.project_ids_with_site_log(today)
            missing = [p for p in projects if p.id not in logged]
            summary.scanned = len(projects)
            summary.missing = len(missing)

            # recipient id -> (recipient, projects missing a log)
            grouped: dict[UUID, tuple[Recipient, list[Project]]] = {}
            for project in missing:
                try:
                    recipients = await self._site_log_recipients(project)
                except Exception as e:
                    summary.skipped += 1
                    summary.errors.append(f"Project {project.id}: {e}")
                    logger.error(f"Could not resolve reminder recipients for project {project.id}: {e}")
                    continue

                if not recipients:
                    summary.skipped += 1
                    logger.warning(f"No one to remind about project {project.id}")
                    continue

                for recipient in recipients:
                    grouped.setdefault(recipient.id, (recipient, []))[1].append(project)

            summary.recipients = len(grouped)
            await self._send_all(
                summary,
                ((recipient, site_log_template(items)) for recipient, items in grouped.values()),
            )

        except Exception as e:
            await self._fail(summary, e)

        summary.finish()
        logger.info(
            f"Site log sweep done in {summary.duration_seconds:.2f}s: "
            f"{summary.missing}/{summary.scanned} projects missing logs, "
            f"{summary.reminders_sent} reminders to {summary.recipients} recipients"
        )
        return summary

    async def run_daily_briefing(self, today: date | None = None) -> ReminderSummary:
        today = today or datetime.now(timezone.utc).date()
        summary = ReminderSummary(job=DAILY_BRIEFING)
        logger.info(f"Starting daily briefing for {today.isoformat()}")

        try:
            tasks = await self._entities.list_open_tasks_due_by(today)
            summary.scanned = len(tasks)

            stats = self._task_stats(tasks, today)
            users = await self._entities.get_users(list(stats))
            summary.recipients = len(users)

            jobs = []
            for user in users:
                due_today, overdue = stats[user.id]
                jobs.append((
                    Recipient.from_user(user),
                    NotificationTemplate(
                        title="Daily Briefing",
                        message=briefing_message(due_today, overdue),
                        type=NotificationType.GENERAL,
                        related_id=user.id,
                        related_type="daily_briefing",
                    ),
                ))
            await self._send_all(summary, jobs)

        except Exception as e:
            await self._fail(summary, e)

        summary.finish()
        logger.info(
            f"Daily briefing done in {summary.duration_seconds:.2f}s: "
            f"{summary.reminders_sent} briefings for {summary.scanned} open tasks"
        )
        return summary

    async def run_task_reminders(self, now: datetime | None = None) -> ReminderSummary:
        now = now or datetime.now(timezone.utc)
        summary = ReminderSummary(job=TASK_REMINDERS)
        window_end = now + self._config.task_lead_time
        logger.info(f"Starting task reminders for tasks starting before {window_end.isoformat()}")

        try:
            tasks = await self._entities.list_tasks_starting_between(now, window_end)
            summary.scanned = len(tasks)

            users = {u.id: u for u in await self._entities.get_users(list({t.assigned_to for t in tasks}))}
            summary.recipients = len(users)

            jobs = []
            for task in tasks:
                user = users.get(task.assigned_to)
                if user is None:
                    summary.skipped += 1
                    logger.warning(f"Assignee {task.assigned_to} of task {task.id} not found")
                    continue
                starts = start_time_label(task.start_at, self._config.display_timezone)
                jobs.append((
                    Recipient.from_user(user),
                    NotificationTemplate(
                        title="Task Starting Soon",
                        message=f'Reminder: "{task.title}" starts at {starts}.',
                        type=NotificationType.TASK_ASSIGNED,
                        related_id=task.id,
                        related_type="task",
                    ),
                ))
            # Task reminders also create inbox records
            await self._send_all(summary, jobs, skip_in_app=False)

        except Exception as e:
            await self._fail(summary, e)

        summary.finish()
        logger.info(
            f"Task reminders done in {summary.duration_seconds:.2f}s: "
            f"{summary.reminders_sent} reminders for {summary.scanned} upcoming tasks"
        )
        return summary

    async def _site_log_recipients(self, project: Project) -> list[Recipient]:

        """Members holding a listed role or designation, plus the project's owner."""
        allowed = {d.lower() for d in self._config.designations}
        recipients: dict[UUID, Recipient] = {}

        for user, role in await self._entities.get_project_members(project.id):
            titles = {(role or "").strip().lower(), (user.designation or "").strip().lower()}
            if titles & allowed:
                recipients.setdefault(user.id, Recipient.from_user(user))

        owner_id = project.primary_owner_id
        if self._config.include_owner and owner_id and owner_id not in recipients:
            owner = await self._entities.get_user(owner_id)
            if owner:
                recipients[owner.id] = Recipient.from_user(owner)

        return list(recipients.values())

    @staticmethod
    def _task_stats(tasks: Iterable[Task], today: date) -> dict[UUID, tuple[int, int]]:
        """assignee -> (due today, overdue)"""
        stats: dict[UUID, list[int]] = {}
        for task in tasks:
            if not task.assigned_to or not task.due_date:
                continue
            counts = stats.setdefault(task.assigned_to, [0, 0])
            if task.due_date == today:
                counts[0] += 1
            elif task.due_date < today:
                counts[1] += 1
        return {user_id: (c[0], c[1]) for user_id, c in stats.items() if c[0] or c[1]}

    async def _send_all(
        self,
        summary: ReminderSummary,
        jobs: Iterable[tuple[Recipient, NotificationTemplate]],
        skip_in_app: bool = True,
    ) -> None:
        dispatches = [
            self._dispatcher.dispatch(
                StakeholderSet.of([recipient], reason=InclusionReason.DIRECT),
                template,
                skip_in_app=skip_in_app,
            )
            for recipient, template in jobs
        ]
        for result in await asyncio.gather(*dispatches, return_exceptions=True):
            if isinstance(result, BaseException):
                summary.errors.append(f"Dispatch failed: {result}")
                logger.error(f"Reminder dispatch failed: {result}")
            else:
                summary.record(result)

    async def _fail(self, summary: ReminderSummary, error: Exception) -> None:
        summary.errors.append(f"{summary.job} failed: {error}")
        await send_alert(
            title="Reminder Cron Job Failed",
            message=f"The {summary.job} job crashed unexpectedly.",
            severity="critical",
            details={
                "error": str(error),
                "traceback": traceback.format_exc()[-500:],
                "started_at": summary.started_at.isoformat(),
                "reminders_before_crash": summary.reminders_sent,
            },
        )


# =============================================================================
# ENTRY POINTS
# =============================================================================


def jobs_for(job: str | None = None, now: datetime | None = None) -> list[str]:
    """
    Jobs the master trigger should run.

    An explicit ``job`` wins ("all" runs every job); otherwise the current
    UTC hour is looked up in JOB_SCHEDULE.
    """
    if job:
        if job == "all":
            return list(ALL_JOBS)
        if job not in ALL_JOBS:
            raise ValueError(f"Unknown reminder job: {job}")
        return [job]
    now = now or datetime.now(timezone.utc)
    scheduled = JOB_SCHEDULE.get(now.astimezone(timezone.utc).hour)
    return [scheduled] if scheduled else []


async def run_jobs(scheduler: ReminderScheduler, jobs: Iterable[str]) -> dict[str, Any]:
    """Run jobs in order and collect their summaries."""
    results: dict[str, Any] = {}
    for job in jobs:
        summary = await scheduler.run(job)
        results[job] = summary.to_dict()
        if summary.deliveries_failed:
            await send_alert(
                title="Reminder Job Completed with Warnings",
                message=f"{job} finished but {summary.deliveries_failed} deliveries failed.",
                severity="warning",
                details={
                    "deliveries_sent": summary.deliveries_sent,
                    "deliveries_failed": summary.deliveries_failed,
                    "errors": summary.errors[:5],
                },
            )
    return results


async def run_reminder_job(
    database_url: str | None = None,
    job: str | None = None,
    config: ReminderConfig | None = None,
) -> dict[str, Any]:
    """
    Run reminder jobs outside a request.

    With a ``database_url`` the run gets its own engine (the CLI path);
    without one it uses the application's engine.

    Args:
        database_url: Async SQLAlchemy URL (postgresql+asyncpg://...), or None
        job: Job name, "all", or None for the job scheduled this UTC hour
        config: Reminder configuration

    Returns:
        Summary per job that ran
    """
    config = config or ReminderConfig.from_settings()
    if database_url is None:
        async with get_session_context() as session:
            scheduler = ReminderScheduler(
                SqlEntityStore(session), build_dispatcher(async_session_factory), config=config,
            )
            return await run_jobs(scheduler, jobs_for(job))

    engine = create_async_engine(database_url)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with session_factory() as session:
            scheduler = ReminderScheduler(
                SqlEntityStore(session),
                build_dispatcher(session_factory),
                config=config,
            )
            return await run_jobs(scheduler, jobs_for(job))
    finally:
        await engine.dispose()


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the reminder jobs."""
    import argparse
    import os

    parser = argparse.ArgumentParser(description="Run the daily reminder jobs")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="PostgreSQL connection string",
    )
    parser.add_argument(
        "--job",
        choices=[*ALL_JOBS, "all"],
        default=None,
        help="Job to run (default: whichever is scheduled for the current UTC hour)",
    )

    args = parser.parse_args()

    if not args.database_url:
        print("Error: DATABASE_URL is required")
        raise SystemExit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    database_url = args.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    try:
        results = asyncio.run(run_reminder_job(database_url=database_url, job=args.job))
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        raise SystemExit(1)

    if any(not r["success"] for r in results.values()):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
