"""
Stakeholder Resolver: who must hear about an event, and why.

Rules are applied additively and the result is deduplicated by user id:
1. Direct target  - the entity's single designated recipient
                    (design uploader, task assignee, bill submitter)
2. Owner          - the project's administrative owner
3. Broadcast      - every project member, for project-wide kinds
4. Mentions       - @handles in the event text matched against members

The actor is never included. The first rule that includes a user decides the
reason recorded for them; the reason only picks the message wording.

Resolution is a side effect of a business action, never a dependency of it:
any lookup failure yields an empty set instead of an exception.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator
from uuid import UUID

from ..models import Project, User
from .entities import EntityNotFoundError, EntityStore
from .events import EventKind, NotificationEvent

logger = logging.getLogger(__name__)


# =============================================================================
# TYPES
# =============================================================================


class InclusionReason(str, Enum):
    UPLOADER = "uploader"
    ASSIGNEE = "assignee"
    SUBMITTER = "submitter"
    PROJECT_OWNER = "project_owner"
    MEMBER = "member"
    MENTIONED = "mentioned"
    DIRECT = "direct"


@dataclass(frozen=True)
class Recipient:
    """The parts of a user the delivery channels need."""
    id: UUID
    full_name: str
    phone_number: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "Recipient":
        return cls(id=user.id, full_name=user.full_name, phone_number=user.phone_number)


@dataclass(frozen=True)
class Stakeholder:
    recipient: Recipient
    reason: InclusionReason

    @property
    def user_id(self) -> UUID:
        return self.recipient.id


@dataclass
class EventContext:
    """Display names gathered during resolution, used by templates."""
    actor_name: str = "Someone"
    project_id: UUID | None = None
    project_title: str | None = None
    entity_id: UUID | None = None
    entity_kind: str | None = None
    entity_name: str | None = None


class StakeholderSet:
    """Ordered set of stakeholders keyed by user id, never containing the actor."""

    def __init__(self, actor_id: UUID | None = None, context: EventContext | None = None):
        self.actor_id = actor_id
        self.context = context or EventContext()
        self._members: dict[UUID, Stakeholder] = {}

    def add(
        self,
        recipient: Recipient,
        reason: InclusionReason,
        allow_self: bool = False,
    ) -> bool:
        """Include a user. Returns False if they were the actor or already present."""
        if recipient.id == self.actor_id and not allow_self:
            return False
        if recipient.id in self._members:
            return False
        self._members[recipient.id] = Stakeholder(recipient=recipient, reason=reason)
        return True

    @classmethod
    def of(
        cls,
        recipients: Iterable[Recipient],
        reason: InclusionReason = InclusionReason.DIRECT,
        actor_id: UUID | None = None,
        context: EventContext | None = None,
    ) -> "StakeholderSet":
        stakeholders = cls(actor_id=actor_id, context=context)
        for recipient in recipients:
            stakeholders.add(recipient, reason)
        return stakeholders

    def reason_for(self, user_id: UUID) -> InclusionReason | None:
        stakeholder = self._members.get(user_id)
        return stakeholder.reason if stakeholder else None

    @property
    def user_ids(self) -> list[UUID]:
        return list(self._members)

    def __iter__(self) -> Iterator[Stakeholder]:
        return iter(list(self._members.values()))

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._members

    def __repr__(self) -> str:
        reasons = ", ".join(f"{s.user_id}:{s.reason.value}" for s in self)
        return f"StakeholderSet({reasons})"


# =============================================================================
# RULES
# =============================================================================


@dataclass(frozen=True)
class KindRule:
    direct: str | None = None  # "design_uploader" | "task_assignee" | "bill_submitter"
    escalate_owner: bool = False
    broadcast: bool = False
    scan_mentions: bool = False


RULES: dict[EventKind, KindRule] = {
    EventKind.COMMENT_ADDED: KindRule(direct="design_uploader", escalate_owner=True, scan_mentions=True),
    EventKind.DESIGN_UPLOADED: KindRule(escalate_owner=True, scan_mentions=True),
    EventKind.DESIGN_APPROVED: KindRule(direct="design_uploader"),
    EventKind.DESIGN_REJECTED: KindRule(direct="design_uploader"),
    EventKind.TASK_ASSIGNED: KindRule(direct="task_assignee"),
    EventKind.INVENTORY_ADDED: KindRule(escalate_owner=True),
    EventKind.BILL_APPROVED: KindRule(direct="bill_submitter"),
    EventKind.BILL_REJECTED: KindRule(direct="bill_submitter"),
    EventKind.PROJECT_UPDATE: KindRule(escalate_owner=True, broadcast=True, scan_mentions=True),
    EventKind.MENTION: KindRule(scan_mentions=True),
}


# =============================================================================
# MENTIONS
# =============================================================================


MENTION_PATTERN = re.compile(r"(?<![\w@])@([A-Za-z0-9][\w.\-]*)")


def _normalize(value: str | None) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())


def extract_mentions(text: str) -> list[str]:
    """@tokens in order of first appearance, normalized, without duplicates."""
    seen: dict[str, None] = {}
    for raw in MENTION_PATTERN.findall(text or ""):
        token = _normalize(raw)
        if token:
            seen.setdefault(token, None)
    return list(seen)


def match_mentions(tokens: Iterable[str], members: Iterable[User]) -> list[User]:
    """
    Resolve mention tokens against project members.

    A token matches, in order of preference, a member's handle, their
    slugified full name ("Jane Doe" -> "janedoe"), or the local part of their
    email. Tokens with no match are dropped silently.
    """
    members = list(members)
    by_handle: dict[str, list[User]] = {}
    by_name: dict[str, list[User]] = {}
    by_email: dict[str, list[User]] = {}
    for member in members:
        if member.handle:
            by_handle.setdefault(_normalize(member.handle), []).append(member)
        by_name.setdefault(_normalize(member.full_name), []).append(member)
        if member.email:
            by_email.setdefault(_normalize(member.email.split("@", 1)[0]), []).append(member)

    matched: dict[UUID, User] = {}
    for token in tokens:
        for index in (by_handle, by_name, by_email):
            hits = index.get(token)
            if hits:
                for user in hits:
                    matched.setdefault(user.id, user)
                break
    return list(matched.values())


# =============================================================================
# RESOLVER
# =============================================================================


class StakeholderResolver:
    """Computes the StakeholderSet for a NotificationEvent."""

    def __init__(self, entities: EntityStore):
        self._entities = entities

    async def resolve(self, event: NotificationEvent) -> StakeholderSet:
        try:
            return await self._resolve(event)
        except EntityNotFoundError as e:
            logger.warning(f"Resolution skipped for {event.kind.value}: {e}")
        except Exception as e:
            logger.error(
                f"Stakeholder resolution failed for {event.kind.value}: {e}",
                exc_info=True,
            )
        return StakeholderSet(actor_id=event.actor_id)

    async def _resolve(self, event: NotificationEvent) -> StakeholderSet:
        rule = RULES.get(event.kind, KindRule())
        context = EventContext(project_id=event.project_id)
        stakeholders = StakeholderSet(actor_id=event.actor_id, context=context)

        actor = await self._entities.get_user(event.actor_id)
        if actor:
            context.actor_name = actor.full_name

        direct_user_id, reason = await self._direct_target(event, rule, context)

        project: Project | None = None
        if context.project_id:
            project = await self._entities.get_project(context.project_id)
            if project is None:
                raise EntityNotFoundError("project", context.project_id)
            context.project_title = project.title
        elif rule.escalate_owner or rule.broadcast or rule.scan_mentions:
            raise EntityNotFoundError("project", None)

        # 1. Direct target
        if direct_user_id:
            target = await self._entities.get_user(direct_user_id)
            if target:
                stakeholders.add(Recipient.from_user(target), reason)

        # 2. Project ownership escalation
        if rule.escalate_owner and project:
            owner = await self._entities.get_user(project.created_by)
            if owner:
                stakeholders.add(Recipient.from_user(owner), InclusionReason.PROJECT_OWNER)

        members: list[User] = []
        if project and (rule.broadcast or rule.scan_mentions):
            members = [user for user, _ in await self._entities.get_project_members(project.id)]

        # 3. Membership broadcast
        if rule.broadcast:
            for member in members:
                stakeholders.add(Recipient.from_user(member), InclusionReason.MEMBER)

        # 4. Explicit mentions
        if rule.scan_mentions and event.text:
            tokens = extract_mentions(event.text)
            for user in match_mentions(tokens, members):
                stakeholders.add(Recipient.from_user(user), InclusionReason.MENTIONED)

        logger.info(
            f"Resolved {len(stakeholders)} stakeholder(s) for {event.kind.value} "
            f"by {event.actor_id}"
        )
        return stakeholders

    async def _direct_target(
        self,
        event: NotificationEvent,
        rule: KindRule,
        context: EventContext,
    ) -> tuple[UUID | None, InclusionReason]:
        """Look up the entity the event is about and its designated recipient."""
        if rule.direct == "design_uploader" or event.design_file_id:
            if not event.design_file_id:
                raise EntityNotFoundError("design_file", None)
            design = await self._entities.get_design_file(event.design_file_id)
            if design is None:
                raise EntityNotFoundError("design_file", event.design_file_id)
            context.project_id = context.project_id or design.project_id
            context.entity_id, context.entity_kind, context.entity_name = (
                design.id, "design_file", design.file_name,
            )
            if rule.direct == "design_uploader":
                return design.uploaded_by, InclusionReason.UPLOADER

        if rule.direct == "task_assignee":
            if not event.task_id:
                raise EntityNotFoundError("task", None)
            task = await self._entities.get_task(event.task_id)
            if task is None:
                raise EntityNotFoundError("task", event.task_id)
            context.project_id = context.project_id or task.project_id
            context.entity_id, context.entity_kind, context.entity_name = (
                task.id, "task", task.title,
            )
            return task.assigned_to, InclusionReason.ASSIGNEE

        if rule.direct == "bill_submitter" or event.inventory_item_id:
            if not event.inventory_item_id:
                raise EntityNotFoundError("inventory_item", None)
            item = await self._entities.get_inventory_item(event.inventory_item_id)
            if item is None:
                raise EntityNotFoundError("inventory_item", event.inventory_item_id)
            context.project_id = context.project_id or item.project_id
            context.entity_id, context.entity_kind, context.entity_name = (
                item.id, "inventory_item", item.item_name,
            )
            if rule.direct == "bill_submitter":
                return item.created_by, InclusionReason.SUBMITTER

        return None, InclusionReason.DIRECT
