"""
Fan-out Dispatcher: one event, every stakeholder, every channel.

Each (recipient, channel) delivery is an independent coroutine. They are
scattered together and settled with ``return_exceptions=True``; a failed push
never undoes or repeats the inbox write, and nothing reaches the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from .channels import ChannelKind, NotificationChannel
from .stakeholders import Stakeholder, StakeholderSet
from .templates import NotificationTemplate

logger = logging.getLogger(__name__)


@dataclass
class ChannelTally:
    sent: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class DispatchReport:
    """Per-channel outcome counts of a single dispatch."""
    recipients: int = 0
    channels: dict[ChannelKind, ChannelTally] = field(default_factory=dict)
    duration_ms: float = 0.0

    def tally(self, kind: ChannelKind) -> ChannelTally:
        return self.channels.setdefault(kind, ChannelTally())

    @property
    def in_app_created(self) -> int:
        return self.tally(ChannelKind.IN_APP).sent

    def to_dict(self) -> dict:
        return {
            "recipients": self.recipients,
            "channels": {
                kind.value: {"sent": t.sent, "failed": t.failed, "skipped": t.skipped}
                for kind, t in self.channels.items()
            },
            "duration_ms": round(self.duration_ms, 1),
        }


class FanOutDispatcher:
    """
    Delivers a template to a StakeholderSet over a fixed list of channels.

    The dispatcher only knows the ``NotificationChannel`` interface; which
    channels exist is decided by whoever builds it.
    """

    def __init__(self, channels: Iterable[NotificationChannel]):
        self._channels = list(channels)

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    async def dispatch(
        self,
        stakeholders: StakeholderSet,
        template: NotificationTemplate,
        skip_in_app: bool = False,
    ) -> DispatchReport:
        """
        Send to every stakeholder and wait for all deliveries to settle.

        Args:
            stakeholders: Deduplicated recipients, each with a reason
            template: Wording, rendered per recipient
            skip_in_app: Push/messaging only, for ephemeral nudges

        Returns:
            DispatchReport; callers are free to ignore it
        """
        start = time.monotonic()
        report = DispatchReport(recipients=len(stakeholders))

        jobs = []
        kinds = []
        for stakeholder in stakeholders:
            for channel in self._channels:
                if skip_in_app and channel.kind == ChannelKind.IN_APP:
                    continue
                if not channel.accepts(stakeholder.recipient):
                    report.tally(channel.kind).skipped += 1
                    continue
                jobs.append(self._deliver(channel, stakeholder, template))
                kinds.append(channel.kind)

        results = await asyncio.gather(*jobs, return_exceptions=True)

        for kind, result in zip(kinds, results):
            tally = report.tally(kind)
            if isinstance(result, BaseException):
                logger.error(f"[DISPATCH] {kind.value} delivery raised: {result}")
                tally.failed += 1
            elif result:
                tally.sent += 1
            else:
                tally.failed += 1

        report.duration_ms = (time.monotonic() - start) * 1000
        logger.info(f"[DISPATCH] {template.type.value} to {report.recipients} recipient(s): {report.to_dict()}")
        return report

    async def _deliver(
        self,
        channel: NotificationChannel,
        stakeholder: Stakeholder,
        template: NotificationTemplate,
    ) -> bool:
        rendered = template.render_for(stakeholder)
        return await channel.send(
            stakeholder.recipient,
            rendered.title,
            rendered.message,
            rendered.metadata,
        )
