"""
Topic Updater

Applies a classification outcome to topics: creates a topic per cluster
proposal, points opinions at their topics and keeps topic counts in step.
Runs inside one session; the caller owns the transaction, so any failure
rolls back every topic write of the run.
"""
import re
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from constants import TopicStatus
from analysis.errors import AnalysisError, ErrorCode
from analysis.classifier.models import AssignToExisting, ClassificationOutcome, NewClusterProposal
from repositories import OpinionRepository, TopicRepository
from .models import TopicUpdateSummary


MAX_TOPIC_KEYWORDS = 5
_KEYWORD_SPLIT = re.compile(r'[、。\s]+')


def derive_topic_keywords(proposal: NewClusterProposal) -> list[str]:
    """Proposal keywords, or the first words of name + summary."""
    if proposal.keywords:
        return proposal.keywords[:MAX_TOPIC_KEYWORDS]
    words = _KEYWORD_SPLIT.split(f"{proposal.name} {proposal.summary}")
    return [w for w in words if len(w) > 1][:MAX_TOPIC_KEYWORDS]


class TopicUpdater:
    """Writes topic creations, assignments and count increments."""

    def __init__(
        self,
        session: AsyncSession,
        topic_repo: Optional[TopicRepository] = None,
        opinion_repo: Optional[OpinionRepository] = None,
    ):
        self.session = session
        self.topics = topic_repo or TopicRepository(session)
        self.opinions = opinion_repo or OpinionRepository(session)

    async def apply(self, project_id: str, outcome: ClassificationOutcome) -> TopicUpdateSummary:
        """
        Apply the outcome's topic changes.

        An opinion that already points at a topic is moved: the old topic's
        count goes down, and nothing changes if it is already in the target.

        Raises:
            AnalysisError: TRANSACTION_FAILURE if an opinion or topic vanished
        """
        summary = TopicUpdateSummary()

        for proposal in outcome.clusters:
            if not proposal.opinion_ids:
                continue
            topic = await self.topics.create_topic(
                project_id=project_id,
                name=proposal.name,
                summary=proposal.summary,
                keywords=derive_topic_keywords(proposal),
                status=TopicStatus.UNHANDLED.value,
            )
            joined = await self._assign(proposal.opinion_ids, topic.id, summary)
            await self._increment(topic.id, joined)
            summary.created_topics.append({
                "id": topic.id,
                "name": topic.name,
                "cluster_id": proposal.cluster_id,
                "count": joined,
            })
            logger.debug(f"Created topic {topic.id} '{topic.name}' with {joined} opinions")

        grouped: dict[str, list[str]] = {}
        for decision in outcome.decisions:
            if isinstance(decision.target, AssignToExisting):
                grouped.setdefault(decision.target.topic_id, []).append(decision.opinion_id)

        for topic_id, opinion_ids in grouped.items():
            joined = await self._assign(opinion_ids, topic_id, summary)
            if joined:
                await self._increment(topic_id, joined)
                summary.updated_topics[topic_id] = joined

        logger.info(
            f"Topic updates: {summary.created_count} created, {summary.updated_count} updated, "
            f"{len(summary.assignments)} opinions assigned"
        )
        return summary

    async def _assign(self, opinion_ids: list[str], topic_id: str, summary: TopicUpdateSummary) -> int:
        """Point opinions at a topic. Returns how many were not in it before."""
        joined = 0
        for opinion_id in opinion_ids:
            opinion = await self.opinions.get(opinion_id)
            if opinion is None:
                raise AnalysisError(
                    ErrorCode.TRANSACTION_FAILURE,
                    f"Opinion {opinion_id} disappeared during topic update",
                    {"opinion_id": opinion_id, "topic_id": topic_id},
                )
            previous = await self.opinions.assign_topic(opinion, topic_id)
            if previous != topic_id:
                joined += 1
                if previous is not None:
                    await self._release(previous, opinion_id)
            summary.assignments[opinion_id] = topic_id
        return joined

    async def _release(self, topic_id: str, opinion_id: str) -> None:
        if not await self.topics.increment_count(topic_id, -1):
            logger.warning(f"Previous topic {topic_id} of opinion {opinion_id} no longer exists")

    async def _increment(self, topic_id: str, by: int) -> None:
        if not await self.topics.increment_count(topic_id, by):
            raise AnalysisError(
                ErrorCode.TRANSACTION_FAILURE,
                f"Topic {topic_id} disappeared during topic update",
                {"topic_id": topic_id},
            )
