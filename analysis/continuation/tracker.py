"""
Continuation Tracker

Bookkeeping after classification: per-opinion analysis state, backlog
status and the recommendation for the next run.
"""
import math
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from constants import SelectionStrategy, Urgency
from analysis.errors import AnalysisError, ErrorCode
from analysis.classifier.models import AssignToExisting, ClassificationOutcome
from analysis.scorer import (
    PriorityScorer,
    ScoredOpinion,
    ScoringContext,
    TopicSnapshot,
    project_keywords_from_name,
)
from analysis.scorer.config import HIGH_PRIORITY_THRESHOLD, get_priority_level
from analysis.selector.config import DEFAULT_MAX_OPINIONS
from repositories import (
    AnalysisStateRepository,
    OpinionRepository,
    ProjectRepository,
    TopicRepository,
)
from .models import (
    AnalysisStatus,
    ContinuationResult,
    PriorityDistribution,
    RunRecommendation,
    StateUpdate,
    StateUpdateResults,
    SuggestedParameters,
)


# ============================================
# CONSTANTS
# ============================================

MANUAL_REVIEW_PRIORITY = 80       # priority > 80
MANUAL_REVIEW_CONFIDENCE = 0.6    # confidence < 0.6

IMMEDIATE_HIGH_PRIORITY_COUNT = 5  # more than 5 high-priority deferred
LARGE_BACKLOG = 10                 # more than 10 deferred
SOON_MAX_OPINIONS = 10

SECONDS_PER_OPINION = 2
SECONDS_PER_BATCH = 15
BATCH_SIZE = 15

NEXT_RUN_DELAYS = {
    Urgency.IMMEDIATE: timedelta(0),
    Urgency.SOON: timedelta(hours=2),
    Urgency.WHEN_CONVENIENT: timedelta(hours=24),
    Urgency.NOT_NEEDED: timedelta(days=7),
}


def estimate_processing_seconds(count: int) -> int:
    """count x 2s plus 15s per batch of 15."""
    return count * SECONDS_PER_OPINION + math.ceil(count / BATCH_SIZE) * SECONDS_PER_BATCH


def priority_distribution(scored: Sequence[ScoredOpinion]) -> PriorityDistribution:
    distribution = PriorityDistribution()
    for opinion in scored:
        level = get_priority_level(opinion.priority)
        setattr(distribution, level, getattr(distribution, level) + 1)
    return distribution


def needs_manual_review(priority: int, confidence: Optional[float] = None) -> bool:
    if priority > MANUAL_REVIEW_PRIORITY:
        return True
    return confidence is not None and confidence < MANUAL_REVIEW_CONFIDENCE


class ContinuationTracker:
    """
    Applies a run's results to analysis state and plans the next run.

    Args:
        max_opinions: Count budget used for suggestions and size estimates
        clock: Time source (datetime.now by default)
    """

    def __init__(
        self,
        max_opinions: int = DEFAULT_MAX_OPINIONS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.max_opinions = max_opinions
        self.clock = clock or datetime.now

    async def apply(
        self,
        session: AsyncSession,
        project_id: str,
        selected: Sequence[ScoredOpinion],
        outcome: ClassificationOutcome,
        deferred: Sequence[ScoredOpinion],
        topic_assignments: Optional[dict[str, str]] = None,
        state_repo: Optional[AnalysisStateRepository] = None,
    ) -> ContinuationResult:
        """
        Update states, mark the project and compute status and recommendation.

        Selected opinions the model left without a decision are handled as
        deferred so they return to the next backlog.

        Args:
            session: Session of the state transaction
            project_id: Project id
            selected: Opinions sent to classification
            outcome: Validated classification outcome
            deferred: Opinions left out by selection
            topic_assignments: opinion_id -> topic_id written by the topic update
            state_repo: Repository override
        """
        now = self.clock()
        undecided = [s for s in selected if outcome.decision_for(s.opinion_id) is None]
        if undecided:
            logger.warning(f"{len(undecided)} selected opinions got no decision; deferring them")
        remaining = list(deferred) + undecided

        state_updates = await self.update_states(
            session, project_id, selected, outcome, deferred,
            topic_assignments or {}, now, state_repo,
        )

        analyzed_now = sum(1 for u in state_updates.updates if u.analyzed and u.success)
        await ProjectRepository(session).mark_analyzed(project_id, now, analyzed_now)

        status = await self.get_analysis_status(session, project_id, deferred=remaining)
        recommendation = self.build_recommendation(remaining, now)

        logger.info(
            f"Continuation: {state_updates.success_count}/{state_updates.total_updates} states written, "
            f"completion {status.completion_rate}%, next run {recommendation.urgency}"
        )
        return ContinuationResult(
            state_updates=state_updates,
            status=status,
            recommendation=recommendation,
        )

    async def update_states(
        self,
        session: AsyncSession,
        project_id: str,
        selected: Sequence[ScoredOpinion],
        outcome: ClassificationOutcome,
        deferred: Sequence[ScoredOpinion],
        topic_assignments: dict[str, str],
        now: datetime,
        state_repo: Optional[AnalysisStateRepository] = None,
    ) -> StateUpdateResults:
        """
        Upsert every touched opinion's state, one savepoint per opinion.

        A failing opinion rolls back only its own savepoint and is reported.
        """
        repo = state_repo or AnalysisStateRepository(session)
        results = StateUpdateResults()

        for opinion in selected:
            decision = outcome.decision_for(opinion.opinion_id)
            if decision is None:
                results.updates.append(await self._write_deferred(session, repo, project_id, opinion))
                continue

            if isinstance(decision.target, AssignToExisting):
                topic_id = decision.target.topic_id
            else:
                topic_id = topic_assignments.get(opinion.opinion_id)
            manual_review = needs_manual_review(opinion.priority, decision.confidence)

            update = StateUpdate(
                opinion_id=opinion.opinion_id,
                analyzed=True,
                success=False,
                last_analyzed_at=now,
                topic_id=topic_id,
                confidence=decision.confidence,
                manual_review=manual_review,
            )
            try:
                async with session.begin_nested():
                    state = await repo.upsert_analyzed(
                        opinion_id=opinion.opinion_id,
                        project_id=project_id,
                        analyzed_at=now,
                        topic_id=topic_id,
                        confidence=decision.confidence,
                        manual_review=manual_review,
                    )
                update.success = True
                update.analysis_version = state.analysis_version
            except Exception as e:
                update.error = str(e)
                logger.warning(f"State update failed for opinion {opinion.opinion_id}: {e}")
            results.updates.append(update)

        for opinion in deferred:
            results.updates.append(await self._write_deferred(session, repo, project_id, opinion))

        if results.error_count:
            logger.warning(
                f"{results.error_count}/{results.total_updates} state updates failed "
                f"({ErrorCode.PARTIAL_STATE_WRITE_FAILURE.value})"
            )
        return results

    async def _write_deferred(
        self,
        session: AsyncSession,
        repo: AnalysisStateRepository,
        project_id: str,
        opinion: ScoredOpinion,
    ) -> StateUpdate:
        manual_review = needs_manual_review(opinion.priority)
        update = StateUpdate(
            opinion_id=opinion.opinion_id,
            analyzed=False,
            success=False,
            manual_review=manual_review,
        )
        try:
            async with session.begin_nested():
                state = await repo.upsert_deferred(
                    opinion_id=opinion.opinion_id,
                    project_id=project_id,
                    manual_review=manual_review,
                )
            update.success = True
            update.analysis_version = state.analysis_version
            update.last_analyzed_at = state.last_analyzed_at
        except Exception as e:
            update.error = str(e)
            logger.warning(f"Deferred state update failed for opinion {opinion.opinion_id}: {e}")
        return update

    async def get_analysis_status(
        self,
        session: AsyncSession,
        project_id: str,
        deferred: Optional[Sequence[ScoredOpinion]] = None,
    ) -> AnalysisStatus:
        """
        Backlog progress of a project.

        Args:
            session: Database session
            project_id: Project id
            deferred: Scored backlog; scored from the store when omitted

        Raises:
            AnalysisError: NOT_FOUND if the project does not exist
        """
        project = await ProjectRepository(session).get(project_id)
        if project is None:
            raise AnalysisError(ErrorCode.NOT_FOUND, f"Project not found: {project_id}",
                                {"project_id": project_id})

        total = await OpinionRepository(session).count_by_project(project_id)
        analyzed = await AnalysisStateRepository(session).count_analyzed(project_id)
        unanalyzed = max(total - analyzed, 0)

        if deferred is None:
            deferred = await self._score_backlog(session, project)
        distribution = priority_distribution(deferred)

        return AnalysisStatus(
            project_id=project_id,
            total_opinions=total,
            analyzed_opinions=analyzed,
            unanalyzed_opinions=unanalyzed,
            completion_rate=round(analyzed / total * 100, 2) if total else 100.0,
            priority_distribution=distribution,
            next_analysis_recommended=unanalyzed > 0 and (distribution.high > 0 or unanalyzed > LARGE_BACKLOG),
            estimated_next_analysis_size=min(unanalyzed, self.max_opinions),
            last_analysis_at=project.last_analysis_at,
        )

    async def _score_backlog(self, session: AsyncSession, project) -> list[ScoredOpinion]:
        backlog = await OpinionRepository(session).get_unanalyzed(project.id)
        topics = await TopicRepository(session).get_by_project(project.id)
        context = ScoringContext(
            now=self.clock(),
            existing_topics=[TopicSnapshot.from_model(t) for t in topics],
            project_keywords=project_keywords_from_name(project.name),
        )
        return PriorityScorer().score_batch(backlog, context)

    def build_recommendation(self, deferred: Sequence[ScoredOpinion], now: datetime) -> RunRecommendation:
        """Urgency ladder over the opinions still waiting after this run."""
        total = len(deferred)
        high = sum(1 for s in deferred if s.priority > HIGH_PRIORITY_THRESHOLD)

        if total == 0:
            urgency = Urgency.NOT_NEEDED
            reason = "All opinions have been analyzed"
            params = None
        elif high > IMMEDIATE_HIGH_PRIORITY_COUNT:
            urgency = Urgency.IMMEDIATE
            reason = f"{high} high-priority opinions are waiting"
            params = SuggestedParameters(min(high + 5, self.max_opinions),
                                         SelectionStrategy.GREEDY_PRIORITY.value)
        elif high > 0:
            urgency = Urgency.SOON
            reason = f"{high} high-priority opinions are waiting"
            params = SuggestedParameters(SOON_MAX_OPINIONS, SelectionStrategy.BALANCED.value)
        elif total > LARGE_BACKLOG:
            urgency = Urgency.WHEN_CONVENIENT
            reason = f"{total} opinions are waiting"
            params = SuggestedParameters(self.max_opinions, SelectionStrategy.TOKEN_EFFICIENCY.value)
        else:
            urgency = Urgency.WHEN_CONVENIENT
            reason = f"{total} opinions are waiting"
            params = SuggestedParameters(total, SelectionStrategy.BALANCED.value)

        return RunRecommendation(
            recommended=total > 0,
            urgency=urgency.value,
            reason=reason,
            estimated_processing_seconds=estimate_processing_seconds(total),
            suggested_parameters=params,
            unprocessed_high_priority=high,
            unprocessed_total=total,
            next_run_at=now + NEXT_RUN_DELAYS[urgency],
            priority_distribution=priority_distribution(deferred),
        )
