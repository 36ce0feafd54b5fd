"""
Analysis Pipeline - Priority-based single-pass analysis of a project's backlog.

Pipeline Flow:
1. Load the project, its unanalyzed opinions and its topics
2. Score every backlog opinion
3. Select the subset that fits the token and count budgets
4. Classify the selection with exactly one model call
5. Apply topic changes (one transaction, fatal on failure)
6. Write per-opinion analysis state, the project marker, call records
   and the run record (one transaction, per-opinion savepoints)
7. Assemble the run report
"""
import asyncio
import json
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from config import settings
from constants import RunStatus, SelectionStrategy, Urgency
from database import get_session, init_database
from llm import get_client, LLMClient
from repositories import (
    AnalysisRunRepository,
    LLMHistoryRepository,
    OpinionRepository,
    ProjectRepository,
    TopicRepository,
)
from .errors import AnalysisError, ErrorCode
from .scorer import (
    PriorityScorer,
    ScoringContext,
    TopicSnapshot,
    generate_priority_stats,
    project_keywords_from_name,
)
from .selector import (
    SelectionResult,
    SubsetSelector,
    evaluate_selection_quality,
    recommend_strategy,
)
from .classifier import CallBudget, ClassificationOrchestrator, ClassificationOutcome, RetryPolicy
from .continuation import ContinuationResult, ContinuationTracker, TopicUpdater, TopicUpdateSummary


ANALYSIS_METHOD = "priority_based_single_pass"

# Optimisation suggestion thresholds
LOW_SELECTION_RATE = 50
LOW_TOKEN_USAGE_RATE = 70
LOW_EFFICIENCY = 15


@dataclass
class AnalysisOptions:
    """Per-run parameters. Omitted values come from settings."""
    token_limit: int = field(default_factory=lambda: settings.ANALYSIS_TOKEN_LIMIT)
    max_opinions: int = field(default_factory=lambda: settings.ANALYSIS_MAX_OPINIONS)
    strategy: str = field(default_factory=lambda: settings.ANALYSIS_STRATEGY)
    model: Optional[str] = None
    include_insights: Optional[bool] = None

    def validate(self) -> None:
        """
        Raises:
            AnalysisError: INVALID_OPTIONS for an unknown strategy or a non-positive budget
        """
        strategies = [s.value for s in SelectionStrategy]
        if self.strategy not in strategies:
            raise AnalysisError(
                ErrorCode.INVALID_OPTIONS,
                f"Unknown selection strategy: {self.strategy}",
                {"strategy": self.strategy, "available": strategies},
            )
        for name in ("token_limit", "max_opinions"):
            value = getattr(self, name)
            if value < 1:
                raise AnalysisError(
                    ErrorCode.INVALID_OPTIONS,
                    f"{name} must be positive, got {value}",
                    {name: value},
                )

    def to_dict(self) -> dict:
        return {
            "token_limit": self.token_limit,
            "max_opinions": self.max_opinions,
            "strategy": self.strategy,
            "model": self.model,
            "include_insights": self.include_insights,
        }


# ============================================
# REPORT HELPERS
# ============================================

def performance_score(execution_seconds: float, efficiency: float) -> int:
    """Average of a time score (-2 per second) and an efficiency score (x5, max 100)."""
    time_score = max(0.0, 100 - execution_seconds * 2)
    efficiency_score = min(100.0, efficiency * 5)
    return round((time_score + efficiency_score) / 2)


def optimization_suggestions(selection: SelectionResult) -> list[str]:
    stats = selection.stats
    suggestions = []
    if stats.selection_rate < LOW_SELECTION_RATE:
        suggestions.append("Consider raising the token limit")
    if stats.token_usage_rate < LOW_TOKEN_USAGE_RATE:
        suggestions.append("More opinions would fit in the token budget")
    if stats.efficiency < LOW_EFFICIENCY:
        suggestions.append("Consider adjusting the priority scoring")
    return suggestions


def system_health(execution_seconds: float, outcome: ClassificationOutcome, integrity: float) -> str:
    """Four 25-point checks: time, classification output, response quality, state consistency."""
    if execution_seconds < 30:
        time_score = 25
    elif execution_seconds < 60:
        time_score = 20
    else:
        time_score = 10
    output_score = 25 if outcome.decisions else 0
    response_score = 20 if outcome.metadata.used_fallback else 25
    consistency_score = round(25 * integrity / 100)

    total = time_score + output_score + response_score + consistency_score
    if total >= 90:
        return "excellent"
    if total >= 75:
        return "good"
    if total >= 60:
        return "fair"
    return "poor"


def data_integrity_score(continuation: ContinuationResult) -> float:
    """Share of state writes that succeeded, as a percentage."""
    updates = continuation.state_updates
    if not updates.total_updates:
        return 100.0
    return round(updates.success_count / updates.total_updates * 100, 2)


# ============================================
# PIPELINE COORDINATOR
# ============================================

class PipelineCoordinator:
    """
    Runs one bounded analysis of a project's backlog.

    Components are built per run from the run's options unless injected.
    Two concurrent runs for the same project are not safe; callers serialize them.
    """

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        scorer: Optional[PriorityScorer] = None,
        selector: Optional[SubsetSelector] = None,
        orchestrator: Optional[ClassificationOrchestrator] = None,
        tracker: Optional[ContinuationTracker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._client = client
        self.scorer = scorer or PriorityScorer()
        self.selector = selector or SubsetSelector()
        self.orchestrator = orchestrator
        self.tracker = tracker
        self.retry_policy = retry_policy
        self.clock = clock or datetime.now

    @property
    def client(self) -> LLMClient:
        """Model client; created from settings on first use."""
        if self.orchestrator is not None:
            return self.orchestrator.client
        if self._client is None:
            self._client = get_client()
        return self._client

    def _orchestrator_for(self, options: AnalysisOptions) -> ClassificationOrchestrator:
        if self.orchestrator is not None:
            return self.orchestrator
        return ClassificationOrchestrator(
            client=self.client,
            retry_policy=self.retry_policy,
            model=options.model,
            include_insights=options.include_insights,
        )

    def _tracker_for(self, options: AnalysisOptions) -> ContinuationTracker:
        if self.tracker is not None:
            return self.tracker
        return ContinuationTracker(max_opinions=options.max_opinions, clock=self.clock)

    def _drain_call_records(self) -> list[dict]:
        if self.orchestrator is None and self._client is None:
            return []
        return [record.to_dict() for record in self.client.drain_pending_logs()]

    async def run(self, project_id: str, options: Optional[AnalysisOptions] = None) -> dict:
        """
        Run the complete pipeline for one project.

        Args:
            project_id: Project to analyze
            options: Budgets, strategy and model options

        Returns:
            Run report dict

        Raises:
            AnalysisError: INVALID_OPTIONS, NOT_FOUND, TRANSPORT_FAILURE or TRANSACTION_FAILURE
        """
        options = options or AnalysisOptions()
        options.validate()
        run_id = AnalysisRunRepository.generate_id("run")
        started_at = self.clock()
        budget = CallBudget()

        with logger.contextualize(run_id=run_id):
            logger.info(f"=== Starting analysis run {run_id} for project {project_id} ===")
            try:
                report = await self._execute(run_id, project_id, options, started_at, budget)
            except AnalysisError as e:
                logger.error(f"Analysis run failed: {e}")
                if e.code != ErrorCode.NOT_FOUND:
                    await self._record_failure(run_id, project_id, options, started_at, budget, e)
                raise
            except Exception as e:
                logger.exception(f"Analysis run failed: {e}")
                await self._record_failure(run_id, project_id, options, started_at, budget, e)
                raise

            logger.info(
                f"=== Analysis run complete in {report['execution_summary']['execution_seconds']}s: "
                f"{report['execution_summary']['new_opinions_processed']} processed, "
                f"{report['execution_summary']['unprocessed_opinions']} deferred ==="
            )
            return report

    async def _execute(
        self,
        run_id: str,
        project_id: str,
        options: AnalysisOptions,
        started_at: datetime,
        budget: CallBudget,
    ) -> dict:
        run_start = time.perf_counter()
        tracker = self._tracker_for(options)

        # ============================================
        # Step 1: Load project, backlog and topics
        # ============================================
        async with get_session() as session:
            project = await ProjectRepository(session).get(project_id)
            if project is None:
                raise AnalysisError(
                    ErrorCode.NOT_FOUND,
                    f"Project not found: {project_id}",
                    {"project_id": project_id},
                )
            opinion_repo = OpinionRepository(session)
            backlog = await opinion_repo.get_unanalyzed(project_id)
            total_in_project = await opinion_repo.count_by_project(project_id)
            topics = [TopicSnapshot.from_model(t) for t in await TopicRepository(session).get_by_project(project_id)]
            project_name = project.name

        logger.info(
            f"Step 1: {len(backlog)} unanalyzed of {total_in_project} opinions, {len(topics)} topics"
        )

        if not backlog:
            return await self._finish_empty(
                run_id, project_id, options, started_at, run_start, total_in_project, tracker,
            )

        # ============================================
        # Step 2: Score
        # ============================================
        context = ScoringContext(
            now=started_at,
            existing_topics=topics,
            project_keywords=project_keywords_from_name(project_name),
        )
        scored = self.scorer.score_batch(backlog, context)
        priority_stats = generate_priority_stats(scored)
        logger.info(f"Step 2: Scored {len(scored)} opinions (avg priority {priority_stats.average_priority})")

        # ============================================
        # Step 3: Select
        # ============================================
        selection = self.selector.select(
            scored,
            token_limit=options.token_limit,
            max_opinions=options.max_opinions,
            strategy=options.strategy,
        )
        quality = evaluate_selection_quality(selection)
        advice = recommend_strategy(scored)
        if advice.strategy != SelectionStrategy(options.strategy).value:
            logger.info(f"Strategy advice: {advice.strategy} ({advice.reason})")

        # ============================================
        # Step 4: Classify (one model call)
        # ============================================
        orchestrator = self._orchestrator_for(options)
        outcome = await asyncio.to_thread(
            orchestrator.classify, selection.selected, topics, budget, run_id, started_at,
        )
        logger.info(f"Step 4: Classification used {budget.used} call(s), fallback={outcome.metadata.used_fallback}")

        # ============================================
        # Step 5: Topic transaction
        # ============================================
        try:
            async with get_session() as session:
                topic_summary = await TopicUpdater(session).apply(project_id, outcome)
        except AnalysisError:
            raise
        except Exception as e:
            raise AnalysisError(
                ErrorCode.TRANSACTION_FAILURE,
                f"Topic update transaction failed: {e}",
                {"stage": "topic_update"},
            ) from e

        # ============================================
        # Step 6: State batch, project marker, call records, run record
        # ============================================
        try:
            async with get_session() as session:
                continuation = await tracker.apply(
                    session,
                    project_id,
                    selection.selected,
                    outcome,
                    selection.deferred,
                    topic_assignments=topic_summary.assignments,
                )
                finished_at = self.clock()
                execution_seconds = round(time.perf_counter() - run_start, 3)

                report = self._build_report(
                    run_id=run_id,
                    project_id=project_id,
                    options=options,
                    started_at=started_at,
                    finished_at=finished_at,
                    execution_seconds=execution_seconds,
                    total_in_project=total_in_project,
                    backlog_count=len(backlog),
                    priority_stats=priority_stats.to_dict(),
                    selection=selection,
                    quality=quality.to_dict(),
                    advice=advice.to_dict(),
                    outcome=outcome,
                    topic_summary=topic_summary,
                    continuation=continuation,
                    api_calls_used=budget.used,
                )

                call_records = self._drain_call_records()
                if call_records:
                    await LLMHistoryRepository(session).add_records(call_records)

                await AnalysisRunRepository(session).create_run(
                    project_id=project_id,
                    started_at=started_at,
                    status=RunStatus.SUCCESS.value,
                    run_id=run_id,
                    finished_at=finished_at,
                    execution_seconds=execution_seconds,
                    strategy=selection.optimization.algorithm_used,
                    token_limit=options.token_limit,
                    max_opinions=options.max_opinions,
                    backlog_count=len(backlog),
                    selected_count=len(selection.selected),
                    deferred_count=len(selection.deferred),
                    api_calls_used=budget.used,
                    used_fallback=outcome.metadata.used_fallback,
                    urgency=continuation.recommendation.urgency,
                    summary=self._generate_run_summary(report),
                    report=report,
                )
        except AnalysisError:
            raise
        except Exception as e:
            raise AnalysisError(
                ErrorCode.TRANSACTION_FAILURE,
                f"State update transaction failed: {e}",
                {"stage": "state_update"},
            ) from e

        return report

    async def _finish_empty(
        self,
        run_id: str,
        project_id: str,
        options: AnalysisOptions,
        started_at: datetime,
        run_start: float,
        total_in_project: int,
        tracker: ContinuationTracker,
    ) -> dict:
        """Nothing to analyze: no model call, run recorded as empty."""
        logger.info("No unanalyzed opinions; skipping analysis")
        async with get_session() as session:
            status = await tracker.get_analysis_status(session, project_id, deferred=[])
            recommendation = tracker.build_recommendation([], self.clock())
            execution_seconds = round(time.perf_counter() - run_start, 3)

            report = {
                "analysis_id": run_id,
                "project_id": project_id,
                "status": RunStatus.EMPTY.value,
                "options": options.to_dict(),
                "execution_summary": {
                    "total_opinions_in_project": total_in_project,
                    "backlog_count": 0,
                    "new_opinions_processed": 0,
                    "unprocessed_opinions": 0,
                    "undecided_opinions": 0,
                    "api_calls_used": 0,
                    "execution_seconds": execution_seconds,
                    "analysis_method": ANALYSIS_METHOD,
                    "started_at": started_at.isoformat(),
                },
                "processing_stats": {
                    "priority_calculation": generate_priority_stats([]).to_dict(),
                    "selection_optimization": {
                        "selection_rate": 0,
                        "token_usage_rate": 0,
                        "efficiency": 0,
                        "strategy": "none",
                        "bounding_constraint": None,
                    },
                    "classification": {
                        "classifications_generated": 0,
                        "assigned_to_existing": 0,
                        "new_topic_decisions": 0,
                        "new_clusters": 0,
                        "insights_extracted": 0,
                        "rejected_items": 0,
                        "used_fallback": False,
                        "fallback_reason": None,
                    },
                },
                "selection_quality": None,
                "strategy_advice": recommend_strategy([]).to_dict(),
                "topic_updates": TopicUpdateSummary().to_dict(),
                "continuation_info": status.to_dict(),
                "state_updates": {"total_updates": 0, "success_count": 0, "error_count": 0,
                                  "manual_review_count": 0, "errors": []},
                "quality_metrics": {
                    "average_classification_confidence": 0,
                    "manual_review_required": 0,
                    "data_integrity_score": 100,
                    "performance_score": 100,
                },
                "insights": [],
                "recommendations": {
                    "next_analysis_recommended": False,
                    "next_analysis_urgency": Urgency.NOT_NEEDED.value,
                    "next_run": recommendation.to_dict(),
                    "optimization_suggestions": [],
                    "system_health": "excellent",
                },
            }

            await AnalysisRunRepository(session).create_run(
                project_id=project_id,
                started_at=started_at,
                status=RunStatus.EMPTY.value,
                run_id=run_id,
                finished_at=self.clock(),
                execution_seconds=execution_seconds,
                strategy=options.strategy,
                token_limit=options.token_limit,
                max_opinions=options.max_opinions,
                urgency=Urgency.NOT_NEEDED.value,
                summary=f"Analysis run {run_id}: no unanalyzed opinions",
                report=report,
            )
        return report

    def _build_report(
        self,
        run_id: str,
        project_id: str,
        options: AnalysisOptions,
        started_at: datetime,
        finished_at: datetime,
        execution_seconds: float,
        total_in_project: int,
        backlog_count: int,
        priority_stats: dict,
        selection: SelectionResult,
        quality: dict,
        advice: dict,
        outcome: ClassificationOutcome,
        topic_summary: TopicUpdateSummary,
        continuation: ContinuationResult,
        api_calls_used: int,
    ) -> dict:
        """Assemble the run report from every stage's result."""
        stats = selection.stats
        integrity = data_integrity_score(continuation)
        recommendation = continuation.recommendation

        return {
            "analysis_id": run_id,
            "project_id": project_id,
            "status": RunStatus.SUCCESS.value,
            "options": options.to_dict(),
            "execution_summary": {
                "total_opinions_in_project": total_in_project,
                "backlog_count": backlog_count,
                "new_opinions_processed": len(selection.selected),
                "unprocessed_opinions": len(selection.deferred),
                "undecided_opinions": len(selection.selected) - len(outcome.decisions),
                "api_calls_used": api_calls_used,
                "execution_seconds": execution_seconds,
                "analysis_method": ANALYSIS_METHOD,
                "started_at": started_at.isoformat(),
                "finished_at": finished_at.isoformat(),
            },
            "processing_stats": {
                "priority_calculation": priority_stats,
                "selection_optimization": {
                    "selection_rate": stats.selection_rate,
                    "token_usage_rate": stats.token_usage_rate,
                    "efficiency": stats.efficiency,
                    "strategy": selection.optimization.algorithm_used,
                    "bounding_constraint": selection.bounding_constraint,
                    "optimization_ms": selection.optimization.optimization_ms,
                },
                "classification": {
                    "classifications_generated": len(outcome.decisions),
                    "assigned_to_existing": outcome.assigned_count,
                    "new_topic_decisions": outcome.created_count,
                    "new_clusters": len(outcome.clusters),
                    "insights_extracted": len(outcome.insights),
                    "rejected_items": len(outcome.rejected),
                    "used_fallback": outcome.metadata.used_fallback,
                    "fallback_reason": outcome.metadata.fallback_reason,
                    "metadata": outcome.metadata.to_dict(),
                },
            },
            "selection_quality": quality,
            "strategy_advice": advice,
            "topic_updates": topic_summary.to_dict(),
            "continuation_info": continuation.status.to_dict(),
            "state_updates": continuation.state_updates.to_dict(),
            "quality_metrics": {
                "average_classification_confidence": outcome.average_confidence,
                "manual_review_required": continuation.state_updates.manual_review_count,
                "data_integrity_score": integrity,
                "performance_score": performance_score(execution_seconds, stats.efficiency),
            },
            "insights": [i.to_dict() for i in outcome.insights],
            "recommendations": {
                "next_analysis_recommended": recommendation.recommended,
                "next_analysis_urgency": recommendation.urgency,
                "next_run": recommendation.to_dict(),
                "optimization_suggestions": optimization_suggestions(selection),
                "system_health": system_health(execution_seconds, outcome, integrity),
            },
        }

    def _generate_run_summary(self, report: dict) -> str:
        """Generate a human-readable run summary."""
        summary = report["execution_summary"]
        topics = report["topic_updates"]
        recommendation = report["recommendations"]

        lines = [
            f"Analysis run {report['analysis_id']}:",
            f"- {summary['new_opinions_processed']}/{summary['backlog_count']} backlog opinions processed",
            f"- {topics['created_count']} topics created, {topics['updated_count']} topics updated",
            f"- {report['state_updates']['error_count']} state write errors",
            f"- next run: {recommendation['next_analysis_urgency']}",
        ]
        return "\n".join(lines)

    async def _record_failure(
        self,
        run_id: str,
        project_id: str,
        options: AnalysisOptions,
        started_at: datetime,
        budget: CallBudget,
        error: Exception,
    ) -> None:
        """Best-effort failed-run record; never masks the original error."""
        try:
            async with get_session() as session:
                call_records = self._drain_call_records()
                if call_records:
                    await LLMHistoryRepository(session).add_records(call_records)
                await AnalysisRunRepository(session).create_run(
                    project_id=project_id,
                    started_at=started_at,
                    status=RunStatus.FAILED.value,
                    run_id=run_id,
                    finished_at=self.clock(),
                    strategy=options.strategy,
                    token_limit=options.token_limit,
                    max_opinions=options.max_opinions,
                    api_calls_used=budget.used,
                    summary=f"Analysis run failed: {error}",
                    error=str(error),
                )
        except Exception as e:
            logger.error(f"Could not record failed run {run_id}: {e}")

    async def get_status(self, project_id: str, max_opinions: Optional[int] = None) -> dict:
        """
        Backlog status of a project without running an analysis.

        Raises:
            AnalysisError: NOT_FOUND if the project does not exist
        """
        tracker = self.tracker or ContinuationTracker(
            max_opinions=max_opinions or settings.ANALYSIS_MAX_OPINIONS, clock=self.clock,
        )
        async with get_session() as session:
            status = await tracker.get_analysis_status(session, project_id)
            latest = await AnalysisRunRepository(session).get_latest(project_id)

        result = status.to_dict()
        result["last_run"] = {
            "id": latest.id,
            "status": latest.status,
            "started_at": latest.started_at.isoformat(),
            "urgency": latest.urgency,
        } if latest else None
        return result


# ============================================
# CLI ENTRY POINT
# ============================================

async def _run_cli(args) -> dict:
    await init_database()
    coordinator = PipelineCoordinator()
    if args.status_only:
        return await coordinator.get_status(args.project, max_opinions=args.max_opinions)

    options = AnalysisOptions(
        token_limit=args.token_limit,
        max_opinions=args.max_opinions,
        strategy=args.strategy,
        model=args.model,
        include_insights=False if args.no_insights else None,
    )
    return await coordinator.run(args.project, options)


def main():
    """Run an analysis from command line."""
    import argparse
    from utils.logger import init_logging

    parser = argparse.ArgumentParser(description="Run priority-based opinion analysis")
    parser.add_argument("--project", type=str, required=True, help="Project id")
    parser.add_argument("--token-limit", type=int, default=settings.ANALYSIS_TOKEN_LIMIT, help="Token budget")
    parser.add_argument("--max-opinions", type=int, default=settings.ANALYSIS_MAX_OPINIONS, help="Opinion budget")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in SelectionStrategy],
        default=settings.ANALYSIS_STRATEGY,
        help="Selection strategy",
    )
    parser.add_argument("--model", type=str, default=None, help="Model override")
    parser.add_argument("--no-insights", action="store_true", help="Skip cross-opinion insights")
    parser.add_argument("--status-only", action="store_true", help="Print backlog status only")

    args = parser.parse_args()
    init_logging("analysis")

    try:
        result = asyncio.run(_run_cli(args))
    except AnalysisError as e:
        print(json.dumps({"error": e.to_dict()}, indent=2, ensure_ascii=False, default=str))
        sys.exit(1)

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))


if __name__ == "__main__":
    main()
