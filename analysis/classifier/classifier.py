"""
Classification Orchestrator - single-call opinion classification

Sends every selected opinion and every known topic to the model in one
request, then validates the structured response. A response that cannot
be used is replaced by a deterministic fallback, so a successful call
always yields a complete outcome.
"""
import time
from datetime import datetime
from typing import Optional, Sequence

from loguru import logger

from config import settings
from analysis.errors import AnalysisError, ErrorCode
from analysis.scorer.config import estimate_tokens, get_priority_level
from analysis.scorer.models import ScoredOpinion, TopicSnapshot
from llm import get_client, LLMClient, set_llm_context
from prompts import PromptLoader
from .budget import CallBudget
from .models import (
    ClassificationDecision,
    ClassificationOutcome,
    CreateNew,
    NewClusterProposal,
    OutcomeMetadata,
)
from .output_parser import ResponseParser
from .retry import RetryPolicy


TASK_TYPE = "main_analysis"
FALLBACK_CONFIDENCE = 0.3
FALLBACK_CLUSTER_PREFIX = "fallback_cluster_"


class ClassificationError(AnalysisError):
    """Raised when the classification call fails after all retries."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(ErrorCode.TRANSPORT_FAILURE, message, details)


def _ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _proposal_for_opinion(
    opinion: ScoredOpinion,
    cluster_id: str,
    confidence: float,
    opinion_ids: list[str],
    theme: str,
) -> NewClusterProposal:
    """Single-source proposal named after the opinion's content."""
    content = opinion.content.strip()
    name = content[:20] + ("..." if len(content) > 20 else "")
    return NewClusterProposal(
        cluster_id=cluster_id,
        name=name or cluster_id,
        summary=f"Opinions about: {content[:100]}",
        opinion_ids=opinion_ids,
        priority=get_priority_level(opinion.priority),
        confidence=confidence,
        keywords=[],
        theme=theme,
        synthesized=True,
    )


def build_fallback_outcome(
    selected: Sequence[ScoredOpinion],
    reason: str,
    metadata: Optional[OutcomeMetadata] = None,
) -> ClassificationOutcome:
    """
    Deterministic outcome used when the response is unusable.

    Every selected opinion gets its own new topic at low confidence; no insights.
    """
    metadata = metadata or OutcomeMetadata()
    metadata.used_fallback = True
    metadata.fallback_reason = reason

    decisions = []
    clusters = []
    for opinion in selected:
        cluster_id = f"{FALLBACK_CLUSTER_PREFIX}{opinion.opinion_id}"
        decisions.append(ClassificationDecision(
            opinion_id=opinion.opinion_id,
            target=CreateNew(cluster_id=cluster_id),
            confidence=FALLBACK_CONFIDENCE,
            reasoning="Model response could not be used; created a new topic automatically",
        ))
        clusters.append(_proposal_for_opinion(
            opinion, cluster_id, FALLBACK_CONFIDENCE, [opinion.opinion_id], theme="auto-generated",
        ))

    return ClassificationOutcome(decisions=decisions, clusters=clusters, insights=[], metadata=metadata)


class ClassificationOrchestrator:
    """
    Single-pass classification of the selected opinions.

    Issues exactly one external call per run, guarded by a CallBudget.
    Transport failures are retried per the RetryPolicy; the retries are
    attempts of that one call.
    """

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        model: Optional[str] = None,
        include_insights: Optional[bool] = None,
        strict: Optional[bool] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.3,
    ):
        """
        Initialize orchestrator.

        Args:
            client: LLM client instance (creates default client if not provided)
            retry_policy: Transport retry policy (defaults from settings)
            model: Per-call model override (client default if None)
            include_insights: Ask for cross-opinion insights
            strict: Record rejected payload items instead of dropping them silently
            max_tokens: Response token limit
            temperature: Sampling temperature
        """
        self.client = client or get_client()
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.model = model
        self.include_insights = (
            settings.ANALYSIS_INCLUDE_INSIGHTS if include_insights is None else include_insights
        )
        self.parser = ResponseParser(
            strict=settings.ANALYSIS_STRICT_VALIDATION if strict is None else strict
        )
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS
        self.temperature = temperature
        self.prompt_loader = PromptLoader()

    @property
    def model_name(self) -> str:
        return self.model or self.client.model

    def classify(
        self,
        selected: Sequence[ScoredOpinion],
        topics: Sequence[TopicSnapshot],
        budget: CallBudget,
        run_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ClassificationOutcome:
        """
        Classify the selected opinions with one model call.

        Args:
            selected: Selected scored opinions
            topics: Existing topics of the project
            budget: Per-run call budget; consumed once
            run_id: Run identifier for call records
            now: Timestamp written into the request

        Returns:
            Validated ClassificationOutcome (fallback if the response is unusable)

        Raises:
            ClassificationError: If every attempt failed at the transport level
            AnalysisError: CALL_BUDGET_EXHAUSTED if the budget was already used
        """
        if not selected:
            logger.info("No opinions selected; skipping classification call")
            return ClassificationOutcome(metadata=OutcomeMetadata(model=self.model_name))

        prompt = self.build_prompt(selected, topics, now=now)
        metadata = OutcomeMetadata(
            model=self.model_name,
            prompt_tokens_estimate=estimate_tokens(prompt),
        )
        logger.info(
            f"Classifying {len(selected)} opinions against {len(topics)} topics "
            f"(model={metadata.model}, ~{metadata.prompt_tokens_estimate} tokens)"
        )

        set_llm_context(task_type=TASK_TYPE, run_id=run_id)
        started = time.perf_counter()
        raw_output = self._call_with_retry(prompt, budget, metadata)
        metadata.call_ms = _ms(started)

        started = time.perf_counter()
        payload = self.parser.parse(
            raw_output,
            selected_ids={s.opinion_id for s in selected},
            topic_ids={t.id for t in topics},
        )
        metadata.parse_ms = _ms(started)

        if payload.error:
            logger.warning(f"Classification response unusable ({payload.error}); using fallback")
            logger.debug(f"Raw output preview: {raw_output[:200]}...")
            return build_fallback_outcome(selected, payload.error, metadata)
        if not payload.decisions:
            reason = "Response contained no valid classification"
            logger.warning(f"{reason}; using fallback")
            return build_fallback_outcome(selected, reason, metadata)

        started = time.perf_counter()
        outcome = self._finalize(payload, selected, metadata)
        metadata.validation_ms = _ms(started)

        missing = len(selected) - len(outcome.decisions)
        logger.info(
            f"Classification complete: {outcome.assigned_count} assigned, "
            f"{outcome.created_count} new-topic decisions in {len(outcome.clusters)} clusters, "
            f"{len(outcome.insights)} insights, {len(outcome.rejected)} rejected, "
            f"{missing} undecided"
        )
        return outcome

    def build_prompt(
        self,
        selected: Sequence[ScoredOpinion],
        topics: Sequence[TopicSnapshot],
        now: Optional[datetime] = None,
    ) -> str:
        """Build the single request embedding all opinions and topics."""
        opinion_lines = []
        for index, opinion in enumerate(selected, start=1):
            reasons = f" ({', '.join(opinion.reasons)})" if opinion.reasons else ""
            opinion_lines.append(
                f"{index}. [ID: {opinion.opinion_id}] [Priority: {opinion.priority}] "
                f"[Tokens: {opinion.token_count}]{reasons}\n"
                f"   Content: \"{opinion.content}\"\n"
                f"   Submitted: {opinion.submitted_at.isoformat()}"
            )

        if topics:
            topic_lines = []
            for index, topic in enumerate(topics, start=1):
                keywords = f" [Keywords: {', '.join(topic.keywords)}]" if topic.keywords else ""
                topic_lines.append(
                    f"{index}. [ID: {topic.id}] [Count: {topic.count}]{keywords}\n"
                    f"   Name: \"{topic.name}\"\n"
                    f"   Summary: \"{topic.summary}\""
                )
            topics_section = "\n\n".join(topic_lines)
        else:
            topics_section = "None (first analysis)"

        insights_instruction = (
            self.prompt_loader.get("unified_analysis_insights").rstrip()
            if self.include_insights else ""
        )

        return self.prompt_loader.format(
            "unified_analysis",
            opinions_section="\n\n".join(opinion_lines),
            topics_section=topics_section,
            insights_instruction=insights_instruction,
            total_processed=len(selected),
            timestamp=(now or datetime.now()).isoformat(),
        )

    def _call_with_retry(self, prompt: str, budget: CallBudget, metadata: OutcomeMetadata) -> str:
        """Make the one external call, retrying transport failures."""
        budget.consume()

        max_attempts = self.retry_policy.max_attempts
        last_error = None
        for attempt in range(1, max_attempts + 1):
            metadata.attempts = attempt
            try:
                response = self.client.generate(
                    prompt=prompt,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                    model=self.model,
                )
                if response.model:
                    metadata.model = response.model
                return response.content or ""
            except Exception as e:
                last_error = e
                logger.warning(f"LLM call failed (attempt {attempt}/{max_attempts}): {e}")
                if attempt < max_attempts:
                    delay = self.retry_policy.delay(attempt)
                    logger.info(f"Retrying in {delay}s...")
                    self.retry_policy.wait(attempt)

        error_msg = f"Classification call failed after {max_attempts} attempts. Last error: {last_error}"
        logger.error(error_msg)
        raise ClassificationError(
            error_msg,
            {"attempts": max_attempts, "last_error": str(last_error)},
        ) from last_error

    def _finalize(
        self,
        payload,
        selected: Sequence[ScoredOpinion],
        metadata: OutcomeMetadata,
    ) -> ClassificationOutcome:
        """
        Tie proposals to decisions.

        Cluster membership is whatever the decisions point at. Decisions whose
        cluster has no valid proposal get a synthesized one; proposals nobody
        points at are dropped.
        """
        by_id = {s.opinion_id: s for s in selected}
        proposals = {p.cluster_id: p for p in payload.clusters}

        members: dict[str, list[ClassificationDecision]] = {}
        for decision in payload.decisions:
            if isinstance(decision.target, CreateNew):
                members.setdefault(decision.target.cluster_id, []).append(decision)

        clusters = []
        for cluster_id, decisions in members.items():
            opinion_ids = [d.opinion_id for d in decisions]
            proposal = proposals.get(cluster_id)
            if proposal is None:
                first = by_id[decisions[0].opinion_id]
                confidence = round(sum(d.confidence for d in decisions) / len(decisions), 3)
                proposal = _proposal_for_opinion(first, cluster_id, confidence, opinion_ids, theme="")
                logger.debug(f"Synthesized proposal for cluster {cluster_id}")
            else:
                proposal.opinion_ids = opinion_ids
            clusters.append(proposal)

        for cluster_id in proposals:
            if cluster_id not in members:
                logger.debug(f"Dropping proposal {cluster_id}: no decision points at it")

        return ClassificationOutcome(
            decisions=payload.decisions,
            clusters=clusters,
            insights=payload.insights if self.include_insights else [],
            rejected=payload.rejected,
            metadata=metadata,
        )
