"""
Priority Scorer

Deterministic 0-100 importance score for backlog opinions, built from four
capped sub-scores: information volume, recency, keyword novelty and
emotional intensity.
"""
from datetime import datetime
from typing import Iterable, Sequence

from loguru import logger

from . import config
from .models import (
    PriorityStats,
    ScoreBreakdown,
    ScoredOpinion,
    ScoringContext,
    TopicSnapshot,
)


def _naive(value: datetime) -> datetime:
    """Local naive time; aware values are converted before the zone is dropped."""
    return value.astimezone().replace(tzinfo=None) if value.tzinfo else value


def collect_topic_keywords(topics: Iterable[TopicSnapshot]) -> list[str]:
    """Keywords of existing topics: from name, summary and stored keywords."""
    keywords: list[str] = []
    for topic in topics:
        keywords.extend(config.extract_keywords(topic.name))
        keywords.extend(config.extract_keywords(topic.summary))
        keywords.extend(k for k in topic.keywords if k)
    return list(dict.fromkeys(keywords))


def project_keywords_from_name(name: str) -> list[str]:
    """Project keywords: words of the project name longer than 2 characters."""
    return [word for word in (name or "").split() if len(word) > 2]


class PriorityScorer:
    """
    Scores opinions against a ScoringContext.

    Pure: the only time source is context.now.
    """

    def score(self, opinion, context: ScoringContext,
              topic_keywords: list[str] = None) -> ScoredOpinion:
        """
        Score one opinion.

        Args:
            opinion: Any object with id, content and submitted_at
            context: Scoring context (now, existing topics, project keywords)
            topic_keywords: Precomputed collect_topic_keywords() result
        """
        content = opinion.content or ""
        reasons: list[str] = []
        if topic_keywords is None:
            topic_keywords = collect_topic_keywords(context.existing_topics)

        breakdown = ScoreBreakdown(
            length=self._length_score(content, reasons),
            recency=self._recency_score(opinion.submitted_at, context.now, reasons),
            uniqueness=self._uniqueness_score(content, topic_keywords, context.project_keywords, reasons),
            emotion=self._emotion_score(content, reasons),
        )
        priority = min(breakdown.total, config.MAX_PRIORITY)

        return ScoredOpinion(
            opinion_id=opinion.id,
            content=content,
            submitted_at=opinion.submitted_at,
            priority=priority,
            token_count=config.estimate_tokens(content),
            reasons=reasons,
            breakdown=breakdown,
        )

    def score_batch(self, opinions: Sequence, context: ScoringContext) -> list[ScoredOpinion]:
        """
        Score opinions and sort by priority descending.

        Ties keep the input order.
        """
        topic_keywords = collect_topic_keywords(context.existing_topics)
        scored = [self.score(op, context, topic_keywords) for op in opinions]
        scored.sort(key=lambda s: s.priority, reverse=True)

        if scored:
            stats = generate_priority_stats(scored)
            logger.info(
                f"Scored {stats.total_opinions} opinions: avg={stats.average_priority}, "
                f"high={stats.high_priority_count}, medium={stats.medium_priority_count}, "
                f"low={stats.low_priority_count}"
            )
        return scored

    # ============================================
    # SUB-SCORES
    # ============================================

    def _length_score(self, content: str, reasons: list[str]) -> int:
        score = config.get_length_score(content)
        length = len(content)
        if length > 200:
            reasons.append("Rich content (over 200 characters)")
        elif length > 100:
            reasons.append("Substantial content (100-200 characters)")
        elif length > 50:
            reasons.append("Standard content (50-100 characters)")
        elif length > 20:
            reasons.append("Minimal content (20-50 characters)")
        else:
            reasons.append("Short text")
        return score

    def _recency_score(self, submitted_at: datetime, now: datetime, reasons: list[str]) -> int:
        age_hours = (_naive(now) - _naive(submitted_at)).total_seconds() / 3600
        score = config.get_recency_score(age_hours)
        labels = {
            30: "Brand new (within 1 hour)",
            25: "New (within 6 hours)",
            20: "Same day (within 24 hours)",
            15: "Recent (within 3 days)",
            10: "Within a week",
        }
        reasons.append(labels.get(score, "Older submission"))
        return score

    def _uniqueness_score(
        self,
        content: str,
        topic_keywords: list[str],
        project_keywords: list[str],
        reasons: list[str],
    ) -> int:
        content_keywords = config.extract_keywords(content)
        lowered_existing = [k.lower() for k in topic_keywords]

        novel = []
        for keyword in content_keywords:
            lowered = keyword.lower()
            if not any(e in lowered or lowered in e for e in lowered_existing):
                novel.append(keyword)

        score = 0
        if novel:
            score = min(len(novel) * config.UNIQUENESS_PER_KEYWORD, config.UNIQUENESS_CAP)
            more = " and more" if len(novel) > 3 else ""
            reasons.append(f"New keywords: {', '.join(novel[:3])}{more}")

        lowered_project = [p.lower() for p in project_keywords if p]
        if lowered_project and any(
            p in keyword.lower() for keyword in content_keywords for p in lowered_project
        ):
            score += config.PROJECT_KEYWORD_BONUS
            reasons.append("Contains project keywords")

        return min(score, config.UNIQUENESS_CAP)

    def _emotion_score(self, content: str, reasons: list[str]) -> int:
        lowered = content.lower()
        matches = [
            term for term in config.EMOTION_TERMS_JA + config.EMOTION_TERMS_EN
            if config.term_in_content(term, content, lowered)
        ]

        score = 0
        if matches:
            score = min(len(matches) * config.EMOTION_PER_MATCH, config.EMOTION_LEXICON_CAP)
            more = " and more" if len(matches) > 2 else ""
            reasons.append(f"Strong expressions: {', '.join(matches[:2])}{more}")

        if any(marker in content for marker in config.QUESTION_MARKERS):
            score += config.QUESTION_BONUS
            reasons.append("Question")

        suggestion_terms = config.SUGGESTION_TERMS_JA + config.SUGGESTION_TERMS_EN
        if any(config.term_in_content(term, content, lowered) for term in suggestion_terms):
            score += config.SUGGESTION_BONUS
            reasons.append("Suggestion or request")

        return min(score, config.EMOTION_CAP)


def generate_priority_stats(scored: Sequence[ScoredOpinion]) -> PriorityStats:
    """Totals, average priority and priority band counts."""
    total = len(scored)
    total_tokens = sum(s.token_count for s in scored)
    return PriorityStats(
        total_opinions=total,
        average_priority=round(sum(s.priority for s in scored) / total) if total else 0,
        high_priority_count=sum(1 for s in scored if config.get_priority_level(s.priority) == "high"),
        medium_priority_count=sum(1 for s in scored if config.get_priority_level(s.priority) == "medium"),
        low_priority_count=sum(1 for s in scored if config.get_priority_level(s.priority) == "low"),
        total_tokens=total_tokens,
        average_tokens_per_opinion=round(total_tokens / total) if total else 0,
    )
