"""
Output Parser - Parse and validate the classification response.

Nothing in the payload is trusted: every item is validated on its own and
invalid items are dropped without affecting the others.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from constants import ClassificationAction, INSIGHT_TYPES, PRIORITY_LEVELS
from .models import (
    AlternativeOption,
    AssignToExisting,
    ClassificationDecision,
    CreateNew,
    Insight,
    NewClusterProposal,
    RejectedItem,
)


DEFAULT_CONFIDENCE = 0.5


@dataclass
class ParsedPayload:
    """Validated payload items plus what was rejected."""
    decisions: list[ClassificationDecision] = field(default_factory=list)
    clusters: list[NewClusterProposal] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)
    rejected: list[RejectedItem] = field(default_factory=list)
    error: Optional[str] = None  # set when no structured payload could be read

    @property
    def is_usable(self) -> bool:
        return self.error is None and len(self.decisions) > 0


def clamp_confidence(value: Any) -> float:
    """Confidence in [0, 1]; non-numbers become 0.5."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v]


def _priority(value: Any) -> str:
    return value if isinstance(value, str) and value in PRIORITY_LEVELS else "medium"


class ResponseParser:
    """
    Parse the model's text into decisions, cluster proposals and insights.

    Args:
        strict: Record invalid items as rejected (and warn) instead of
            silently dropping them
    """

    def __init__(self, strict: bool = True):
        self.strict = strict

    def parse(
        self,
        llm_output: str,
        selected_ids: set[str],
        topic_ids: set[str],
    ) -> ParsedPayload:
        """
        Parse model output.

        Args:
            llm_output: Raw response text
            selected_ids: Opinion ids that were sent
            topic_ids: Existing topic ids that were sent
        """
        json_str = self._extract_json(llm_output or "")
        if not json_str:
            return ParsedPayload(error="Could not extract JSON from LLM output")

        data = self._load(json_str)
        if not isinstance(data, dict):
            return ParsedPayload(error="LLM output is not a JSON object")

        payload = ParsedPayload()
        self._parse_classifications(data.get("classifications"), selected_ids, topic_ids, payload)
        self._parse_clusters(data.get("newTopicClusters"), selected_ids, payload)
        self._parse_insights(data.get("insights"), payload)
        return payload

    # ============================================
    # JSON EXTRACTION
    # ============================================

    def _extract_json(self, text: str) -> Optional[str]:
        """Extract JSON from text, handling markdown code blocks."""
        code_block_pattern = r'```(?:json)?\s*\n?([\s\S]*?)\n?```'
        matches = re.findall(code_block_pattern, text)
        if matches:
            return max(matches, key=len).strip()

        start = text.find('{')
        end = text.rfind('}')
        if start != -1 and end > start:
            return text[start:end + 1]
        return None

    def _load(self, json_str: str) -> Any:
        try:
            return json.loads(json_str)
        except json.JSONDecodeError as e:
            logger.debug(f"JSON parse error: {e}; trying to fix")
            try:
                return json.loads(self._try_fix_json(json_str))
            except json.JSONDecodeError:
                return None

    def _try_fix_json(self, json_str: str) -> str:
        """Fix common JSON issues: trailing commas."""
        fixed = re.sub(r',\s*}', '}', json_str)
        return re.sub(r',\s*]', ']', fixed)

    # ============================================
    # ITEM VALIDATION
    # ============================================

    def _reject(self, payload: ParsedPayload, kind: str, index: int, reason: str) -> None:
        if self.strict:
            payload.rejected.append(RejectedItem(kind=kind, index=index, reason=reason))
            logger.warning(f"Rejected {kind} #{index}: {reason}")
        else:
            logger.debug(f"Dropped {kind} #{index}: {reason}")

    def _parse_classifications(
        self,
        items: Any,
        selected_ids: set[str],
        topic_ids: set[str],
        payload: ParsedPayload,
    ) -> None:
        if not isinstance(items, list):
            return

        seen: set[str] = set()
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                self._reject(payload, "classification", index, "not an object")
                continue

            opinion_id = item.get("opinionId")
            if not isinstance(opinion_id, str) or opinion_id not in selected_ids:
                self._reject(payload, "classification", index, f"unknown opinion id {opinion_id!r}")
                continue
            if opinion_id in seen:
                self._reject(payload, "classification", index, f"duplicate decision for {opinion_id}")
                continue

            action = item.get("action")
            action = action if isinstance(action, str) else None
            if action == ClassificationAction.ASSIGN_TO_EXISTING.value:
                topic_id = item.get("targetTopicId")
                if not isinstance(topic_id, str) or topic_id not in topic_ids:
                    self._reject(payload, "classification", index, f"unknown topic id {topic_id!r}")
                    continue
                target = AssignToExisting(topic_id=topic_id)
            elif action == ClassificationAction.CREATE_NEW_TOPIC.value:
                cluster_id = item.get("newTopicCluster")
                if not _non_empty_str(cluster_id):
                    self._reject(payload, "classification", index, "missing cluster id")
                    continue
                target = CreateNew(cluster_id=cluster_id)
            else:
                self._reject(payload, "classification", index, f"unknown action {action!r}")
                continue

            seen.add(opinion_id)
            reasoning = item.get("reasoning")
            payload.decisions.append(ClassificationDecision(
                opinion_id=opinion_id,
                target=target,
                confidence=clamp_confidence(item.get("confidence")),
                reasoning=reasoning if isinstance(reasoning, str) else "",
                alternatives=self._parse_alternatives(item.get("alternativeOptions")),
            ))

    def _parse_alternatives(self, items: Any) -> list[AlternativeOption]:
        if not isinstance(items, list):
            return []
        actions = {a.value for a in ClassificationAction}
        alternatives = []
        for item in items:
            if not isinstance(item, dict):
                continue
            action = item.get("action")
            if not isinstance(action, str) or action not in actions or not _non_empty_str(item.get("targetId")):
                continue
            alternatives.append(AlternativeOption(
                action=action,
                target_id=item["targetId"],
                confidence=clamp_confidence(item.get("confidence")),
            ))
        return alternatives

    def _parse_clusters(self, items: Any, selected_ids: set[str], payload: ParsedPayload) -> None:
        if not isinstance(items, list):
            return

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                self._reject(payload, "cluster", index, "not an object")
                continue
            if not _non_empty_str(item.get("clusterId")):
                self._reject(payload, "cluster", index, "missing cluster id")
                continue
            if not _non_empty_str(item.get("suggestedName")):
                self._reject(payload, "cluster", index, "missing name")
                continue
            if not isinstance(item.get("opinionIds"), list):
                self._reject(payload, "cluster", index, "opinionIds is not a list")
                continue
            if any(c.cluster_id == item["clusterId"] for c in payload.clusters):
                self._reject(payload, "cluster", index, f"duplicate cluster {item['clusterId']}")
                continue

            summary = item.get("suggestedSummary")
            theme = item.get("theme")
            payload.clusters.append(NewClusterProposal(
                cluster_id=item["clusterId"],
                name=item["suggestedName"].strip(),
                summary=summary if isinstance(summary, str) else "",
                opinion_ids=[i for i in _str_list(item["opinionIds"]) if i in selected_ids],
                priority=_priority(item.get("priority")),
                confidence=clamp_confidence(item.get("confidence")),
                keywords=_str_list(item.get("keywords")),
                theme=theme if isinstance(theme, str) else "",
            ))

    def _parse_insights(self, items: Any, payload: ParsedPayload) -> None:
        if not isinstance(items, list):
            return

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                self._reject(payload, "insight", index, "not an object")
                continue
            insight_type = item.get("type")
            if not isinstance(insight_type, str) or insight_type not in INSIGHT_TYPES:
                self._reject(payload, "insight", index, f"unknown insight type {insight_type!r}")
                continue
            if not _non_empty_str(item.get("title")) or not _non_empty_str(item.get("description")):
                self._reject(payload, "insight", index, "missing title or description")
                continue

            payload.insights.append(Insight(
                type=insight_type,
                title=item["title"],
                description=item["description"],
                affected_opinions=_str_list(item.get("affectedOpinions")),
                priority=_priority(item.get("priority")),
                confidence=clamp_confidence(item.get("confidence")),
                suggested_actions=_str_list(item.get("suggestedActions")),
            ))
