"""
Configuration and utilities for opinion priority scoring.

Contains:
- Score bands for information volume and recency
- Sub-score caps
- Emphasis / suggestion lexicons
- Keyword extraction helpers
"""
import math
import re


# ============================================
# SCORE BANDS
# ============================================

# (min_length_exclusive, score), checked top-down
LENGTH_BANDS = [
    (200, 25),
    (100, 20),
    (50, 15),
    (20, 10),
]
LENGTH_FLOOR = 5

# (max_age_hours_exclusive, score), checked top-down
RECENCY_BANDS = [
    (1, 30),
    (6, 25),
    (24, 20),
    (72, 15),
    (168, 10),
]
RECENCY_FLOOR = 5


# ============================================
# CAPS AND WEIGHTS
# ============================================

MAX_PRIORITY = 100
UNIQUENESS_CAP = 25
UNIQUENESS_PER_KEYWORD = 5
PROJECT_KEYWORD_BONUS = 5
EMOTION_CAP = 20
EMOTION_LEXICON_CAP = 15
EMOTION_PER_MATCH = 3
QUESTION_BONUS = 5
SUGGESTION_BONUS = 5

MAX_KEYWORDS = 10

# Estimated tokens per character
TOKEN_ESTIMATION_FACTOR = 1.3

# Priority bands (shared by stats, status and recommendations)
HIGH_PRIORITY_THRESHOLD = 70      # priority > 70
MEDIUM_PRIORITY_THRESHOLD = 40    # 40 <= priority <= 70


# ============================================
# LEXICONS
# ============================================

# Strong sentiment, emphasis and problem-pointing terms
EMOTION_TERMS_JA = [
    '素晴らしい', '最高', '最悪', '絶対', '完全に', '間違いなく',
    '驚く', '感動', '失望', '怒り', '不安', '心配', '喜び', '嬉しい',
    '！！', '？？', '本当に', 'とても', 'すごく', 'かなり', '非常に',
    '問題', '課題', '改善', '必要', '重要', '緊急', '危険',
]
EMOTION_TERMS_EN = [
    'amazing', 'best', 'worst', 'absolutely', 'completely', 'definitely',
    'surprised', 'disappointed', 'angry', 'anxious', 'worried', 'happy', 'glad',
    '!!', '??', 'really', 'very', 'extremely',
    'problem', 'issue', 'improve', 'need', 'important', 'urgent', 'dangerous',
]

SUGGESTION_TERMS_JA = ['提案', '改善', 'もっと', 'ほしい', 'べき', '必要']
SUGGESTION_TERMS_EN = ['suggest', 'propose', 'should', 'please', 'would like', 'wish', 'could you']

QUESTION_MARKERS = ['？', '?']


# ============================================
# UTILITY FUNCTIONS
# ============================================

_SEPARATORS = re.compile(r'[。、！？\n\r\t]')
_ALNUM_ONLY = re.compile(r'^[a-zA-Z0-9]+$')
_WORD_CHARS = re.compile(r'^\w')


def get_length_score(content: str) -> int:
    """Information-volume score from content length."""
    length = len(content)
    for min_length, score in LENGTH_BANDS:
        if length > min_length:
            return score
    return LENGTH_FLOOR


def get_recency_score(age_hours: float) -> int:
    """
    Recency score from age in hours.

    Negative ages (clock skew) count as brand new.
    """
    for max_hours, score in RECENCY_BANDS:
        if age_hours < max_hours:
            return score
    return RECENCY_FLOOR


def estimate_tokens(content: str) -> int:
    """Size-cost proxy: ceil(length x 1.3)."""
    return math.ceil(len(content) * TOKEN_ESTIMATION_FACTOR)


def extract_keywords(text: str) -> list[str]:
    """
    Extract candidate keywords from text.

    Tokens of length >= 2 that are not purely ASCII alphanumeric, longest
    first (stable for equal lengths), first 10, deduplicated in order.
    """
    if not text:
        return []
    words = [
        word for word in _SEPARATORS.sub(' ', text).split()
        if len(word) >= 2 and not _ALNUM_ONLY.match(word)
    ]
    words.sort(key=len, reverse=True)
    return list(dict.fromkeys(words[:MAX_KEYWORDS]))


def term_in_content(term: str, content: str, lowered: str) -> bool:
    """
    Whether a lexicon term occurs in content.

    Japanese and punctuation terms match as substrings; English words match
    case-insensitively on word boundaries.
    """
    if term.isascii() and _WORD_CHARS.match(term):
        return re.search(rf'\b{re.escape(term)}\b', lowered) is not None
    return term in content


def get_priority_level(priority: float) -> str:
    """Map a priority to its band name."""
    if priority > HIGH_PRIORITY_THRESHOLD:
        return "high"
    if priority >= MEDIUM_PRIORITY_THRESHOLD:
        return "medium"
    return "low"
