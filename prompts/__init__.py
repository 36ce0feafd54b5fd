"""
Prompts Module - Centralized prompt management.

Usage:
    from prompts import PromptLoader

    loader = PromptLoader()
    prompt = loader.format("unified_analysis", opinions_section="...", ...)

Prompt Files:
- unified_analysis.md: Single-call classification of the selected opinions
- unified_analysis_insights.md: Optional cross-opinion insight instruction
"""

from ._loader import PromptLoader

__all__ = [
    "PromptLoader",
]
