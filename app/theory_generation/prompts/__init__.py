"""Prompt templates for the theory content generation pipeline.

All prompts share the house structure:
- Structured sections (<role>, <context>, <task>, <rules>, <output_format>)
- Simplified Chinese for learner-facing content
- JSON response format, mirroring the skeleton the validators check
"""

from app.theory_generation.prompts.sections import PromptBuilder

__all__ = ["PromptBuilder"]
