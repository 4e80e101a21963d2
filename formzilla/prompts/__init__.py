"""Prompt templates for the vision model."""

from formzilla.prompts.form_filling import (
    FORM_FILLING_SYSTEM_PROMPT,
    build_form_filling_user_prompt,
)


__all__ = [
    "FORM_FILLING_SYSTEM_PROMPT",
    "build_form_filling_user_prompt",
]
