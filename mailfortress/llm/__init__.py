"""Gemini access: SDK model manager, REST fallback gateway, prompt templates."""
