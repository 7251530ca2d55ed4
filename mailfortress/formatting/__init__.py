"""Normalization of LLM output into display text and parsed JSON."""
