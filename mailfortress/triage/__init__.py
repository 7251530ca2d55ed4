"""LLM triage operations (categorize, chat, spam, reply)."""
