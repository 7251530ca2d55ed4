"""Supabase-backed persistence for emails and prompts."""
