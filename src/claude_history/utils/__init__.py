"""Utility helpers for claude-history."""
