"""Utility functions for common operations across the application."""


def normalize_email(email: str) -> str:
    """Convert email to lowercase and strip whitespace."""
    return email.strip().lower()


def dedupe_ids(ids: list[int]) -> list[int]:
    """Drop repeated ids while keeping first-seen order."""
    return list(dict.fromkeys(ids))
