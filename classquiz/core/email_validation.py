"""Syntactic checks for student email batches used by roster management."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import re

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def normalize_email(raw: str) -> str:
    """Trim and lower-case an email as it is typed into a roster form."""
    return raw.strip().lower()


def is_valid_email(candidate: str) -> bool:
    return EMAIL_PATTERN.fullmatch(candidate) is not None


def validate_emails(candidates: Sequence[str], existing_emails: Iterable[str] = ()) -> list[str]:
    """Return human-readable problems with ``candidates``; an empty list means valid.

    Blank entries are skipped. Positions in messages count non-blank entries
    from one. ``existing_emails`` holds addresses already enrolled in the
    class being edited.
    """
    errors: list[str] = []
    emails = [email for email in candidates if email.strip()]

    for position, email in enumerate(emails, start=1):
        if not is_valid_email(email):
            errors.append(f'Email {position}: "{email}" is not a valid email address')

    seen: set[str] = set()
    duplicates: list[str] = []
    for email in emails:
        if email in seen and email not in duplicates:
            duplicates.append(email)
        seen.add(email)
    if duplicates:
        errors.append(f"Duplicate emails found: {', '.join(duplicates)}")

    existing = set(existing_emails)
    already_enrolled = list(dict.fromkeys(email for email in emails if email in existing))
    if already_enrolled:
        errors.append(f"These emails are already in the class: {', '.join(already_enrolled)}")

    return errors
