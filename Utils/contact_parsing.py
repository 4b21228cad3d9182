"""Utility functions for contact value extraction and categorisation.
Called by enrichment/extraction_engine.py and enrichment/pipeline.py."""

import re
import logging
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)

__all__ = [
    "EMAIL_PATTERN",
    "PHONE_PATTERN",
    "MASK_CHARACTERS",
    "PERSONAL_EMAIL_DOMAINS",
    "ContactEnrichment",
    "is_masked",
    "clean_values",
    "extract_emails",
    "extract_phones",
    "categorize_contacts",
]

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-z]{2,}")
PHONE_PATTERN = re.compile(r"(\+\d{1,3}[-.\s]?)?\d{6,15}")
MASK_CHARACTERS = ("*", "•")

PERSONAL_EMAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "yahoo.com",
        "hotmail.com",
        "outlook.com",
        "aol.com",
        "icloud.com",
        "protonmail.com",
        "zoho.com",
    }
)

OVERFLOW_DELIMITER = "; "


@dataclass
class ContactEnrichment:
    """Categorised contact values for one record.

    Empty strings mean "not found" and never overwrite an existing value.
    """

    personal_email: str = ""
    other_personal_emails: str = ""
    work_email: str = ""
    other_work_emails: str = ""
    work_email_status: str = "Not Found"
    phone_number: str = ""
    other_phone_numbers: str = ""

    @property
    def found_anything(self) -> bool:
        return bool(self.personal_email or self.work_email or self.phone_number)


def is_masked(value: str) -> bool:
    """True when ``value`` contains a mask character (e.g. ``+1 415 ***``)."""
    return any(mask in value for mask in MASK_CHARACTERS)


def clean_values(values: Iterable[str]) -> list[str]:
    """Strip whitespace, drop empties and duplicates, keep first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        text = str(value or "").strip()
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


def extract_emails(text: str) -> list[str]:
    """Return every email address found in free text."""
    if not text:
        return []
    return clean_values(EMAIL_PATTERN.findall(text))


def extract_phones(text: str) -> list[str]:
    """Return phone numbers found in free text, skipping masked ones.

    A match touching a mask character (``+1415555****``) is a partially
    hidden number and is discarded along with matches that contain one.
    """
    if not text:
        return []
    phones: list[str] = []
    for match in PHONE_PATTERN.finditer(text):
        start, end = match.span()
        before = text[start - 1] if start > 0 else ""
        after = text[end] if end < len(text) else ""
        if is_masked(match.group(0)) or before in MASK_CHARACTERS or after in MASK_CHARACTERS:
            logger.debug("extract_phones: skipping masked match %r", match.group(0))
            continue
        phones.append(match.group(0))
    return clean_values(phones)


def _email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].strip().lower()


def categorize_contacts(emails: list[str], phones: list[str]) -> ContactEnrichment:
    """Split emails into personal/work buckets and assign primary fields.

    Args:
        emails: Extracted emails in discovery order.
        phones: Extracted phone numbers in discovery order.

    Returns:
        ContactEnrichment where the first value of each bucket is the
        primary field and the rest are joined with ``"; "``.
    """
    personal = [e for e in emails if _email_domain(e) in PERSONAL_EMAIL_DOMAINS]
    work = [e for e in emails if _email_domain(e) not in PERSONAL_EMAIL_DOMAINS]
    phones = [p for p in phones if not is_masked(p)]

    result = ContactEnrichment()
    if personal:
        result.personal_email = personal[0]
        result.other_personal_emails = OVERFLOW_DELIMITER.join(personal[1:])
    if work:
        result.work_email = work[0]
        result.other_work_emails = OVERFLOW_DELIMITER.join(work[1:])
        result.work_email_status = "Found"
    if phones:
        result.phone_number = phones[0]
        result.other_phone_numbers = OVERFLOW_DELIMITER.join(phones[1:])
    return result
