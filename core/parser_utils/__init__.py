"""Shared helper utilities for command parsing."""

from .text import (
    EMAIL_PATTERN,
    clean_course_name,
    contains_keyword,
    contains_word,
    extract_course_reference,
    extract_emails,
    extract_message_text,
    extract_named,
    extract_quoted,
)
from .datetime import (
    find_date_phrase,
    find_date_phrases,
    find_time_phrase,
    find_time_phrases,
    parse_date_expression,
    parse_time_expression,
    resolve_datetime,
)

__all__ = [
    "EMAIL_PATTERN",
    "clean_course_name",
    "contains_keyword",
    "contains_word",
    "extract_course_reference",
    "extract_emails",
    "extract_message_text",
    "extract_named",
    "extract_quoted",
    "find_date_phrase",
    "find_date_phrases",
    "find_time_phrase",
    "find_time_phrases",
    "parse_date_expression",
    "parse_time_expression",
    "resolve_datetime",
]
