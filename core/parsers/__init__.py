"""Domain-specific command parsers."""

from . import conversation, courses, coursework, mail, meetings, roster

__all__ = ["conversation", "courses", "coursework", "mail", "meetings", "roster"]
