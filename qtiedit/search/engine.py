"""
Search and replace over a Document's text fields.

search() returns SearchMatch records with character ranges into the field
text as it was at search time. replace_all() rewrites each touched field
once, against its current text, so ranges recorded for later matches in the
same field are never applied to already-rewritten text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from qtiedit.common import strip_html
from qtiedit.config import DEFAULT_SETTINGS, Settings
from qtiedit.errors import StaleMatch
from qtiedit.model import CANVAS_TITLE, Document, Question
from qtiedit.search.template import compile_pattern, expand_template


class SearchScope(str, Enum):
    CURRENT_QUESTION = "Current Question"
    ALL_QUESTIONS = "All Questions"


class SearchField(str, Enum):
    QUESTION_TITLE = "Question Title"
    QUESTION_TEXT = "Question Text"
    ANSWER_TEXT = "Answer Text"
    FEEDBACK = "Feedback"
    ALL = "All Fields"


@dataclass(frozen=True)
class SearchMatch:
    question_id: str
    field: SearchField
    answer_id: Optional[str]
    range: Tuple[int, int]
    matched_text: str
    context: str

    @property
    def key(self) -> Tuple[str, SearchField, Optional[str]]:
        return (self.question_id, self.field, self.answer_id)


# -------------------- Field access --------------------

def iter_fields(question: Question, wanted: SearchField) -> Iterator[Tuple[SearchField, Optional[str], str]]:
    """Yield (field, answer_id, text) in display order."""
    if wanted in (SearchField.QUESTION_TITLE, SearchField.ALL):
        yield SearchField.QUESTION_TITLE, None, question.metadata.get(CANVAS_TITLE, "")
    if wanted in (SearchField.QUESTION_TEXT, SearchField.ALL):
        yield SearchField.QUESTION_TEXT, None, question.question_text
    if wanted in (SearchField.ANSWER_TEXT, SearchField.ALL):
        for answer in question.answers:
            yield SearchField.ANSWER_TEXT, answer.id, answer.text
    if wanted in (SearchField.FEEDBACK, SearchField.ALL):
        yield SearchField.FEEDBACK, None, question.general_feedback

def field_text(question: Question, field: SearchField, answer_id: Optional[str]) -> Optional[str]:
    if field is SearchField.QUESTION_TITLE:
        return question.metadata.get(CANVAS_TITLE, "")
    if field is SearchField.QUESTION_TEXT:
        return question.question_text
    if field is SearchField.ANSWER_TEXT:
        answer = question.find_answer(answer_id) if answer_id else None
        return answer.text if answer else None
    if field is SearchField.FEEDBACK:
        return question.general_feedback
    return None

def with_field_text(question: Question, field: SearchField, answer_id: Optional[str], text: str) -> Question:
    if field is SearchField.QUESTION_TITLE:
        return replace(question, metadata={**question.metadata, CANVAS_TITLE: text})
    if field is SearchField.QUESTION_TEXT:
        return replace(question, question_text=text)
    if field is SearchField.ANSWER_TEXT:
        answers = tuple(replace(a, text=text) if a.id == answer_id else a for a in question.answers)
        return replace(question, answers=answers)
    if field is SearchField.FEEDBACK:
        return replace(question, general_feedback=text)
    return question


# -------------------- Search --------------------

def build_regex(pattern: str, is_regex: bool, case_sensitive: bool) -> re.Pattern:
    if is_regex:
        return compile_pattern(pattern, case_sensitive)
    return re.compile(re.escape(pattern), 0 if case_sensitive else re.IGNORECASE)

def extract_context(text: str, start: int, end: int, radius: int = 50) -> str:
    lo = max(0, start - radius)
    hi = min(len(text), end + radius)
    context = strip_html(text[lo:hi]).strip()
    if lo > 0:
        context = "..." + context
    if hi < len(text):
        context = context + "..."
    return context

def literal_spans(regex: re.Pattern, text: str) -> Iterator[re.Match]:
    pos = 0
    while pos <= len(text):
        m = regex.search(text, pos)
        if m is None:
            return
        yield m
        # Resume strictly after this match so ranges never overlap.
        pos = m.end() if m.end() > m.start() else m.end() + 1

def find_in_text(regex: re.Pattern, text: str, is_regex: bool) -> Iterator[re.Match]:
    if not text:
        return iter(())
    return regex.finditer(text) if is_regex else literal_spans(regex, text)

def questions_in_scope(document: Document, scope: SearchScope, current_question_id: Optional[str]) -> List[Question]:
    if scope is SearchScope.CURRENT_QUESTION:
        question = document.find_question(current_question_id) if current_question_id else None
        return [question] if question else []
    return list(document.questions)

def search(
    pattern: str,
    document: Document,
    *,
    is_regex: bool = False,
    case_sensitive: bool = False,
    scope: SearchScope = SearchScope.ALL_QUESTIONS,
    field: SearchField = SearchField.ALL,
    current_question_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> List[SearchMatch]:
    if not pattern:
        return []
    settings = settings or DEFAULT_SETTINGS
    regex = build_regex(pattern, is_regex, case_sensitive)

    matches: List[SearchMatch] = []
    for question in questions_in_scope(document, scope, current_question_id):
        for fld, answer_id, text in iter_fields(question, field):
            for m in find_in_text(regex, text, is_regex):
                matches.append(SearchMatch(
                    question_id=question.id,
                    field=fld,
                    answer_id=answer_id,
                    range=(m.start(), m.end()),
                    matched_text=m.group(0),
                    context=extract_context(text, m.start(), m.end(), settings.context_radius),
                ))
    return matches


# -------------------- Replace --------------------

def rewrite(text: str, regex: re.Pattern, replacement: str, is_regex: bool) -> str:
    if is_regex:
        return regex.sub(lambda m: expand_template(m, replacement), text)
    # Literal replacement: no group references, no backslash processing.
    return regex.sub(lambda m: replacement, text)

def replace_all(
    document: Document,
    matches: List[SearchMatch],
    replacement: str,
    pattern: str,
    *,
    is_regex: bool = False,
    case_sensitive: bool = False,
) -> Document:
    """Apply `replacement` once per (question, field, answer) touched by `matches`."""
    if not matches or not pattern:
        return document
    regex = build_regex(pattern, is_regex, case_sensitive)

    groups: Dict[Tuple[str, SearchField, Optional[str]], None] = {}
    for m in matches:
        groups.setdefault(m.key, None)

    for question_id, fld, answer_id in groups:
        question = document.find_question(question_id)
        if question is None:
            continue
        current = field_text(question, fld, answer_id)
        if current is None:
            continue
        updated = rewrite(current, regex, replacement, is_regex)
        if updated != current:
            document = document.replace_question(with_field_text(question, fld, answer_id, updated))
    return document

def replace_match(
    document: Document,
    match: SearchMatch,
    replacement: str,
    pattern: str,
    *,
    is_regex: bool = False,
    case_sensitive: bool = False,
) -> Document:
    """Replace only the text covered by `match`; raises StaleMatch if the field changed under it."""
    question = document.find_question(match.question_id)
    current = field_text(question, match.field, match.answer_id) if question else None
    start, end = match.range
    if current is None or current[start:end] != match.matched_text:
        raise StaleMatch(match.matched_text)

    if is_regex:
        regex = build_regex(pattern, True, case_sensitive)
        hit = next((m for m in regex.finditer(current) if m.span() == (start, end)), None)
        if hit is None:
            raise StaleMatch(match.matched_text)
        new_text = expand_template(hit, replacement)
    else:
        new_text = replacement

    updated = current[:start] + new_text + current[end:]
    return document.replace_question(with_field_text(question, match.field, match.answer_id, updated))
