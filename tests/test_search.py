# tests/test_search.py
from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from qtiedit.config import Settings
from qtiedit.errors import InvalidPattern, StaleMatch
from qtiedit.model import Answer, Document, Question
from qtiedit.search.engine import (
    SearchField,
    SearchScope,
    extract_context,
    replace_all,
    replace_match,
    search,
)


def pets() -> Document:
    q1 = Question(
        question_text="<p>The cat sat on the mat.</p>",
        answers=(Answer(text="Cat", is_correct=True), Answer(text="Dog")),
        general_feedback="cat facts",
        metadata={"canvas_title": "Cats"},
    )
    q2 = Question(question_text="aaaa")
    return Document(title="Pets", questions=(q1, q2))

def single(text: str) -> Document:
    return Document(questions=(Question(question_text=text),))


# -------------------- Search --------------------

def test_literal_search_is_case_insensitive_by_default():
    doc = pets()
    q1 = doc.questions[0]
    matches = search("cat", doc)
    assert [(m.field, m.range, m.matched_text) for m in matches] == [
        (SearchField.QUESTION_TITLE, (0, 3), "Cat"),
        (SearchField.QUESTION_TEXT, (7, 10), "cat"),
        (SearchField.ANSWER_TEXT, (0, 3), "Cat"),
        (SearchField.FEEDBACK, (0, 3), "cat"),
    ]
    assert all(m.question_id == q1.id for m in matches)
    assert matches[2].answer_id == q1.answers[0].id
    assert matches[0].answer_id is None

def test_case_sensitive_search():
    matches = search("cat", pets(), case_sensitive=True)
    assert [m.field for m in matches] == [SearchField.QUESTION_TEXT, SearchField.FEEDBACK]

def test_literal_matches_never_overlap():
    matches = search("aa", single("aaaa"))
    assert [m.range for m in matches] == [(0, 2), (2, 4)]

def test_literal_metacharacters_are_not_regex():
    matches = search("a.b", single("a.b axb"))
    assert [m.range for m in matches] == [(0, 3)]

def test_regex_search():
    matches = search(r"\bs\w+", single("She sells sea shells"), is_regex=True, case_sensitive=True)
    assert [m.matched_text for m in matches] == ["sells", "sea", "shells"]

def test_empty_pattern_finds_nothing():
    assert search("", pets()) == []

def test_invalid_regex():
    with pytest.raises(InvalidPattern):
        search("[abc", pets(), is_regex=True)

def test_invalid_regex_text_is_fine_in_literal_mode():
    matches = search("[abc", single("x [abc y"))
    assert [m.range for m in matches] == [(2, 6)]

def test_current_question_scope():
    doc = pets()
    q2 = doc.questions[1]
    matches = search("a", doc, scope=SearchScope.CURRENT_QUESTION, current_question_id=q2.id)
    assert {m.question_id for m in matches} == {q2.id}
    assert len(matches) == 4

def test_current_question_scope_without_a_question():
    assert search("a", pets(), scope=SearchScope.CURRENT_QUESTION) == []
    assert search("a", pets(), scope=SearchScope.CURRENT_QUESTION, current_question_id="nope") == []

@pytest.mark.parametrize(
    "field, expected",
    [
        (SearchField.QUESTION_TITLE, 1),
        (SearchField.QUESTION_TEXT, 1),
        (SearchField.ANSWER_TEXT, 1),
        (SearchField.FEEDBACK, 1),
        (SearchField.ALL, 4),
    ],
)
def test_field_filter(field, expected):
    matches = search("cat", pets(), field=field)
    assert len(matches) == expected
    if field is not SearchField.ALL:
        assert {m.field for m in matches} == {field}


# -------------------- Context --------------------

def test_context_has_ellipses_when_truncated():
    text = "x" * 20 + "needle" + "y" * 20
    assert extract_context(text, 20, 26, radius=5) == "...xxxxxneedleyyyyy..."

def test_context_without_truncation_strips_html():
    text = "<p><b>bold</b> needle</p>"
    start = text.index("needle")
    assert extract_context(text, start, start + 6) == "bold needle"

def test_context_radius_comes_from_settings():
    text = "x" * 20 + "needle" + "y" * 20
    matches = search("needle", single(text), settings=Settings(context_radius=3))
    assert matches[0].context == "...xxxneedleyyy..."

def test_default_context_radius_is_fifty():
    text = "a" * 60 + "needle" + "b" * 60
    context = search("needle", single(text))[0].context
    assert context == "..." + "a" * 50 + "needle" + "b" * 50 + "..."


# -------------------- Replace --------------------

def test_replace_all_rewrites_each_field_once():
    doc = single("a a")
    matches = search("a", doc, field=SearchField.QUESTION_TEXT)
    assert len(matches) == 2
    out = replace_all(doc, matches, "aa", "a")
    assert out.questions[0].question_text == "aa aa"

def test_replace_all_leaves_original_untouched():
    doc = single("a a")
    out = replace_all(doc, search("a", doc), "b", "a")
    assert doc.questions[0].question_text == "a a"
    assert out.questions[0].question_text == "b b"
    assert out.questions[0].id == doc.questions[0].id

def test_replace_all_every_field():
    doc = pets()
    out = replace_all(doc, search("cat", doc), "dog", "cat")
    q1 = out.questions[0]
    assert q1.title == "dogs"
    assert q1.question_text == "<p>The dog sat on the mat.</p>"
    assert [a.text for a in q1.answers] == ["dog", "Dog"]
    assert q1.general_feedback == "dog facts"
    assert q1.answers[0].canvas_identifier == doc.questions[0].answers[0].canvas_identifier
    assert out.questions[1] == doc.questions[1]

def test_replace_all_honors_case_flag():
    doc = pets()
    matches = search("cat", doc, case_sensitive=True)
    out = replace_all(doc, matches, "dog", "cat", case_sensitive=True)
    q1 = out.questions[0]
    assert q1.title == "Cats"
    assert [a.text for a in q1.answers] == ["Cat", "Dog"]
    assert q1.general_feedback == "dog facts"

def test_regex_replace_uses_templates():
    doc = single("John Doe, Jane Roe")
    matches = search(r"(\w+) (\w+)", doc, is_regex=True)
    out = replace_all(doc, matches, r"$2, $1 (\$0)", r"(\w+) (\w+)", is_regex=True)
    assert out.questions[0].question_text == "Doe, John ($0), Roe, Jane ($0)"

def test_literal_replace_has_no_group_semantics():
    doc = single("cost: 5")
    out = replace_all(doc, search("5", doc), r"$1 \1 $0", "5")
    assert out.questions[0].question_text == r"cost: $1 \1 $0"

def test_replace_all_without_matches_is_identity():
    doc = pets()
    assert replace_all(doc, [], "x", "cat") is doc


# -------------------- Single replace --------------------

def test_replace_single_match():
    doc = single("a a a")
    matches = search("a", doc)
    out = replace_match(doc, matches[1], "b", "a")
    assert out.questions[0].question_text == "a b a"

def test_replace_single_regex_match():
    doc = single("x=1 y=2")
    matches = search(r"(\w)=(\d)", doc, is_regex=True)
    out = replace_match(doc, matches[1], "$2=$1", r"(\w)=(\d)", is_regex=True)
    assert out.questions[0].question_text == "x=1 2=y"

def test_replace_single_answer_match():
    doc = pets()
    match = search("dog", doc, field=SearchField.ANSWER_TEXT)[0]
    out = replace_match(doc, match, "Wolf", "dog")
    assert [a.text for a in out.questions[0].answers] == ["Cat", "Wolf"]

def test_stale_match_after_edit():
    doc = single("a a")
    matches = search("a", doc)
    edited = replace_all(doc, matches, "bb", "a")
    with pytest.raises(StaleMatch):
        replace_match(edited, matches[0], "c", "a")

def test_stale_match_when_question_removed():
    doc = pets()
    match = search("cat", doc)[0]
    with pytest.raises(StaleMatch):
        replace_match(Document(), match, "dog", "cat")
