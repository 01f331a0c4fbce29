"""
YAML snapshots of a Document.

A snapshot keeps everything the model holds, internal ids and metadata
included, so an editing session can be saved and resumed without going
through QTI. Multi-line HTML is written as block scalars to keep the files
diffable.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft202012Validator

from qtiedit.config import SCHEMA_DIR, load_schema, schema_problems
from qtiedit.errors import SnapshotError, WriteError
from qtiedit.model import Answer, Document, Question, QuestionType

DOCUMENT_SCHEMA_PATH = SCHEMA_DIR / "document.schema.json"

# ---------- YAML block-scalar helper ----------
class LiteralStr(str): pass
def _repr_literal(dumper, data):
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
yaml.add_representer(LiteralStr, _repr_literal, Dumper=yaml.SafeDumper)

def blockify(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = str(s)
    if "\n" in s:
        return LiteralStr(s)
    return s


# ---------- Document <-> dict ----------

def answer_to_dict(answer: Answer) -> Dict[str, Any]:
    return {
        "id": answer.id,
        "text": blockify(answer.text),
        "correct": answer.is_correct,
        "feedback": blockify(answer.feedback),
        "weight": answer.weight,
        "metadata": dict(sorted(answer.metadata.items())),
    }

def question_to_dict(question: Question) -> Dict[str, Any]:
    return {
        "id": question.id,
        "type": question.type.value,
        "text": blockify(question.question_text),
        "points": question.points,
        "general_feedback": blockify(question.general_feedback),
        "metadata": dict(sorted(question.metadata.items())),
        "answers": [answer_to_dict(a) for a in question.answers],
    }

def document_to_dict(document: Document) -> Dict[str, Any]:
    return {
        "id": document.id,
        "title": document.title,
        "description": blockify(document.description),
        "metadata": dict(sorted(document.metadata.items())),
        "questions": [question_to_dict(q) for q in document.questions],
    }

def _ids(data: Dict[str, Any]) -> Dict[str, str]:
    # Missing ids fall back to the model's generated ones.
    return {"id": data["id"]} if data.get("id") else {}

def document_from_dict(data: Dict[str, Any]) -> Document:
    questions: List[Question] = []
    for q in data.get("questions", []):
        answers = [
            Answer(
                text=a.get("text", ""),
                is_correct=bool(a.get("correct", False)),
                feedback=a.get("feedback", ""),
                weight=a.get("weight"),
                metadata=a.get("metadata", {}),
                **_ids(a),
            )
            for a in q.get("answers", [])
        ]
        questions.append(Question(
            type=QuestionType.from_canvas(q.get("type")),
            question_text=q.get("text", ""),
            points=q.get("points", 1.0),
            answers=answers,
            general_feedback=q.get("general_feedback", ""),
            metadata=q.get("metadata", {}),
            **_ids(q),
        ))
    return Document(
        title=data.get("title", "Untitled Quiz"),
        description=data.get("description", ""),
        questions=questions,
        metadata=data.get("metadata", {}),
        **_ids(data),
    )


# ---------- Files ----------

def dump_document(document: Document, path: Path) -> Path:
    path = Path(path)
    try:
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(document_to_dict(document), f, sort_keys=False, allow_unicode=True)
    except OSError as e:
        raise WriteError(path, e.strerror or str(e)) from e
    return path

def load_document(path: Path) -> Document:
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SnapshotError(path, [str(e)]) from e
    except yaml.YAMLError as e:
        raise SnapshotError(path, [f"YAML parse error: {e}"]) from e
    if not isinstance(data, dict):
        raise SnapshotError(path, ["top-level YAML must be a mapping"])

    validator = Draft202012Validator(load_schema(DOCUMENT_SCHEMA_PATH))
    problems = schema_problems(validator, data)
    if problems:
        raise SnapshotError(path, problems)
    return document_from_dict(data)
