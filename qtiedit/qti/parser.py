"""
Parse a Canvas-flavored QTI 1.2 assessment (root <questestinterop>) into a
Document.

Unknown assessment and item metadata fields are copied into the model's
metadata maps verbatim so they survive a round-trip. Items that cannot be
parsed are logged and dropped; the rest of the quiz still loads.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
import xml.etree.ElementTree as ET

from qtiedit.common import child, children, local_name, text_of
from qtiedit.config import DEFAULT_SETTINGS, Settings
from qtiedit.errors import MissingElement, QtiError, StructureError, XmlParseError
from qtiedit.model import CANVAS_IDENTIFIER, CANVAS_TITLE, Answer, Document, Question, QuestionType

logger = logging.getLogger(__name__)

GENERAL_FEEDBACK_IDENT = "general_fb"


# -------------------- Entry points --------------------

def parse_assessment(data: bytes, settings: Optional[Settings] = None) -> Document:
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise XmlParseError(str(e)) from e

    if local_name(root.tag) != "questestinterop":
        raise StructureError(f"Root element must be <questestinterop>, found <{local_name(root.tag)}>")

    assessments = children(root, "assessment")
    if len(assessments) != 1:
        raise MissingElement("assessment")
    return parse_assessment_element(assessments[0], settings)

def parse_assessment_file(path: Path, settings: Optional[Settings] = None) -> Document:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise XmlParseError(f"cannot read {path}: {e}") from e
    return parse_assessment(data, settings)


# -------------------- Assessment --------------------

def read_metadata_fields(parent: Optional[ET.Element]) -> Dict[str, str]:
    """Collect fieldlabel/fieldentry pairs from every <qtimetadata> under `parent`."""
    fields: Dict[str, str] = {}
    if parent is None:
        return fields
    for qtimetadata in children(parent, "qtimetadata"):
        for f in children(qtimetadata, "qtimetadatafield"):
            label = child(f, "fieldlabel")
            entry = child(f, "fieldentry")
            if label is None or entry is None:
                continue
            key = text_of(label).strip()
            if key:
                fields[key] = text_of(entry)
    return fields

def iter_items(section: ET.Element) -> List[ET.Element]:
    items: List[ET.Element] = []
    for el in section:
        name = local_name(el.tag)
        if name == "item":
            items.append(el)
        elif name == "section":
            items.extend(iter_items(el))
    return items

def parse_assessment_element(assessment: ET.Element, settings: Optional[Settings] = None) -> Document:
    settings = settings or DEFAULT_SETTINGS
    metadata: Dict[str, str] = {}
    ident = assessment.get("ident")
    if ident:
        metadata[CANVAS_IDENTIFIER] = ident
    external_id = assessment.get("external_assignment_id")
    if external_id is not None:
        metadata["external_assignment_id"] = external_id
    metadata.update(read_metadata_fields(assessment))

    questions: List[Question] = []
    for section in children(assessment, "section"):
        for item in iter_items(section):
            try:
                questions.append(parse_item(item, settings.default_points))
            except (QtiError, ValueError) as e:
                logger.warning("dropping item %s: %s", item.get("ident", "?"), e)

    return Document(
        title=assessment.get("title") or "Untitled Quiz",
        description="",
        questions=questions,
        metadata=metadata,
    )


# -------------------- Items --------------------

def parse_material(material: Optional[ET.Element]) -> str:
    """Return the body of a <material> as an HTML fragment."""
    mattext = child(material, "mattext")
    if mattext is None:
        return "<p></p>"
    text = text_of(mattext)
    if mattext.get("texttype") == "text/html":
        return text
    if text:
        return f"<p>{text}</p>"
    return "<p></p>"

def parse_presentation(presentation: ET.Element) -> Tuple[str, QuestionType]:
    question_text = parse_material(child(presentation, "material"))
    if child(presentation, "response_lid") is not None:
        qtype = QuestionType.MULTIPLE_CHOICE
    elif child(presentation, "response_str") is not None:
        qtype = QuestionType.ESSAY
    else:
        qtype = QuestionType.OTHER
    return question_text, qtype

def parse_correct_answers(resprocessing: Optional[ET.Element], floor: float = 1.0) -> Tuple[Set[str], float]:
    """
    Recover the correct response identifiers and the score they award.

    Only conditions that Set a positive value count; the highest value seen
    wins, never dropping below `floor`. This mirrors the
    one-condition-per-correct-answer shape Canvas exports rather than
    evaluating QTI conditions in general.
    """
    correct: Set[str] = set()
    points = floor
    if resprocessing is None:
        return correct, points
    for rc in children(resprocessing, "respcondition"):
        conditionvar = child(rc, "conditionvar")
        setvar = child(rc, "setvar")
        if conditionvar is None or setvar is None:
            continue
        if setvar.get("action") != "Set":
            continue
        try:
            value = float(text_of(setvar).strip() or "0")
        except ValueError:
            continue
        if value <= 0:
            continue
        varequal = child(conditionvar, "varequal")
        if varequal is not None:
            correct.add(text_of(varequal).strip())
        points = max(points, value)
    return correct, points

def parse_feedback(item: ET.Element) -> Dict[str, str]:
    feedback: Dict[str, str] = {}
    for fb in children(item, "itemfeedback"):
        ident = fb.get("ident")
        if not ident:
            continue
        flow = child(fb, "flow_mat")
        material = child(flow if flow is not None else fb, "material")
        if material is not None:
            feedback[ident] = parse_material(material)
    return feedback

def parse_answers(presentation: ET.Element, correct: Set[str], feedback: Dict[str, str]) -> List[Answer]:
    render_choice = child(child(presentation, "response_lid"), "render_choice")
    if render_choice is None:
        return []
    answers: List[Answer] = []
    for label in children(render_choice, "response_label"):
        ident = label.get("ident")
        metadata = {CANVAS_IDENTIFIER: ident} if ident else {}
        is_correct = ident in correct
        answers.append(Answer(
            text=parse_material(child(label, "material")),
            is_correct=is_correct,
            feedback=feedback.get(f"{ident}_fb", ""),
            metadata=metadata,
        ))
    return answers

def declared_points(value: Optional[str], fallback: float) -> float:
    """points_possible from itemmetadata wins over the score recovered from setvar."""
    try:
        return float((value or "").strip())
    except ValueError:
        return fallback

def parse_item(item: ET.Element, default_points: float = 1.0) -> Question:
    presentation = child(item, "presentation")
    if presentation is None:
        raise MissingElement("presentation in item")

    question_text, structural_type = parse_presentation(presentation)
    correct, score = parse_correct_answers(child(item, "resprocessing"), default_points)
    feedback = parse_feedback(item)

    fields = read_metadata_fields(child(item, "itemmetadata"))
    qtype = QuestionType.from_canvas(fields["question_type"]) if "question_type" in fields else structural_type

    points = declared_points(fields.get("points_possible"), score)

    metadata: Dict[str, str] = {}
    if item.get("ident"):
        metadata[CANVAS_IDENTIFIER] = item.get("ident")
    metadata[CANVAS_TITLE] = item.get("title", "")
    metadata.update(fields)

    return Question(
        type=qtype,
        question_text=question_text,
        points=points,
        answers=parse_answers(presentation, correct, feedback),
        general_feedback=feedback.get(GENERAL_FEEDBACK_IDENT, ""),
        metadata=metadata,
    )
