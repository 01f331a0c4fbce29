"""
Serialize a Document into Canvas-compatible QTI 1.2 assessment XML.

Scoring is binary: each correct answer gets its own respcondition setting
SCORE to 100 regardless of the question's points, which is how Canvas
grades these question types. The real point value travels in the
points_possible item metadata field.

Escaping is left to ElementTree: &, < and > are escaped in text and, with
", in attributes as well. Apostrophes are emitted as is, which is equivalent
XML in both positions.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional
import xml.etree.ElementTree as ET

from qtiedit.common import format_points, new_answer_identifier, new_question_identifier
from qtiedit.config import DEFAULT_SETTINGS, Settings
from qtiedit.errors import WriteError
from qtiedit.model import CANVAS_IDENTIFIER, CANVAS_TITLE, Answer, Document, Question, QuestionType

QTI_NS = "http://www.imsglobal.org/xsd/ims_qtiasiv1p2"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
QTI_SCHEMA_LOCATION = f"{QTI_NS} http://www.imsglobal.org/xsd/ims_qtiasiv1p2p1.xsd"

CORRECT_SCORE = "100"
RESPONSE_IDENT = "response1"

# Metadata keys written from model fields (or never written) rather than copied through.
ASSESSMENT_MANAGED_KEYS = {CANVAS_IDENTIFIER, "external_assignment_id", "cc_maxattempts"}
ITEM_MANAGED_KEYS = {
    CANVAS_IDENTIFIER,
    CANVAS_TITLE,
    "question_type",
    "points_possible",
    "original_answer_ids",
    "assessment_question_identifierref",
    "calculator_type",
}


# -------------------- Building helpers --------------------

def mattext(parent: ET.Element, html: str, texttype: str = "text/html") -> ET.Element:
    material = ET.SubElement(parent, "material")
    m = ET.SubElement(material, "mattext", {"texttype": texttype})
    m.text = html if html is not None else ""
    return m

def add_metadata_field(qtimetadata: ET.Element, label: str, entry: str) -> None:
    field = ET.SubElement(qtimetadata, "qtimetadatafield")
    ET.SubElement(field, "fieldlabel").text = label
    ET.SubElement(field, "fieldentry").text = entry

def extra_fields(metadata: Dict[str, str], managed: Iterable[str]) -> List[str]:
    skip = set(managed)
    return sorted(k for k in metadata if k not in skip)

def answer_identifier(answer: Answer) -> str:
    # The model guarantees one; this only guards hand-built metadata maps.
    return answer.metadata.get(CANVAS_IDENTIFIER) or new_answer_identifier()


# -------------------- Item --------------------

def build_item_metadata(item_el: ET.Element, question: Question, answer_ids: List[str], settings: Settings) -> None:
    itemmetadata = ET.SubElement(item_el, "itemmetadata")
    qtimetadata = ET.SubElement(itemmetadata, "qtimetadata")
    md = question.metadata
    add_metadata_field(qtimetadata, "question_type", question.type.value)
    add_metadata_field(qtimetadata, "points_possible", format_points(question.points))
    add_metadata_field(qtimetadata, "original_answer_ids", ",".join(answer_ids))
    if "assessment_question_identifierref" in md:
        add_metadata_field(qtimetadata, "assessment_question_identifierref", md["assessment_question_identifierref"])
    add_metadata_field(qtimetadata, "calculator_type", md.get("calculator_type") or settings.calculator_type)
    for key in extra_fields(md, ITEM_MANAGED_KEYS):
        add_metadata_field(qtimetadata, key, md[key])

def build_presentation(item_el: ET.Element, question: Question, answer_ids: List[str]) -> None:
    presentation = ET.SubElement(item_el, "presentation")
    mattext(presentation, question.question_text)

    if not question.type.is_choice:
        response_str = ET.SubElement(presentation, "response_str", {"ident": RESPONSE_IDENT, "rcardinality": "Single"})
        ET.SubElement(response_str, "render_fib", {"fibtype": "String"})
        return

    cardinality = "Multiple" if question.type is QuestionType.MULTIPLE_ANSWERS else "Single"
    response_lid = ET.SubElement(presentation, "response_lid", {"ident": RESPONSE_IDENT, "rcardinality": cardinality})
    render_choice = ET.SubElement(response_lid, "render_choice")
    for answer, ident in zip(question.answers, answer_ids):
        rl = ET.SubElement(render_choice, "response_label", {"ident": ident})
        mattext(rl, answer.text)

def build_resprocessing(item_el: ET.Element, question: Question, answer_ids: List[str]) -> None:
    resprocessing = ET.SubElement(item_el, "resprocessing")
    outcomes = ET.SubElement(resprocessing, "outcomes")
    ET.SubElement(outcomes, "decvar", {"maxvalue": "100", "minvalue": "0", "varname": "SCORE", "vartype": "Decimal"})

    for answer, ident in zip(question.answers, answer_ids):
        if not answer.is_correct:
            continue
        rc = ET.SubElement(resprocessing, "respcondition", {"continue": "No"})
        cv = ET.SubElement(rc, "conditionvar")
        ET.SubElement(cv, "varequal", {"respident": RESPONSE_IDENT}).text = ident
        ET.SubElement(rc, "setvar", {"action": "Set", "varname": "SCORE"}).text = CORRECT_SCORE

def build_feedback(item_el: ET.Element, question: Question, answer_ids: List[str]) -> None:
    if question.general_feedback:
        fb = ET.SubElement(item_el, "itemfeedback", {"ident": "general_fb"})
        mattext(ET.SubElement(fb, "flow_mat"), question.general_feedback)
    for answer, ident in zip(question.answers, answer_ids):
        if answer.feedback:
            fb = ET.SubElement(item_el, "itemfeedback", {"ident": f"{ident}_fb"})
            mattext(ET.SubElement(fb, "flow_mat"), answer.feedback)

def build_item(question: Question, settings: Settings = DEFAULT_SETTINGS) -> ET.Element:
    ident = question.metadata.get(CANVAS_IDENTIFIER) or new_question_identifier()
    title = question.metadata.get(CANVAS_TITLE) or "Question"
    answer_ids = [answer_identifier(a) for a in question.answers]

    item_el = ET.Element("item", {"ident": ident, "title": title})
    build_item_metadata(item_el, question, answer_ids, settings)
    build_presentation(item_el, question, answer_ids)
    build_resprocessing(item_el, question, answer_ids)
    build_feedback(item_el, question, answer_ids)
    return item_el


# -------------------- Assessment --------------------

def build_assessment(document: Document, settings: Settings = DEFAULT_SETTINGS) -> ET.Element:
    questestinterop = ET.Element(
        "questestinterop",
        {
            "xmlns": QTI_NS,
            "xmlns:xsi": XSI_NS,
            "xsi:schemaLocation": QTI_SCHEMA_LOCATION,
        },
    )
    md = document.metadata
    attrs = {
        "ident": md.get(CANVAS_IDENTIFIER) or new_question_identifier(),
        "title": document.title,
    }
    if md.get("external_assignment_id"):
        attrs["external_assignment_id"] = md["external_assignment_id"]
    assessment = ET.SubElement(questestinterop, "assessment", attrs)

    qtimetadata = ET.SubElement(assessment, "qtimetadata")
    add_metadata_field(qtimetadata, "cc_maxattempts", md.get("cc_maxattempts") or settings.max_attempts)
    for key in extra_fields(md, ASSESSMENT_MANAGED_KEYS):
        add_metadata_field(qtimetadata, key, md[key])

    section = ET.SubElement(assessment, "section", {"ident": "root_section"})
    for question in document.questions:
        section.append(build_item(question, settings))
    return questestinterop

def to_bytes(root: ET.Element, settings: Settings) -> bytes:
    if settings.pretty_print:
        ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)

def serialize_assessment(document: Document, settings: Optional[Settings] = None) -> bytes:
    settings = settings or DEFAULT_SETTINGS
    return to_bytes(build_assessment(document, settings), settings)

def write_bytes(path: Path, data: bytes) -> None:
    try:
        Path(path).write_bytes(data)
    except OSError as e:
        raise WriteError(path, e.strerror or str(e)) from e

def write_assessment(document: Document, path: Path, settings: Optional[Settings] = None) -> None:
    write_bytes(path, serialize_assessment(document, settings))
