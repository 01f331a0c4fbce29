"""
IMSCC package layout for a single Canvas quiz.

  imsmanifest.xml
  {quiz_id}/{quiz_id}.xml          assessment (see serializer)
  {quiz_id}/assessment_meta.xml    Canvas quiz + assignment descriptor

Zipping and unzipping belong to an ArchiveCollaborator supplied by the host;
load_package/save_package drive it against a private temporary directory
that is removed on every exit path.
"""
from __future__ import annotations

import logging
import re
import tempfile
import zipfile
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import List, Optional, Protocol, Tuple
import xml.etree.ElementTree as ET

from qtiedit.common import new_question_identifier
from qtiedit.config import DEFAULT_SETTINGS, Settings
from qtiedit.errors import PackageError, WriteError
from qtiedit.model import CANVAS_IDENTIFIER, Document
from qtiedit.qti.parser import parse_assessment_file
from qtiedit.qti.serializer import serialize_assessment, to_bytes, write_bytes

logger = logging.getLogger(__name__)

MANIFEST_NAME = "imsmanifest.xml"
META_NAME = "assessment_meta.xml"
CANVAS_NS = "http://canvas.instructure.com/xsd/cccv1p0"

# Quiz ids name a folder and file inside the package.
RE_SAFE_ID = re.compile(r"[A-Za-z0-9_-]+")

# Collaborator failures reported as PackageError.
ARCHIVE_ERRORS = (OSError, zipfile.BadZipFile)


class ArchiveCollaborator(Protocol):
    def extract(self, archive_path: Path) -> Path: ...

    def create_package(self, directory: Path, destination: Path) -> Path: ...

    def locate_assessment_file(self, directory: Path) -> Path: ...

    def cleanup(self, directory: Path) -> None: ...


def quiz_identifier(document: Document) -> str:
    """The stored canvas_identifier when it is safe as a path component, else a fresh one."""
    stored = document.metadata.get(CANVAS_IDENTIFIER)
    if stored and RE_SAFE_ID.fullmatch(stored):
        return stored
    if stored:
        logger.warning("replacing unusable quiz identifier %r", stored)
    return new_question_identifier()


# -------------------- Manifest --------------------

def build_manifest(document: Document, quiz_id: str, settings: Optional[Settings] = None) -> bytes:
    settings = settings or DEFAULT_SETTINGS
    manifest_id = new_question_identifier()
    meta_resource_id = new_question_identifier()
    manifest = ET.Element(
        "manifest",
        {
            "identifier": manifest_id,
            "xmlns": "http://www.imsglobal.org/xsd/imsccv1p1/imscp_v1p1",
            "xmlns:lom": "http://ltsc.ieee.org/xsd/imsccv1p1/LOM/resource",
            "xmlns:imsmd": "http://www.imsglobal.org/xsd/imsmd_v1p2",
            "xmlns:xsi": "http://www.w3.org/2001/XMLSchema-instance",
            "xsi:schemaLocation": (
                "http://www.imsglobal.org/xsd/imsccv1p1/imscp_v1p1 http://www.imsglobal.org/xsd/imscp_v1p1.xsd "
                "http://ltsc.ieee.org/xsd/imsccv1p1/LOM/resource "
                "http://www.imsglobal.org/profile/cc/ccv1p1/LOM/ccv1p1_lomresource_v1p0.xsd "
                "http://www.imsglobal.org/xsd/imsmd_v1p2 http://www.imsglobal.org/xsd/imsmd_v1p2p2.xsd"
            ),
        },
    )
    metadata = ET.SubElement(manifest, "metadata")
    ET.SubElement(metadata, "schema").text = "IMS Content"
    ET.SubElement(metadata, "schemaversion").text = "1.1.3"
    lom = ET.SubElement(metadata, "imsmd:lom")
    title = ET.SubElement(ET.SubElement(lom, "imsmd:general"), "imsmd:title")
    ET.SubElement(title, "imsmd:string").text = f"QTI Quiz Export for {document.title}"
    contribute = ET.SubElement(ET.SubElement(lom, "imsmd:lifeCycle"), "imsmd:contribute")
    ET.SubElement(ET.SubElement(contribute, "imsmd:date"), "imsmd:dateTime").text = date.today().isoformat()
    rights = ET.SubElement(lom, "imsmd:rights")
    ET.SubElement(ET.SubElement(rights, "imsmd:copyrightAndOtherRestrictions"), "imsmd:value").text = "yes"
    ET.SubElement(ET.SubElement(rights, "imsmd:description"), "imsmd:string").text = (
        "Private (Copyrighted) - http://en.wikipedia.org/wiki/Copyright"
    )

    ET.SubElement(manifest, "organizations")
    resources = ET.SubElement(manifest, "resources")
    res = ET.SubElement(resources, "resource", {"identifier": quiz_id, "type": "imsqti_xmlv1p2"})
    ET.SubElement(res, "file", {"href": f"{quiz_id}/{quiz_id}.xml"})
    ET.SubElement(res, "dependency", {"identifierref": meta_resource_id})
    meta = ET.SubElement(
        resources,
        "resource",
        {
            "identifier": meta_resource_id,
            "type": "associatedcontent/imscc_xmlv1p1/learning-application-resource",
            "href": f"{quiz_id}/{META_NAME}",
        },
    )
    ET.SubElement(meta, "file", {"href": f"{quiz_id}/{META_NAME}"})
    return to_bytes(manifest, settings)


# -------------------- Assessment meta --------------------

def bool_text(value: bool) -> str:
    return "true" if value else "false"

def add_fields(parent: ET.Element, fields: List[Tuple[str, Optional[str]]]) -> None:
    """Append simple child elements; a None value leaves the element empty."""
    for tag, value in fields:
        el = ET.SubElement(parent, tag)
        if value is not None:
            el.text = value

def build_assessment_meta(document: Document, quiz_id: str, settings: Optional[Settings] = None) -> bytes:
    settings = settings or DEFAULT_SETTINGS
    points = str(float(document.total_points))
    attempts = document.metadata.get("cc_maxattempts") or settings.max_attempts

    quiz = ET.Element("quiz", {"xmlns": CANVAS_NS, "identifier": quiz_id})
    add_fields(quiz, [
        ("title", document.title),
        ("description", document.description),
        ("due_at", None),
        ("lock_at", None),
        ("unlock_at", None),
        ("shuffle_questions", "false"),
        ("shuffle_answers", bool_text(settings.shuffle_answers)),
        ("calculator_type", settings.calculator_type),
        ("scoring_policy", settings.scoring_policy),
        ("hide_results", None),
        ("quiz_type", settings.quiz_type),
        ("points_possible", points),
        ("require_lockdown_browser", "false"),
        ("require_lockdown_browser_for_results", "false"),
        ("require_lockdown_browser_monitor", "false"),
        ("lockdown_browser_monitor_data", None),
        ("show_correct_answers", "false"),
        ("anonymous_submissions", "false"),
        ("could_be_locked", "false"),
        ("disable_timer_autosubmission", "false"),
        ("allowed_attempts", attempts),
        ("build_on_last_attempt", "false"),
        ("one_question_at_a_time", "false"),
        ("cant_go_back", "false"),
        ("available", "false"),
        ("one_time_results", "false"),
        ("show_correct_answers_last_attempt", "false"),
        ("only_visible_to_overrides", "false"),
        ("module_locked", "false"),
        ("allow_clear_mc_selection", None),
        ("disable_document_access", "false"),
        ("result_view_restricted", "false"),
    ])

    assignment = ET.SubElement(quiz, "assignment", {"identifier": new_question_identifier()})
    add_fields(assignment, [
        ("title", document.title),
        ("due_at", None),
        ("lock_at", None),
        ("unlock_at", None),
        ("module_locked", "false"),
        ("workflow_state", "unpublished"),
        ("assignment_overrides", None),
        ("quiz_identifierref", quiz_id),
        ("allowed_extensions", None),
        ("has_group_category", "false"),
        ("points_possible", points),
        ("grading_type", "points"),
        ("all_day", "false"),
        ("submission_types", "online_quiz"),
        ("position", "1"),
        ("turnitin_enabled", "false"),
        ("vericite_enabled", "false"),
        ("peer_review_count", "0"),
        ("peer_reviews", "false"),
        ("automatic_peer_reviews", "false"),
        ("anonymous_peer_reviews", "false"),
        ("grade_group_students_individually", "false"),
        ("freeze_on_copy", "false"),
        ("omit_from_final_grade", "false"),
        ("intra_group_peer_reviews", "false"),
        ("only_visible_to_overrides", "false"),
        ("post_to_sis", "false"),
        ("moderated_grading", "false"),
        ("grader_count", "0"),
        ("grader_comments_visible_to_graders", "true"),
        ("anonymous_grading", "false"),
        ("graders_anonymous_to_graders", "false"),
        ("grader_names_visible_to_final_grader", "true"),
        ("anonymous_instructor_annotations", "false"),
    ])
    post_policy = ET.SubElement(assignment, "post_policy")
    ET.SubElement(post_policy, "post_manually").text = "false"
    ET.SubElement(assignment, "assignment_group_identifierref").text = new_question_identifier()
    return to_bytes(quiz, settings)


# -------------------- Directory layout --------------------

def write_package_directory(document: Document, directory: Path, settings: Optional[Settings] = None) -> Path:
    """Write the three package files under `directory`; returns the assessment path."""
    directory = Path(directory)
    quiz_id = quiz_identifier(document)
    if document.metadata.get(CANVAS_IDENTIFIER) != quiz_id:
        # Keep the assessment ident in step with the folder name.
        document = replace(document, metadata={**document.metadata, CANVAS_IDENTIFIER: quiz_id})
    quiz_dir = directory / quiz_id
    try:
        quiz_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(quiz_dir, e.strerror or str(e)) from e

    assessment_path = quiz_dir / f"{quiz_id}.xml"
    write_bytes(assessment_path, serialize_assessment(document, settings))
    write_bytes(quiz_dir / META_NAME, build_assessment_meta(document, quiz_id, settings))
    write_bytes(directory / MANIFEST_NAME, build_manifest(document, quiz_id, settings))
    logger.debug("wrote package for quiz %s to %s", quiz_id, directory)
    return assessment_path

def find_assessment_file(directory: Path) -> Path:
    """
    Locate the assessment XML in an extracted package.

    Canvas writes {quiz_id}/{quiz_id}.xml; older exports use
    {quiz_id}/assessment.xml. Either needs a top-level imsmanifest.xml.
    """
    directory = Path(directory)
    if not (directory / MANIFEST_NAME).is_file():
        raise PackageError("Manifest file (imsmanifest.xml) not found in package")
    for sub in sorted(p for p in directory.iterdir() if p.is_dir()):
        current = sub / f"{sub.name}.xml"
        if current.is_file():
            return current
        legacy = sub / "assessment.xml"
        if legacy.is_file():
            return legacy
    raise PackageError("Assessment file not found in package")


# -------------------- Archive round-trips --------------------

def load_package(archive_path: Path, archive: ArchiveCollaborator, settings: Optional[Settings] = None) -> Document:
    archive_path = Path(archive_path)
    try:
        directory = archive.extract(archive_path)
    except ARCHIVE_ERRORS as e:
        raise PackageError(f"Cannot extract package {archive_path}: {e}") from e
    try:
        assessment = archive.locate_assessment_file(directory)
        document = parse_assessment_file(assessment, settings)
    finally:
        archive.cleanup(directory)
    logger.info("loaded %d question(s) from %s", len(document.questions), archive_path)
    return document

def package_destination(path: Path) -> Path:
    # Canvas imports quiz packages as .zip
    path = Path(path)
    if path.suffix.lower() == ".imscc":
        return path.with_suffix(".zip")
    return path

def save_package(
    document: Document,
    archive_path: Path,
    archive: ArchiveCollaborator,
    settings: Optional[Settings] = None,
) -> Path:
    destination = package_destination(archive_path)
    with tempfile.TemporaryDirectory(prefix="qtiedit-") as tmp:
        write_package_directory(document, Path(tmp), settings)
        try:
            written = archive.create_package(Path(tmp), destination)
        except ARCHIVE_ERRORS as e:
            raise PackageError(f"Cannot create package {destination}: {e}") from e
    logger.info("saved %d question(s) to %s", len(document.questions), written)
    return Path(written)
