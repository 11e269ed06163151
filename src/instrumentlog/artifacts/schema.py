from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import xml.etree.ElementTree as ET

import xmlschema

SCHEMA_PATH = Path(__file__).with_name("surefire-test-report.xsd")


@lru_cache(maxsize=1)
def _schema() -> xmlschema.XMLSchema:
    return xmlschema.XMLSchema(str(SCHEMA_PATH))


def validate_report(path: Path) -> list[str]:
    """Validate one report file against the surefire schema.

    Returns a list of readable problems; an empty list means the file is valid.
    """
    try:
        errors = list(_schema().iter_errors(str(path)))
    except (ET.ParseError, xmlschema.XMLSchemaException, OSError) as exc:
        return [f"{path}: {exc}"]
    problems: list[str] = []
    for error in errors:
        location = getattr(error, "path", None) or "<root>"
        reason = getattr(error, "reason", None) or str(error)
        problems.append(f"{path}: {location}: {reason}")
    return problems


def find_reports(path: Path) -> list[Path]:
    if path.is_file():
        return [path]
    return sorted(path.rglob("TEST-*.xml"))
