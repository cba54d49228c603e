"""
LIGHT MANAGEMENT - Validation XML avant export

Contrôle volontairement superficiel:
- le document est bien formé
- la racine correspond au premier xs:element du schéma <nom>.xsd

Un schéma absent n'est PAS bloquant (warning seulement).
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from lxml import etree

from config import XML_SCHEMAS_DIR
from services.xml_codec import create_safe_parser, local_name

logger = logging.getLogger("xml_validator")

XSD_NAMESPACE = "http://www.w3.org/2001/XMLSchema"
BLOCKING_LEVELS = ("error", "fatal")


def get_schema_path(schema_name: str, schemas_dir: Optional[Path] = None) -> Path:
    return Path(schemas_dir or XML_SCHEMAS_DIR) / f"{schema_name}.xsd"


def schema_exists(schema_name: str, schemas_dir: Optional[Path] = None) -> bool:
    return get_schema_path(schema_name, schemas_dir).is_file()


def _has_blocking(errors: List[Dict[str, str]]) -> bool:
    return any(e["level"] in BLOCKING_LEVELS for e in errors)


def _expected_root_name(schema_path: Path) -> Optional[str]:
    xsd_root = etree.parse(str(schema_path), parser=create_safe_parser()).getroot()
    for element in xsd_root.iter(f"{{{XSD_NAMESPACE}}}element"):
        return element.get("name")
    return None


def validate_xml(
    xml_data: Union[str, bytes],
    schema_name: str,
    schemas_dir: Optional[Path] = None
) -> Dict:
    """
    Valide un document XML destiné à l'export.

    Returns:
        {
            "valid": bool,
            "errors": [{"level": "warning|error|fatal", "message": str}],
            "message": str
        }
    """
    if isinstance(xml_data, str):
        xml_data = xml_data.encode("utf-8")

    errors: List[Dict[str, str]] = []

    try:
        xml_root = None
        try:
            xml_root = etree.fromstring(xml_data, parser=create_safe_parser())
        except etree.XMLSyntaxError as e:
            errors.append({"level": "error", "message": f"XML parsing error: {e}"})

        schema_path = get_schema_path(schema_name, schemas_dir)

        if not schema_path.is_file():
            errors.append({"level": "warning", "message": f"XSD schema not found: {schema_path}"})
            logger.warning(f"[XML_VALIDATION] {schema_name}: schema not found ({schema_path})")
            return {
                "valid": not _has_blocking(errors),
                "errors": errors,
                "message": "; ".join(f"[{e['level']}] {e['message']}" for e in errors)
                if errors else "XML is well-formed"
            }

        expected = _expected_root_name(schema_path)

        if xml_root is not None:
            actual = local_name(xml_root.tag)
            if expected and expected != actual:
                errors.append({
                    "level": "error",
                    "message": f"Root element mismatch. Expected: {expected}, Got: {actual}"
                })

        has_errors = _has_blocking(errors)
        logger.info(f"[XML_VALIDATION] {schema_name}: {'FAILED' if has_errors else 'PASSED'}")

        return {
            "valid": not has_errors,
            "errors": errors,
            "message": "; ".join(e["message"] for e in errors if e["level"] in BLOCKING_LEVELS)
            if has_errors else "XML validation successful"
        }

    except (OSError, etree.XMLSyntaxError) as e:
        logger.error(f"[XML_VALIDATION] {schema_name}: {e}")
        return {
            "valid": False,
            "errors": [{"level": "fatal", "message": str(e)}],
            "message": f"Validation error: {e}"
        }


def validate_xml_file(xml_path: Union[str, Path], schema_name: str, schemas_dir: Optional[Path] = None) -> Dict:
    """Valide un fichier XML sur disque"""
    try:
        xml_data = Path(xml_path).read_bytes()
    except OSError as e:
        return {
            "valid": False,
            "errors": [{"level": "fatal", "message": str(e)}],
            "message": f"File read error: {e}"
        }
    return validate_xml(xml_data, schema_name, schemas_dir)
