"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Codec XML                                                ║
║                                                                              ║
║  decode(): document XML -> noeud générique                                   ║
║  - Chaque élément = dict {tag enfant: [valeurs]}                             ║
║  - Même un enfant unique est une liste d'un élément                          ║
║  - Préfixes de namespace supprimés                                           ║
║  - Éléments vides = clés absentes                                            ║
║                                                                              ║
║  encode(): dict/list imbriqués -> document XML                               ║
║  - Une liste sous la clé K produit un <K> par item                           ║
║  - None = élément omis                                                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from lxml import etree

logger = logging.getLogger("xml_codec")

ATTRIBUTES_KEY = "$"
TEXT_KEY = "_"


class XmlDecodeError(Exception):
    """Document XML mal formé"""
    pass


def create_safe_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        huge_tree=False,
        remove_comments=True,
        remove_pis=True
    )


def local_name(tag: str) -> str:
    """'{urn:x}commande' ou 'ns:commande' -> 'commande'"""
    if tag.startswith("{"):
        tag = tag.split("}", 1)[1]
    return tag.split(":")[-1]


# ════════════════════════════════════════════════════════════════════════════
# DECODE
# ════════════════════════════════════════════════════════════════════════════

def _is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()


def _decode_element(element) -> Union[str, Dict[str, Any], None]:
    children = [c for c in element if isinstance(c.tag, str)]
    attributes = {local_name(k): v for k, v in element.attrib.items()}

    if not children and not attributes:
        return None if _is_blank(element.text) else element.text

    node: Dict[str, Any] = {}
    if attributes:
        node[ATTRIBUTES_KEY] = attributes
    if not _is_blank(element.text):
        node[TEXT_KEY] = element.text

    for child in children:
        value = _decode_element(child)
        if value is None:
            continue
        node.setdefault(local_name(child.tag), []).append(value)
    return node


def decode(xml_data: Union[bytes, str]) -> Dict[str, Any]:
    """
    Décode un document XML en noeud générique.

    Returns:
        {root_tag: root_node}, root_node étant un dict (vide si la racine
        n'a aucun contenu) ou le texte de la racine.

    Raises:
        XmlDecodeError si le document n'est pas bien formé
    """
    if isinstance(xml_data, str):
        xml_data = xml_data.encode("utf-8")
    if not xml_data or not xml_data.strip():
        raise XmlDecodeError("Empty XML document")

    try:
        root = etree.fromstring(xml_data, parser=create_safe_parser())
    except etree.XMLSyntaxError as e:
        logger.warning(f"[XML] Malformed document: {e}")
        raise XmlDecodeError(str(e)) from e

    value = _decode_element(root)
    return {local_name(root.tag): value if value is not None else {}}


def as_list(value) -> List[Any]:
    """Un noeud isolé devient une liste d'un élément, None une liste vide"""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def first(node, tag: str):
    """Première valeur de l'enfant `tag`, ou None si absent"""
    if not isinstance(node, dict):
        return None
    values = as_list(node.get(tag))
    return values[0] if values else None


# ════════════════════════════════════════════════════════════════════════════
# ENCODE
# ════════════════════════════════════════════════════════════════════════════

def _format_scalar(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _append(parent, tag: str, value):
    if value is None:
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _append(parent, tag, item)
        return

    element = etree.SubElement(parent, tag)
    if isinstance(value, dict):
        _fill(element, value)
    else:
        element.text = _format_scalar(value)


def _fill(element, payload: Dict[str, Any]):
    for key, value in payload.items():
        if key == ATTRIBUTES_KEY:
            for attr, attr_value in (value or {}).items():
                if attr_value is not None:
                    element.set(attr, _format_scalar(attr_value))
        elif key == TEXT_KEY:
            element.text = _format_scalar(value)
        else:
            _append(element, key, value)


def encode(payload: Dict[str, Any], root_name: str) -> str:
    """
    Sérialise un dict imbriqué sous une racine `root_name`.

    Exemple:
        encode({"product": [{"name": "A"}, {"name": "B"}]}, "products")
        -> <products><product><name>A</name></product>...</products>
    """
    root = etree.Element(root_name)
    _fill(root, payload or {})
    xml_bytes = etree.tostring(
        root,
        xml_declaration=True,
        encoding="UTF-8",
        standalone=True,
        pretty_print=True
    )
    return xml_bytes.decode("utf-8")
