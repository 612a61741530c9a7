"""Fiscal XML parsing and classification.

All category-specific knowledge lives in CATEGORY_SPECS. Element lookups use
local names so the same table works regardless of the namespace each issuer
application writes.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from xml.etree import ElementTree as ET

from ..errors import ParseError
from .models import Direction, DocumentCategory, ExtractedFields

logger = logging.getLogger(__name__)

UNKNOWN_ISSUER = "00000000000000"
DEFAULT_DIRECTION_MAP = {"0": Direction.INBOUND, "1": Direction.OUTBOUND}


@dataclass(frozen=True)
class CategorySpec:
    """How to locate classification fields for one document category."""

    xml_type: int  # category code on the custody API
    folder: str
    roots: tuple[str, ...]  # local-name paths from the document element
    info: str
    number_tag: str
    direction_tag: str | None
    date_tags: tuple[str, ...] = ("dhEmi", "dEmi")
    issuer_paths: tuple[str, ...] = ("emit/CNPJ",)
    direction_map: dict[str, Direction] = field(
        default_factory=lambda: dict(DEFAULT_DIRECTION_MAP)
    )
    header: str | None = "ide"


CATEGORY_SPECS: dict[DocumentCategory, CategorySpec] = {
    DocumentCategory.NFE: CategorySpec(
        xml_type=1,
        folder="NFE",
        roots=("nfeProc/NFe", "NFe"),
        info="infNFe",
        number_tag="nNF",
        direction_tag="tpNF",
    ),
    DocumentCategory.CTE: CategorySpec(
        xml_type=2,
        folder="CTE",
        roots=("cteProc/CTe", "CTe"),
        info="infCte",
        number_tag="nCT",
        direction_tag="tpCTe",
    ),
    DocumentCategory.NFSE: CategorySpec(
        xml_type=3,
        folder="NFSE",
        roots=("CompNfse/Nfse", "Nfse"),
        info="InfNfse",
        number_tag="Numero",
        direction_tag=None,
        date_tags=("DataEmissao",),
        issuer_paths=(
            "PrestadorServico/IdentificacaoPrestador/CpfCnpj/Cnpj",
            "PrestadorServico/IdentificacaoPrestador/Cnpj",
            "DeclaracaoPrestacaoServico/InfDeclaracaoPrestacaoServico"
            "/Prestador/CpfCnpj/Cnpj",
        ),
        header=None,
    ),
    DocumentCategory.NFCE: CategorySpec(
        xml_type=4,
        folder="NFCE",
        roots=("nfeProc/NFe", "NFe"),
        info="infNFe",
        number_tag="nNF",
        direction_tag="tpNF",
    ),
    DocumentCategory.CFE: CategorySpec(
        xml_type=5,
        folder="CFE",
        roots=("CFe",),
        info="infCFe",
        number_tag="nCFe",
        direction_tag=None,
        date_tags=("dEmi",),
    ),
}

COMPACT_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def fingerprint(raw: bytes) -> str:
    """128-bit content fingerprint of a raw payload."""
    return hashlib.md5(raw).hexdigest()


def _local(tag: str) -> str:
    return tag.split("}")[-1] if tag else tag


def _child(node: ET.Element | None, name: str) -> ET.Element | None:
    if node is None:
        return None
    for child in node:
        if _local(child.tag) == name:
            return child
    return None


def _walk(node: ET.Element | None, path: str) -> ET.Element | None:
    for name in path.split("/"):
        node = _child(node, name)
        if node is None:
            return None
    return node


def _text(node: ET.Element | None, path: str) -> str | None:
    el = _walk(node, path)
    if el is None or el.text is None:
        return None
    value = el.text.strip()
    return value or None


def _find_root(document: ET.Element, spec: CategorySpec) -> ET.Element | None:
    for path in spec.roots:
        head, _, rest = path.partition("/")
        if _local(document.tag) != head:
            continue
        node = _walk(document, rest) if rest else document
        if node is not None:
            return node
    return None


def parse_emission_date(value: str | None) -> date | None:
    """Truncate an emission timestamp to its day.

    Accepts ISO datetimes (2024-03-10T10:20:30-03:00), ISO dates and the
    compact YYYYMMDD form used by CF-e.
    """
    if not value:
        return None
    match = COMPACT_DATE.match(value)
    if match:
        value = "-".join(match.groups())
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.warning(f"Invalid emission date: {value}")
        return None


def parse_document(raw: bytes, category: DocumentCategory) -> ExtractedFields:
    """Extract classification fields from a raw fiscal XML payload.

    Raises ParseError when the payload is not XML or the expected root
    structure is missing.
    """
    spec = CATEGORY_SPECS[category]

    try:
        document = ET.fromstring(raw)
    except ET.ParseError as e:
        raise ParseError(f"Invalid XML: {e}") from e

    root = _find_root(document, spec)
    info = _child(root, spec.info)
    if info is None:
        raise ParseError(
            f"Unable to find root element for {category.value} "
            f"(got <{_local(document.tag)}>)"
        )

    header = _child(info, spec.header) if spec.header else info
    if header is None:
        raise ParseError(f"Missing <{spec.header}> in {category.value} document")

    emitted = None
    for tag in spec.date_tags:
        emitted = parse_emission_date(_text(header, tag))
        if emitted:
            break

    issuer = None
    for path in spec.issuer_paths:
        issuer = _text(info, path)
        if issuer:
            break

    code = _text(header, spec.direction_tag) if spec.direction_tag else None
    direction = spec.direction_map.get(code or "1")
    if direction is None:
        logger.debug(f"Unrecognized direction code {code!r}, assuming outbound")
        direction = Direction.OUTBOUND

    return ExtractedFields(
        category=category,
        emission_date=emitted,
        year=f"{emitted.year:04d}" if emitted else "0000",
        month=f"{emitted.month:02d}" if emitted else "00",
        issuer=issuer or UNKNOWN_ISSUER,
        document_number=_text(header, spec.number_tag),
        direction=direction,
        fingerprint=fingerprint(raw),
    )
