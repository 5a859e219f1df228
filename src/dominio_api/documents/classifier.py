"""Fiscal document detection and coarse structural checks.

Both operations are regex heuristics over the raw text. A document that
passes ``validate_structure`` is well-balanced enough to forward upstream; it
is not schema-conformant and nesting is never checked.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re


class DocumentType(str, Enum):
    NFE = "NFe"
    NFCE = "NFCe"
    CTE = "CTe"
    CFE = "CFe"
    NFSE = "NFSe"
    MDFE = "MDFe"
    UNKNOWN = "UNKNOWN"


# Order matters: the first type with a matching pattern wins.
DOCUMENT_TYPE_PATTERNS: tuple[tuple[DocumentType, tuple[re.Pattern[str], ...]], ...] = (
    (DocumentType.NFE, (re.compile(r"<nfeProc"), re.compile(r"<NFe"), re.compile(r"<infNFe"))),
    (
        DocumentType.NFCE,
        (
            re.compile(r"<nfceProc"),
            re.compile(r"<NFCe"),
            re.compile(r'<infNFe[^>]*mod="65"'),
        ),
    ),
    (DocumentType.CTE, (re.compile(r"<cteProc"), re.compile(r"<CTe"), re.compile(r"<infCte"))),
    (DocumentType.CFE, (re.compile(r"<CFe"), re.compile(r"<infCFe"))),
    (
        DocumentType.NFSE,
        (re.compile(r"<CompNfse"), re.compile(r"<ListaNfse"), re.compile(r"<RPS")),
    ),
    (
        DocumentType.MDFE,
        (re.compile(r"<mdfeProc"), re.compile(r"<MDFe"), re.compile(r"<infMDFe")),
    ),
)

_OPENING_TAG = re.compile(r"<[^/?!][^>]*>")
_CLOSING_TAG = re.compile(r"</[^>]*>")
_SELF_CLOSING_TAG = re.compile(r"<[^/?!][^>]*/>")
_INVALID_XML_CHARACTERS = re.compile(
    r"[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]"
)

EMPTY_CONTENT = "Empty or invalid XML content"
NOT_TEXT = "Content is not valid UTF-8 text"
NOT_XML = "File is not valid XML"
NOT_FISCAL = "XML does not contain a recognized fiscal document structure"
UNBALANCED_TAGS = "XML has an unbalanced tag structure"


@dataclass(frozen=True)
class StructureValidation:
    valid: bool
    reason: str | None = None


@dataclass(frozen=True)
class DocumentClassification:
    type: DocumentType
    structural_validity: bool
    failure_reason: str | None = None


def decode_document(content: bytes | str | None) -> str | None:
    if content is None:
        return None
    if isinstance(content, str):
        return content
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return None


def detect_document_type(text: str) -> DocumentType:
    for document_type, patterns in DOCUMENT_TYPE_PATTERNS:
        if any(pattern.search(text) for pattern in patterns):
            return document_type
    return DocumentType.UNKNOWN


def has_fiscal_marker(text: str) -> bool:
    return detect_document_type(text) is not DocumentType.UNKNOWN


def tag_counts(text: str) -> tuple[int, int, int]:
    # Declarations, processing instructions and comments are not elements.
    return (
        len(_OPENING_TAG.findall(text)),
        len(_CLOSING_TAG.findall(text)),
        len(_SELF_CLOSING_TAG.findall(text)),
    )


def validate_structure(content: bytes | str | None) -> StructureValidation:
    if isinstance(content, bytes) and content:
        text = decode_document(content)
        if text is None:
            return StructureValidation(valid=False, reason=NOT_TEXT)
    elif isinstance(content, str):
        text = content
    else:
        return StructureValidation(valid=False, reason=EMPTY_CONTENT)

    if not text:
        return StructureValidation(valid=False, reason=EMPTY_CONTENT)

    trimmed = text.strip()
    if not trimmed.startswith("<?xml") and not trimmed.startswith("<"):
        return StructureValidation(valid=False, reason=NOT_XML)

    if not has_fiscal_marker(text):
        return StructureValidation(valid=False, reason=NOT_FISCAL)

    opening, closing, self_closing = tag_counts(text)
    if opening != closing + self_closing:
        return StructureValidation(valid=False, reason=UNBALANCED_TAGS)

    return StructureValidation(valid=True)


def classify(content: bytes | str | None) -> DocumentClassification:
    validation = validate_structure(content)
    text = decode_document(content) or ""
    return DocumentClassification(
        type=detect_document_type(text),
        structural_validity=validation.valid,
        failure_reason=validation.reason,
    )


def validate_file_size(content: bytes | str, *, max_size_mb: float = 50) -> StructureValidation:
    size_bytes = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
    size_mb = size_bytes / (1024 * 1024)
    if size_mb > max_size_mb:
        return StructureValidation(
            valid=False,
            reason=f"File too large. Maximum {max_size_mb:g}MB, received {size_mb:.2f}MB",
        )
    return StructureValidation(valid=True)


def validate_encoding(text: str) -> StructureValidation:
    if _INVALID_XML_CHARACTERS.search(text):
        return StructureValidation(valid=False, reason="File contains characters not allowed in XML")
    return StructureValidation(valid=True)


__all__ = [
    "DOCUMENT_TYPE_PATTERNS",
    "DocumentClassification",
    "DocumentType",
    "StructureValidation",
    "classify",
    "decode_document",
    "detect_document_type",
    "has_fiscal_marker",
    "tag_counts",
    "validate_encoding",
    "validate_file_size",
    "validate_structure",
]
