from dominio_api.documents.classifier import (
    DocumentClassification,
    DocumentType,
    StructureValidation,
    classify,
    decode_document,
    detect_document_type,
    validate_encoding,
    validate_file_size,
    validate_structure,
)
from dominio_api.documents.extraction import (
    DocumentInfo,
    DocumentParty,
    extract_document_info,
)

__all__ = [
    "DocumentClassification",
    "DocumentInfo",
    "DocumentParty",
    "DocumentType",
    "StructureValidation",
    "classify",
    "decode_document",
    "detect_document_type",
    "extract_document_info",
    "validate_encoding",
    "validate_file_size",
    "validate_structure",
]
