from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re

from dominio_api.documents.classifier import DocumentType, detect_document_type
from dominio_api.security import validate_cnpj


LOGGER = logging.getLogger(__name__)


@dataclass
class DocumentParty:
    cnpj: str | None = None
    name: str | None = None

    @property
    def cnpj_valid(self) -> bool:
        return validate_cnpj(self.cnpj)


@dataclass
class DocumentInfo:
    type: DocumentType
    number: str | None = None
    series: str | None = None
    key: str | None = None
    issue_date: str | None = None
    value: float | None = None
    issuer: DocumentParty = field(default_factory=DocumentParty)
    recipient: DocumentParty = field(default_factory=DocumentParty)


def _first(pattern: str, text: str) -> str | None:
    match = re.search(pattern, text)
    return match.group(1) if match else None


def _decimal(raw: str | None) -> float | None:
    if raw is None:
        return None
    return float(raw.replace(",", "."))


def _extract_nfe(text: str, info: DocumentInfo) -> None:
    info.number = _first(r"<nNF>(\d+)</nNF>", text)
    info.series = _first(r"<serie>(\d+)</serie>", text)
    info.key = _first(r"<chNFe>(\d{44})</chNFe>", text)
    info.issue_date = _first(r"<dhEmi>([^<]+)</dhEmi>", text)
    info.value = _decimal(_first(r"<vNF>([\d,.]+)</vNF>", text))
    info.issuer = DocumentParty(
        cnpj=_first(r"<emit[^>]*>[\s\S]*?<CNPJ>(\d{14})</CNPJ>", text),
        name=_first(r"<emit[^>]*>[\s\S]*?<xNome>([^<]+)</xNome>", text),
    )
    info.recipient = DocumentParty(
        cnpj=_first(r"<dest[^>]*>[\s\S]*?<CNPJ>(\d{14})</CNPJ>", text),
        name=_first(r"<dest[^>]*>[\s\S]*?<xNome>([^<]+)</xNome>", text),
    )


def _extract_cte(text: str, info: DocumentInfo) -> None:
    info.number = _first(r"<nCT>(\d+)</nCT>", text)
    info.series = _first(r"<serie>(\d+)</serie>", text)
    info.key = _first(r"<chCTe>(\d{44})</chCTe>", text)
    info.issue_date = _first(r"<dhEmi>([^<]+)</dhEmi>", text)
    info.value = _decimal(_first(r"<vTPrest>([\d,.]+)</vTPrest>", text))
    info.issuer = DocumentParty(
        cnpj=_first(r"<emit[^>]*>[\s\S]*?<CNPJ>(\d{14})</CNPJ>", text),
        name=_first(r"<emit[^>]*>[\s\S]*?<xNome>([^<]+)</xNome>", text),
    )


def _extract_cfe(text: str, info: DocumentInfo) -> None:
    info.number = _first(r"<nCFe>(\d+)</nCFe>", text)
    info.key = _first(r"<chCanc>(\d{44})</chCanc>", text)
    raw_date = _first(r"<dEmi>(\d{8})</dEmi>", text)
    if raw_date:
        info.issue_date = f"{raw_date[:4]}-{raw_date[4:6]}-{raw_date[6:]}"
    cents = _first(r"<vCFe>(\d+)</vCFe>", text)
    if cents is not None:
        info.value = int(cents) / 100


def _extract_nfse(text: str, info: DocumentInfo) -> None:
    info.number = _first(r"<Numero>(\d+)</Numero>", text)
    info.issue_date = _first(r"<DataEmissao>([^<]+)</DataEmissao>", text)
    info.value = _decimal(_first(r"<ValorServicos>([\d,.]+)</ValorServicos>", text))


_EXTRACTORS = {
    DocumentType.NFE: _extract_nfe,
    DocumentType.NFCE: _extract_nfe,
    DocumentType.CTE: _extract_cte,
    DocumentType.CFE: _extract_cfe,
    DocumentType.NFSE: _extract_nfse,
}


def extract_document_info(text: str) -> DocumentInfo:
    info = DocumentInfo(type=detect_document_type(text))
    extractor = _EXTRACTORS.get(info.type)
    if extractor is None:
        return info
    try:
        extractor(text, info)
    except ValueError:
        LOGGER.warning("Unable to extract document info", exc_info=True, extra={"type": info.type.value})
    return info


__all__ = ["DocumentInfo", "DocumentParty", "extract_document_info"]
