from __future__ import annotations

import pytest


NFE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<nfeProc xmlns="http://www.portalfiscal.inf.br/nfe">
  <NFe>
    <infNFe Id="NFe35200214200166000187550010000000046501234567">
      <ide>
        <cUF>35</cUF>
        <natOp>Venda de Mercadoria</natOp>
        <mod>55</mod>
        <serie>1</serie>
        <nNF>46</nNF>
        <dhEmi>2025-06-08T10:00:00-03:00</dhEmi>
      </ide>
      <emit>
        <CNPJ>11222333000181</CNPJ>
        <xNome>Empresa Teste LTDA</xNome>
      </emit>
      <dest>
        <CNPJ>12345678000195</CNPJ>
        <xNome>Cliente Teste</xNome>
      </dest>
      <total>
        <ICMSTot>
          <vNF>1000.00</vNF>
        </ICMSTot>
      </total>
    </infNFe>
  </NFe>
  <protNFe>
    <infProt>
      <chNFe>35200214200166000187550010000000046501234567</chNFe>
    </infProt>
  </protNFe>
</nfeProc>"""

CTE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<cteProc xmlns="http://www.portalfiscal.inf.br/cte">
  <CTe>
    <infCte Id="CTe35200214200166000187570010000000012345678901">
      <ide>
        <mod>57</mod>
        <serie>1</serie>
        <nCT>1</nCT>
        <dhEmi>2025-06-08T10:00:00-03:00</dhEmi>
      </ide>
      <emit>
        <CNPJ>14200166000187</CNPJ>
        <xNome>Transportadora Teste</xNome>
      </emit>
      <vPrest>
        <vTPrest>150.00</vTPrest>
      </vPrest>
    </infCte>
  </CTe>
</cteProc>"""

UNBALANCED_NFE_XML = "<nfeProc><NFe><infNFe><ide>1</ide></infNFe></NFe>"


@pytest.fixture
def nfe_xml() -> str:
    return NFE_XML


@pytest.fixture
def cte_xml() -> str:
    return CTE_XML


@pytest.fixture
def unbalanced_xml() -> str:
    return UNBALANCED_NFE_XML
