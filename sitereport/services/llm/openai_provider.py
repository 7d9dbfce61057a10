import json
import mimetypes
from typing import Optional

import httpx
from pydantic import ValidationError

from sitereport.data.glossary import STT_PROMPT_TR
from sitereport.data.taxonomy import render_taxonomy, work_item_name
from sitereport.logging_config import get_logger
from sitereport.models.report import ExtractionResult
from sitereport.services.llm.base import Extractor, ProviderError, Transcriber

logger = get_logger("llm.openai")

INTENTS = [
    "mesai_baslangici",
    "mesai_bitisi",
    "is_kalemi_baslangici",
    "is_kalemi_bitisi",
    "sorun_bildirimi",
    "durum_guncelleme",
    "malzeme_talebi",
    "bilgi_talebi",
]

_NULLABLE_STRING = {"type": ["string", "null"]}

EXTRACTION_JSON_SCHEMA = {
    "name": "multiple_construction_extractions",
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "extractions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "intent": {"type": "string", "enum": INTENTS},
                        "intent_confidence": {"type": "number", "minimum": 0, "maximum": 1},
                        "is_kalemi_kodu": _NULLABLE_STRING,
                        "is_kalemi_adi": _NULLABLE_STRING,
                        "is_kalemi_confidence": {"type": ["number", "null"], "minimum": 0, "maximum": 1},
                        "blok": _NULLABLE_STRING,
                        "daire_no": _NULLABLE_STRING,
                        "kat": _NULLABLE_STRING,
                        "alan": _NULLABLE_STRING,
                        "aciklama": _NULLABLE_STRING,
                        "evidence_spans": {"type": "array", "items": {"type": "string"}},
                        "timing": {
                            "type": "object",
                            "additionalProperties": False,
                            "properties": {
                                "tahmini_baslangic": _NULLABLE_STRING,
                                "tahmini_bitis": _NULLABLE_STRING,
                                "bildirilen_saat": _NULLABLE_STRING,
                            },
                        },
                        "errors": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["intent", "intent_confidence", "evidence_spans"],
                },
            },
            "overall_summary": _NULLABLE_STRING,
            "processing_notes": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["extractions"],
    },
}

EXTRACTION_SYSTEM_PROMPT = """Sen bir şantiye kayıt asistanısın. Verilen metinde BIRDEN FAZLA İŞ KALEMI olabilir. Her biri için ayrı extraction yap:
1) Her iş kalemi için NIYET (intent) tespit et: mesai başlangıcı/bitişi, iş kalemi başlangıcı/bitişi, sorun bildirimi, durum güncelleme, malzeme talebi, bilgi talebi.
2) Her iş kalemi için verilen TAKSONOMİDEN en yakın kodu ve adı bul. Taksonomide olmayan kod uydurma.
3) Lokasyon bilgisini yakala: blok, daire, kat, alan.
4) Kararını destekleyen metin parçalarını evidence_spans'ta listele.
5) Emin olamadığın noktalarda düşük confidence ver, errors'a not düş.
6) Tüm açıklamaların genel özetini overall_summary'ye yaz.
7) İşleme ait notlarını processing_notes'a ekle."""

FEW_SHOT_USER = "A blok 12'de şap bitti, C blok 5'te seramik başladı, otopark terfi pompaları test edildi"

FEW_SHOT_ASSISTANT = {
    "extractions": [
        {
            "intent": "is_kalemi_bitisi",
            "intent_confidence": 0.9,
            "is_kalemi_kodu": "3.1.1.1",
            "is_kalemi_adi": "Şap - Daire",
            "is_kalemi_confidence": 0.9,
            "blok": "A",
            "daire_no": "12",
            "alan": "daire",
            "aciklama": "A Blok 12 nolu daire şap imalatı tamamlandı",
            "evidence_spans": ["A blok 12", "şap bitti"],
            "timing": {},
        },
        {
            "intent": "is_kalemi_baslangici",
            "intent_confidence": 0.88,
            "is_kalemi_kodu": "3.1.3.1",
            "is_kalemi_adi": "Seramik - Daire",
            "is_kalemi_confidence": 0.85,
            "blok": "C",
            "daire_no": "5",
            "alan": "daire",
            "aciklama": "C Blok 5 nolu daire seramik işine başlandı",
            "evidence_spans": ["C blok 5", "seramik başladı"],
            "timing": {},
        },
        {
            "intent": "durum_guncelleme",
            "intent_confidence": 0.82,
            "is_kalemi_kodu": "4.1.6",
            "is_kalemi_adi": "Pis Su Tesisatı (Daire/Hizmetli/Kolon/Yağmur/Bodrum Hatları/Rögar/Terfi)",
            "is_kalemi_confidence": 0.75,
            "alan": "otopark",
            "aciklama": "Otopark terfi pompaları test edildi",
            "evidence_spans": ["otopark terfi pompaları", "test edildi"],
            "timing": {},
        },
    ],
    "overall_summary": "3 farklı iş kalemi: A12 şap bitişi, C5 seramik başlangıcı, otopark pompa testi",
    "processing_notes": ["3 farklı lokasyon ve iş kalemi tespit edildi"],
}


def build_extraction_messages(text: str) -> list[dict]:
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Taksonomi:\n{render_taxonomy()}\n\nGörev: Aşağıdaki metinden her iş kalemi için yapılandırılmış çıkarım üret.",
        },
        {"role": "user", "content": FEW_SHOT_USER},
        {"role": "assistant", "content": json.dumps(FEW_SHOT_ASSISTANT, ensure_ascii=False)},
        {"role": "user", "content": text},
    ]


class OpenAIProvider(Transcriber, Extractor):
    """OpenAI speech-to-text and structured extraction."""

    def __init__(
        self,
        api_key: str,
        stt_model: str = "whisper-1",
        extraction_model: str = "gpt-4o-mini",
        language: Optional[str] = "tr",
        stt_prompt: Optional[str] = STT_PROMPT_TR,
        timeout_seconds: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.stt_model = stt_model
        self.extraction_model = extraction_model
        self.language = language
        self.stt_prompt = stt_prompt
        self.timeout_seconds = timeout_seconds
        self.chat_url = "https://api.openai.com/v1/chat/completions"
        self.audio_url = "https://api.openai.com/v1/audio/transcriptions"
        self._client = client

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self._client is not None:
                return await self._client.post(url, headers=headers, **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                return await client.post(url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenAI request failed: {e}") from e

    async def transcribe(self, audio: bytes, mime_type: Optional[str] = None) -> str:
        if not audio:
            raise ValueError("audio is empty")

        mime_type = mime_type or "audio/ogg"
        extension = mimetypes.guess_extension(mime_type.split(";")[0].strip()) or ".ogg"
        files = {"file": (f"audio{extension}", audio, mime_type)}
        data = {"model": self.stt_model, "response_format": "text"}
        if self.language:
            data["language"] = self.language
        if self.stt_prompt:
            data["prompt"] = self.stt_prompt

        response = await self._post(self.audio_url, files=files, data=data)
        logger.debug(f"OpenAI transcription status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI transcription error: {response.text}")
            raise ProviderError(
                f"OpenAI transcription error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        transcript = (response.text or "").strip()
        if not transcript:
            logger.warning("OpenAI transcription returned empty text")
        return transcript

    async def extract(self, text: str) -> ExtractionResult:
        payload = {
            "model": self.extraction_model,
            "temperature": 0.2,
            "messages": build_extraction_messages(text),
            "response_format": {"type": "json_schema", "json_schema": EXTRACTION_JSON_SCHEMA},
        }
        response = await self._post(self.chat_url, json=payload)
        logger.debug(f"OpenAI extraction status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI extraction error: {response.text}")
            raise ProviderError(
                f"OpenAI API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        data = response.json()
        content = ""
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content") or ""
        if not content:
            raise ProviderError("OpenAI extraction returned no content")

        try:
            result = ExtractionResult.model_validate(json.loads(content))
        except (ValueError, ValidationError) as e:
            raise ProviderError(f"OpenAI extraction returned invalid JSON: {e}") from e

        for item in result.items:
            if item.is_kalemi_kodu and work_item_name(item.is_kalemi_kodu) is None:
                logger.warning(f"Extraction returned unknown work item code: {item.is_kalemi_kodu}")
                item.errors.append(f"Taksonomide olmayan iş kalemi kodu: {item.is_kalemi_kodu}")
        return result
