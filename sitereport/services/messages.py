"""Reporter-facing copy (Turkish) and result message formatting."""

from typing import Optional

from sitereport.models.report import ExtractionItem
from sitereport.services.messaging.base import Button

BUTTON_COMPLETE = Button(id="complete", title="Tamam")
BUTTON_SAVE_NEW = Button(id="save_new", title="Evet")
BUTTON_CONTINUE = Button(id="continue", title="Hayır")

LOCATION_REQUEST = "Yeni bir bildirimde bulunmak için lütfen mevcut konumunuzu paylaşarak başlayın."
LOCATION_REQUEST_FALLBACK = "Lütfen WhatsApp'ta ataç menüsünden (📎) *Konum* seçip mevcut konumunuzu paylaşın."
LOCATION_FIRST = "📍 Önce konumunuzu paylaşın."

LOCATION_RECEIVED_ASK_MEDIA = "📸 Konum alındı. Lütfen görsel veya video gönderin."
LOCATION_RECEIVED_ASK_DESCRIPTION = "🎤 Konum alındı. Lütfen sesli veya yazılı açıklama yapın."
LOCATION_UPDATED_ASK_MEDIA = "📍 Konum güncellendi. Şimdi lütfen görsel veya video gönderin."
LOCATION_UPDATED_KEEP_DESCRIBING = "📍 Konum güncellendi. Açıklamalarınıza devam edin veya hazırsanız Tamam'a basın."

MEDIA_REMINDER = "📸 Konumdan sonra lütfen görsel veya video gönderin."
DESCRIPTION_REQUEST = "🎤 Lütfen sesli veya yazılı açıklama yapın."
DESCRIPTION_REMINDER = (
    "💬 Lütfen sesli veya yazılı açıklama yapın.\n\n"
    "🔄 Yeni bir akış için konumunuzu paylaşarak başlayın."
)
NO_DESCRIPTION_YET = "Henüz açıklama yapmadınız. Lütfen sesli veya yazılı açıklama gönderin."
DONE_PROMPT = (
    "✅ Açıklamanız bittiyse Tamam'a basın.\n"
    "📝 Bitmediyse ses kaydı veya yazılı açıklama göndermeye devam edin."
)

MID_FLOW_QUESTION = "Mevcut akışı kaydedip yeni akış başlatmak ister misiniz?"
SAVED_START_NEW = "✅ Mevcut açıklamanız kaydedildi. Şimdi yeni akış için lütfen konumunuzu paylaşın."
CONTINUE_DESCRIBING = "📝 Mevcut konuyu açıklamaya devam edin."

NO_EXTRACTIONS = "⚠️ Mesajınızdan anlamlı bilgi çıkaramadık. Lütfen daha açıklayıcı bir şekilde bildirimde bulunun."
RESULTS_FALLBACK = "✅ Teşekkürler, açıklamanız alındı ve işlendi."

GENERIC_FAILURE = "⚠️ Bir hata oluştu, mesajınız işlenemedi. Lütfen tekrar deneyin."
TEMPORARILY_UNAVAILABLE = "⚠️ Sistem şu anda geçici olarak kullanılamıyor. Lütfen birkaç dakika sonra tekrar deneyin."

TRANSCRIPTION_FAILED = "[Ses kaydı transkript edilemedi]"
_TRANSCRIPTION_FAILURE_REASONS = {
    401: "Kimlik doğrulama hatası",
    404: "Media bulunamadı",
    429: "Rate limit aşıldı",
}

DESCRIPTION_SEPARATOR = " | "


def transcription_placeholder(status_code: Optional[int] = None) -> str:
    reason = _TRANSCRIPTION_FAILURE_REASONS.get(status_code) if status_code else None
    if reason:
        return f"[Ses kaydı transkript edilemedi: {reason}]"
    return TRANSCRIPTION_FAILED


def format_combined_description(text: str) -> str:
    return f"📝 *Birleştirilmiş Açıklamanız:*\n\n{text}"


def format_summary(summary: str) -> str:
    return f"📊 *Genel Özet:* {summary}"


def format_extraction_item(index: int, item: ExtractionItem) -> str:
    """One result message per work item; `index` is 1-based."""
    lines = [f"🔍 *İş Kalemi {index}:*", "", f"• *Niyet:* {item.intent}"]

    optional_fields = [
        ("İş Kalemi", item.is_kalemi_adi),
        ("Kod", item.is_kalemi_kodu),
        ("Blok", item.blok),
        ("Daire", item.daire_no),
        ("Kat", item.kat),
        ("Alan", item.alan),
        ("Açıklama", item.aciklama),
    ]
    for label, value in optional_fields:
        if value:
            lines.append(f"• *{label}:* {value}")

    lines.append(f"• *Güven:* %{round((item.intent_confidence or 0) * 100)}")
    if item.errors:
        lines.append(f"• *Uyarılar:* {', '.join(item.errors)}")
    return "\n".join(lines)
