"""Project work-item taxonomy used to ground extraction.

Each node has a code (`kod`), a name (`ad`) and optional children (`alt`).
Electrical (5.x) and elevator (6.x) are broken down to their sub-items.
"""

from typing import Iterator


def _node(kod: str, ad: str, *alt: dict) -> dict:
    node = {"kod": kod, "ad": ad}
    if alt:
        node["alt"] = {child["kod"]: child for child in alt}
    return node


TAXONOMY: dict[str, dict] = {
    node["kod"]: node
    for node in (
        _node("1", "Zemin İyileştirme / Fore Kazık / İksa"),
        _node("2", "Kaba Yapı İmalatları"),
        _node(
            "3",
            "İnce İşler",
            _node(
                "3.1",
                "Döşeme Kaplama İşleri",
                _node(
                    "3.1.1",
                    "Şap İmalatı",
                    _node("3.1.1.1", "Şap - Daire"),
                    _node("3.1.1.2", "Şap - Balkon (Daire)"),
                    _node("3.1.1.3", "Şap - Hizmetli Odası"),
                    _node(
                        "3.1.1.4",
                        "Şap - Ortak Alan",
                        _node("3.1.1.4.1", "Şap - Ortak Alan (Yangın Merdiveni)"),
                        _node("3.1.1.4.2", "Şap - Ortak Alan (Kat Holü/Blok)"),
                    ),
                    _node("3.1.1.5", "Şap - Otopark"),
                ),
                _node(
                    "3.1.2",
                    "Yalıtım İşleri",
                    _node("3.1.2.1", "Sürme İzolasyon"),
                    _node(
                        "3.1.2.2",
                        "XPS",
                        _node("3.1.2.2.1", "XPS - Bina Cephe"),
                        _node("3.1.2.2.2", "XPS - 3. Bodrum Tavanı"),
                        _node("3.1.2.2.3", "XPS - 4. Bodrum Tavanı"),
                    ),
                    _node("3.1.2.3", "Balkon Zemin Yalıtımı"),
                ),
                _node(
                    "3.1.3",
                    "Döşeme Seramik Kaplama",
                    _node("3.1.3.1", "Seramik - Daire"),
                    _node("3.1.3.2", "Seramik - Sosyal Tesis"),
                    _node("3.1.3.3", "Seramik - Depolar"),
                    _node("3.1.3.4", "Seramik - Hizmetli Odası"),
                    _node("3.1.3.5", "Seramik - Hidrofor Dairesi"),
                    _node("3.1.3.6", "Seramik - Teknik Alan (C/D)"),
                ),
                _node("3.1.4", "PVC Kaplama - Sosyal Tesis"),
                _node("3.1.5", "Yivli Beton Uygulaması - Otopark"),
                _node(
                    "3.1.6",
                    "Mermer İmalatı",
                    _node("3.1.6.1", "Mermer - Daire"),
                    _node("3.1.6.2", "Mermer - Ortak Alan"),
                ),
            ),
            _node("3.2", "Süpürgelik İşleri"),
            _node(
                "3.3",
                "Duvar Kaplama İşleri",
                _node(
                    "3.3.1",
                    "Sıva İşleri",
                    _node("3.3.1.1", "Çimento Esaslı Sıva (Daire/Otopark/Sosyal Tesis/Teknik Alan/Ortak Alan)"),
                    _node("3.3.1.2", "Alçı Sıva (Kaba/Saten)"),
                    _node("3.3.1.3", "Köşe Çıtası İmalatı"),
                ),
                _node("3.3.2", "Brüt Beton Astarı (Daire/Ortak Alan)"),
                _node("3.3.3", "Seramik Duvar Kaplaması (Daire/Hidrofor)"),
                _node("3.3.4", "Duvar Kağıdı (Daire/Sosyal Tesis)"),
                _node("3.3.5", "Sürgülü Kapı İmalatı (Profil/Alçıpan)"),
                _node("3.3.6", "Boya İşleri (Daire/Ortak Alan/Hizmetli/Sosyal/Otopark)"),
                _node("3.3.7", "Duvar Mermer Kaplama (Daire İçi/Ortak Alan)"),
            ),
            _node("3.4", "Tavan İşleri (Karkas/Alçıpan/Sıva)"),
            _node("3.5", "Diğer Aksam İşleri (Geçiş Çıtası/Dilatasyon)"),
            _node("3.6", "Duvar İşleri (Tuğla/Alçıpan)"),
            _node("3.7", "Cephe İşleri"),
            _node("3.8", "Çatı İşleri"),
            _node("3.9", "İlave İşler"),
        ),
        _node(
            "4",
            "Mekanik Tesisat",
            _node(
                "4.1",
                "Sıhhi Tesisat",
                _node("4.1.1", "Vitrifiye & Armatür Montajı (Daire/Hizmetli/Sosyal/Sığınak)"),
                _node("4.1.2", "Aksesuar Montajı (Daire/Hizmetli/Sosyal/Sığınak)"),
                _node("4.1.3", "Süzgeç ve Montajı (Banyo/Balkon/Çatı/Tesis)"),
                _node(
                    "4.1.4",
                    "Cihaz ve Montajı (Hidrofor/Pis Su Pompası/Drenaj/Boyler/Sirkülasyon/Genleşme/Arıtma/Tesisat Armatürü)",
                ),
                _node("4.1.6", "Pis Su Tesisatı (Daire/Hizmetli/Kolon/Yağmur/Bodrum Hatları/Rögar/Terfi)"),
                _node("4.1.7", "Temiz Su Tesisatı (Daire/Ortak Alan/Hizmetli/Sosyal/Güvenlik)"),
                _node("4.1.8", "İzolasyon (Daire/Şaft/Sosyal/Bina Dağıtım/Hizmetli)"),
            ),
            _node(
                "4.2",
                "Isıtma Tesisatı",
                _node("4.2.1", "Cihaz ve Montajı (Kombi, Bağlantılar)"),
                _node("4.2.1.5", "Sirkülasyon Pompası (ISP1-2 Boyler / ISP3-4 Yerden Isıtma / ISP5-6 Nem Alma)"),
                _node("4.2.2", "Isıtma Tesisatı Borulama (PPR - Daire vb.)"),
            ),
        ),
        _node(
            "5",
            "Elektrik",
            _node(
                "5.1",
                "Enerji Girişi ve Ana Dağıtım",
                _node("5.1.1", "Enerji Girişi / Sayaç Odası (ADM, ölçü hücresi)"),
                _node("5.1.2", "Ana Dağıtım Panosu (ADP) Montajı"),
                _node("5.1.3", "Kompanzasyon Panosu ve Ayarı"),
                _node("5.1.4", "Kat/Blok Dağıtım Panoları (KDP/BDP)"),
            ),
            _node(
                "5.2",
                "Kablo Tavası ve Askı Sistemleri",
                _node("5.2.1", "Ana Güzergâh (şaft/koridor)"),
                _node("5.2.2", "Otopark ve Teknik Alanlar"),
                _node("5.2.3", "Düşey Şaft / Asansör Kuyu Kenarı"),
            ),
            _node(
                "5.3",
                "Borulama ve Kablo Çekimi",
                _node("5.3.1", "Borulama (PVC/galvaniz/fleks)"),
                _node("5.3.2", "Kuvvetli Akım Kablolaması"),
                _node("5.3.3", "Aydınlatma Devre Kablolaması"),
                _node("5.3.4", "Etiketleme / Numaralandırma / Klemensleme"),
            ),
            _node(
                "5.4",
                "Aydınlatma",
                _node("5.4.1", "Aydınlatma - Daire"),
                _node("5.4.2", "Aydınlatma - Ortak Alan (kat holü/yangın merdiveni)"),
                _node("5.4.3", "Aydınlatma - Otopark"),
                _node("5.4.4", "Aydınlatma - Sosyal Tesis"),
                _node("5.4.5", "Aydınlatma - Teknik Alan/Şaft"),
                _node("5.4.6", "Acil Aydınlatma ve Yönlendirme (Emergency/Exit)"),
            ),
            _node(
                "5.5",
                "Priz ve Küçük Güç Uçları",
                _node("5.5.1", "Priz - Daire"),
                _node("5.5.2", "Priz - Ortak Alan"),
                _node("5.5.3", "Priz - Otopark/Teknik Alan"),
            ),
            _node(
                "5.6",
                "Topraklama, Eş Potansiyel ve Parafudr",
                _node("5.6.1", "Topraklama Ring/Barası"),
                _node("5.6.2", "Eş Potansiyel Barası (EPB)"),
                _node("5.6.3", "Paratoner/Parafudr Sistemleri"),
            ),
            _node(
                "5.7",
                "Zayıf Akım Sistemleri",
                _node("5.7.1", "Yangın Algılama ve Alarm (dedektör/buton/siren/santral)"),
                _node("5.7.2", "CCTV (kameralar, NVR)"),
                _node("5.7.3", "Kartlı Geçiş/Turnike"),
                _node("5.7.4", "İnterkom/Diafon"),
                _node("5.7.5", "Data/Telefon (Cat6, patch panel)"),
                _node("5.7.6", "Uydu/IPTV"),
                _node("5.7.7", "Anons/PA-VA"),
                _node("5.7.8", "Bina Otomasyon (BMS) Entegrasyonu"),
            ),
            _node(
                "5.8",
                "Güç Sürekliliği ve Entegrasyon",
                _node("5.8.1", "Jeneratör Kablolaması ve ATS"),
                _node("5.8.2", "UPS Kurulum ve Dağıtım"),
            ),
            _node(
                "5.9",
                "Test - Devreye Alma - Dokümantasyon",
                _node("5.9.1", "Yalıtım (Megger) ve Süreklilik Testleri"),
                _node("5.9.2", "Topraklama Ölçümü / Parafudr Testi"),
                _node("5.9.3", "Lux ve Acil Aydınlatma Testleri"),
                _node("5.9.4", "Devreye Alma, Etiketleme, As-Built"),
            ),
        ),
        _node(
            "6",
            "Asansör",
            _node(
                "6.1",
                "Kuyu ve Hazırlık İşleri (makine daireli/daire siz ops.)",
                _node("6.1.1", "Kuyu Ölçüm/Markaj - Ankraj Plakaları"),
                _node("6.1.2", "Pit Donanımları (tampon, çukur, drenaj)"),
                _node("6.1.3", "Kuyu Merdiveni/Platform/Emniyet Elemanları"),
            ),
            _node(
                "6.2",
                "Ray ve Karşı Ağırlık Montajı",
                _node("6.2.1", "Kılavuz Raylar"),
                _node("6.2.2", "Karşı Ağırlık ve Kızaklar"),
            ),
            _node(
                "6.3",
                "Makine ve Tahrik Grubu",
                _node("6.3.1", "Dişli/Dişlisiz Motor ve Makara (MRL/MD)"),
                _node("6.3.2", "Makine Dairesi Ekipmanları (varsa)"),
            ),
            _node(
                "6.4",
                "Kumanda ve Kontrol",
                _node("6.4.1", "Kumanda Panosu (kontrol kartı, sürücü)"),
                _node("6.4.2", "Hız Regülatörü, Sınır Şalterleri"),
            ),
            _node(
                "6.5",
                "Kabin ve İç Donanımlar",
                _node("6.5.1", "Kabin Şasesi / Üst Donanım"),
                _node("6.5.2", "Kabin İçi Kaplama, Tavan, Aydınlatma"),
                _node("6.5.3", "Butonyer, Display, Acil Telefon/Interkom"),
            ),
            _node(
                "6.6",
                "Kapılar",
                _node("6.6.1", "Kabin Kapısı"),
                _node("6.6.2", "Kat Kapıları ve Kasaları"),
            ),
            _node(
                "6.7",
                "Tesisat ve Kablolama",
                _node("6.7.1", "Hareketli Kablo/Flat Cable (sepet)"),
                _node("6.7.2", "Kat Butonyerleri Kablajı"),
            ),
            _node(
                "6.8",
                "Güvenlik ve Kurtarma Sistemleri",
                _node("6.8.1", "Emniyet Tertibatı (paraşüt sistemi, tamponlar)"),
                _node("6.8.2", "Acil Kurtarma / UPS Entegrasyonu"),
                _node("6.8.3", "Yangın Senaryosu Entegrasyonu"),
            ),
            _node(
                "6.9",
                "Test, Devreye Alma ve Ruhsat",
                _node("6.9.1", "Yük Testi ve Fonksiyon Testleri"),
                _node("6.9.2", "Hız Regülatörü/Paraşüt Testleri"),
                _node("6.9.3", "Bağımsız Muayene (TSE/akredite) ve Kabul"),
            ),
        ),
        _node("7", "Atıksu + Yağmursuyu + İçmesuyu + Telekom Hattı"),
        _node("8", "Çevre Düzenleme ve Peyzaj"),
        _node("9", "Müteferrik İşler"),
        _node("9A", "Eksik ve Problemli İşler"),
    )
}


def iter_work_items(nodes: dict[str, dict] = TAXONOMY, depth: int = 0) -> Iterator[tuple[int, str, str]]:
    """Depth-first (depth, code, name) for every node."""
    for node in nodes.values():
        yield depth, node["kod"], node["ad"]
        yield from iter_work_items(node.get("alt", {}), depth + 1)


def render_taxonomy() -> str:
    """One indented `code name` line per work item, for the extraction prompt."""
    return "\n".join(f"{'  ' * depth}{kod} {ad}" for depth, kod, ad in iter_work_items())


def work_item_name(code: str) -> str | None:
    for _, kod, ad in iter_work_items():
        if kod == code:
            return ad
    return None
