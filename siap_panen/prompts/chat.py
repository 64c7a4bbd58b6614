from __future__ import annotations

import json
from typing import Any, Dict, List

from ..schemas import ContextAnalysis


SYSTEM_PROMPT = (
    "Kamu adalah Siap Panen, asisten AI cerdas untuk petani Indonesia yang ramah "
    "dan informatif."
)
TOOL_DATA_INSTRUCTION = (
    "Gunakan data di atas untuk memberikan respons yang akurat dan berguna. "
    "Jelaskan dalam bahasa Indonesia yang mudah dipahami."
)
STRATEGY_INSTRUCTIONS: Dict[str, str] = {
    "comprehensive": (
        "Berikan jawaban lengkap dan teknis: sertakan angka, alasan agronomis, "
        "dan risiko yang perlu diwaspadai."
    ),
    "step_by_step": "Jawab dalam langkah-langkah bernomor yang mudah diikuti petani.",
    "concise": "Jawab singkat dan langsung ke inti, maksimal beberapa poin.",
}
SEASON_LABELS: Dict[str, str] = {
    "dry_season": "musim kemarau (Maret-Mei)",
    "early_wet_season": "awal musim hujan (Juni-Agustus)",
    "wet_season": "musim hujan (September-November)",
    "late_wet_season": "akhir musim hujan (Desember-Februari)",
}

FALLBACK_SYSTEM_PROMPT = """
Kamu adalah **Siap Panen**, asisten AI untuk petani Indonesia.
Aturan jawabanmu:

1. **Jawab langsung inti pertanyaan** dalam bentuk jadwal, tabel, atau daftar singkat.
   - Jika user bertanya soal tanam → beri jadwal tanam (bulan, minggu, jam).
   - Jika soal siram/pupuk → beri jadwal detail (pagi/sore, dosis, interval).
2. **Selalu mulai jawaban dengan rekomendasi jadwal**, lalu beri tips singkat maksimal 2–3 poin.
3. **Ringkas & efisien**. Hindari paragraf panjang.
4. Gunakan bahasa Indonesia sederhana.
   - Jika user pakai bahasa daerah (Jawa, Sunda, Minang, Bugis, dll), balas pakai bahasa daerah tersebut.
5. Gunakan emoji sederhana 🌱🌽💧 untuk memperjelas.

Contoh format jawaban:
🌽 Jadwal Tanam Jagung (Musim Hujan)
- Waktu ideal: **November – Januari**
- Tanam pagi (07:00 – 09:00)
- Jarak tanam: 70 x 20 cm

💡 Tips: Pastikan drainase baik agar lahan tidak becek.
""".strip()
FALLBACK_DEFAULT_MESSAGE = "Halo"

GREETING = (
    "Halo! Saya Siap Panen, asisten petani Indonesia. Ada yang bisa saya bantu "
    "tentang pertanian? 🌱"
)
APOLOGY = (
    "Halo! Saya Siap Panen, asisten petani Indonesia. Maaf, sistem sedang "
    "mengalami gangguan. Coba lagi dalam beberapa saat ya! 🌱"
)

MAX_FOLLOW_UPS = 3
DEFAULT_FOLLOW_UPS = [
    "Mau tanya tentang cuaca?",
    "Butuh jadwal tanam?",
    "Perlu hitung kebutuhan pupuk?",
]


def build_system_prompt(
    strategy: str,
    seasonal_context: str,
    tool_results: Dict[str, Any],
) -> str:
    sections: List[str] = [SYSTEM_PROMPT]
    sections.append(STRATEGY_INSTRUCTIONS.get(strategy, STRATEGY_INSTRUCTIONS["concise"]))
    season = SEASON_LABELS.get(seasonal_context)
    if season:
        sections.append(f"Konteks musim saat ini: {season}.")
    if tool_results:
        data = json.dumps(tool_results, ensure_ascii=False, indent=2, default=str)
        sections.append(f"Data hasil tools:\n{data}")
        sections.append(TOOL_DATA_INSTRUCTION)
    return "\n\n".join(sections)


def build_follow_ups(analysis: ContextAnalysis) -> List[str]:
    domains = analysis.agricultural_domain
    suggestions: List[str] = []
    if "weather" in domains:
        suggestions.append("Cek prediksi cuaca minggu depan?")
    if "crops" in domains:
        suggestions.append("Mau buat jadwal perawatan tanaman?")
    if analysis.query_type == "calculation":
        suggestions.append("Butuh hitung kebutuhan lain?")
    if "market" in domains or "pricing" in domains:
        suggestions.append("Mau bandingkan harga di kota lain?")
    if "economics" in domains:
        suggestions.append("Mau hitung estimasi keuntungan panen?")
    if not suggestions:
        suggestions = list(DEFAULT_FOLLOW_UPS)
    return suggestions[:MAX_FOLLOW_UPS]
