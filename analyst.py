import logging
import os

from google import genai

from models import PAYMENT_METHODS

logger = logging.getLogger(__name__)

MAX_PROMPT_ROWS = 50
DEFAULT_MODEL = 'gemini-2.5-flash'

NO_ANSWER = "Maaf, saya tidak dapat menganalisis data saat ini."
SERVICE_ERROR = "Terjadi kesalahan saat menghubungi layanan AI. Pastikan API Key valid."

SUGGESTIONS = [
    "Apa produk terlaris minggu ini?",
    "Berapa rata-rata penjualan harian?",
    "Analisa tren penjualan saya",
    "Saran untuk meningkatkan profit?",
]

PROMPT_TEMPLATE = """Anda adalah asisten analisis bisnis cerdas untuk aplikasi penjualan "TokoSheet".
Berikut adalah data penjualan mentah (maksimal {limit} transaksi terakhir):

---AWAL DATA---
{data}
---AKHIR DATA---

Pengguna bertanya: "{question}"

Tugas anda:
1. Jawab pertanyaan pengguna berdasarkan data di atas.
2. Gunakan Bahasa Indonesia yang profesional namun ramah.
3. Jika data kosong, beritahu pengguna.
4. Berikan insight singkat jika relevan (misal: tren penjualan).

Jawab dengan format markdown ringkas."""


def financial_stats(transactions, purchases):
    total_sales = sum(t.total for t in transactions)
    total_purchases = sum(p.total for p in purchases)
    by_method = {m: 0 for m in PAYMENT_METHODS}
    for t in transactions:
        if t.payment_method in by_method:
            by_method[t.payment_method] += t.total
    return {
        'total_sales': total_sales,
        'total_sales_count': len(transactions),
        'total_purchases': total_purchases,
        'total_purchases_count': len(purchases),
        'net_profit': total_sales - total_purchases,
        'by_method': by_method,
    }


def build_prompt(transactions, question):
    data = "\n".join(
        f"{t.date.split('T')[0]}, {t.product_name}, {t.category}, Qty:{t.quantity}, Rp{t.total}"
        for t in transactions[:MAX_PROMPT_ROWS]
    )
    return PROMPT_TEMPLATE.format(limit=MAX_PROMPT_ROWS, data=data, question=question)


def _default_client():
    api_key = os.environ.get('GEMINI_API_KEY') or os.environ.get('API_KEY')
    if not api_key:
        return None
    return genai.Client(api_key=api_key)


def analyze_sales(transactions, question, client=None, model=None):
    """Ask the model about the most recent sales. Never raises; returns markdown."""
    client = client or _default_client()
    if client is None:
        logger.error("GEMINI_API_KEY belum diatur")
        return SERVICE_ERROR

    try:
        response = client.models.generate_content(
            model=model or os.environ.get('GEMINI_MODEL', DEFAULT_MODEL),
            contents=build_prompt(transactions, question),
        )
    except Exception:
        logger.exception("Gemini error")
        return SERVICE_ERROR
    return response.text or NO_ANSWER
