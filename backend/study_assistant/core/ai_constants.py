"""AI service constants and prompts.

Centralized configuration for AI-related functionality including
system prompts, model parameters, keyword vocabularies and RAG defaults.
"""

# Chat models selectable from the client ("gpt" | "llama")
AI_MODELS = {
    "gpt": {"id": "gpt-4o-mini", "name": "GPT-4o Mini", "provider": "openai"},
    "llama": {"id": "llama-3.3-70b-versatile", "name": "Llama 3.3 70B", "provider": "groq"},
}

# Sampling temperature per use case
TEMPERATURE_CONFIG = {
    "rag": 0.1,  # factual answers grounded in the knowledge base
    "general": 0.5,
    "code": 0.2,
    "creative": 0.8,
}

TOKEN_CONFIG = {
    "max_output": 2048,
    "max_context": 4096,
    "history_limit": 10,  # chat turns replayed into the prompt
}

# Query expansion bounds (characters)
QUERY_EXPANSION_MIN_CHARS = 5
QUERY_EXPANSION_MAX_CHARS = 200
QUERY_EXPANSION_MAX_TOKENS = 100
QUERY_EXPANSION_TEMPERATURE = 0.3

# Keyword vocabularies for query classification
DOCUMENT_QUERY_KEYWORDS = frozenset({
    "dokumen", "file", "pdf", "upload", "buku", "materi",
    "catatan", "yang saya", "yang aku", "yang di", "isinya",
    "bab", "halaman", "bagian", "chapter", "slide",
})

CODE_QUERY_KEYWORDS = frozenset({
    "code", "kode", "coding", "program", "function", "fungsi",
    "class", "method", "variable", "error", "bug", "debug",
    "javascript", "python", "php", "java", "react", "next",
})

STOPWORDS = frozenset({
    "yang", "dan", "di", "ke", "dari", "untuk", "pada", "dengan",
    "adalah", "ini", "itu", "atau", "juga", "dalam", "oleh",
    "apa", "siapa", "kapan", "dimana", "mengapa", "bagaimana",
    "the", "a", "an", "is", "are", "was", "were", "be", "been",
    "of", "in", "to", "for", "on", "with", "at", "by", "from",
})

# Context block layout
CONTEXT_BLOCK_SEPARATOR = "\n\n---\n\n"
CONTEXT_BLOCK_HEADER = "[Dokumen {ordinal} - Relevansi: {percent}%]"

INDONESIAN_MONTHS = (
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
)

QUERY_EXPANSION_PROMPT = """Kamu adalah query expander untuk sistem pencarian dokumen akademik/belajar.

TUGAS:
Perluas query user dengan menambahkan kata kunci relevan untuk meningkatkan hasil pencarian.

ATURAN:
1. Output HANYA query yang diperluas, TANPA penjelasan
2. Pertahankan intent asli dari user
3. Tambahkan sinonim dan kata kunci terkait
4. Jangan mengubah makna query
5. Maksimal 50 kata

CONTOH:
Input: "siapa sophie?"
Output: "siapa sophie karakter utama novel dunia filsafat jostein gaarder norwegia"

Input: "rumus pythagoras"
Output: "rumus teorema pythagoras matematika segitiga siku-siku a² + b² = c² geometri"

Input: "apa itu demokrasi"
Output: "apa itu demokrasi sistem pemerintahan rakyat pemilu voting politik kebebasan\""""

BASE_SYSTEM_PROMPT = (
    "Kamu adalah asisten belajar mahasiswa bernama AI Study Assistant{model_note}. \n"
    "Jawab dengan bahasa sederhana dan jelas. {memory_note}"
)
LLAMA_MODEL_NOTE = " yang menggunakan Llama AI"
MEMORY_NOTE = "Kamu bisa mengingat percakapan sebelumnya dengan user."

FACTUAL_UPDATES_PROMPT = """
INFORMASI PENTING (UPDATE TERBARU):
- Tanggal hari ini: {today}
- Presiden Indonesia saat ini adalah Prabowo Subianto, dilantik pada 20 Oktober 2024
- Wakil Presiden Indonesia saat ini adalah Gibran Rakabuming Raka
- Joko Widodo (Jokowi) adalah presiden sebelumnya (2014-2024)"""

_RULE = "═" * 63

RAG_CONTEXT_PROMPT = f"""
{_RULE}
📚 KONTEKS DARI KNOWLEDGE BASE USER (PRIORITAS TINGGI)
{_RULE}

{{context}}

{_RULE}
⚠️ ATURAN PENGGUNAAN KONTEKS:
{_RULE}
1. PRIORITASKAN informasi dari konteks di atas untuk menjawab
2. Jika konteks relevan dengan pertanyaan → jawab berdasarkan konteks
3. Jika konteks tidak relevan → boleh jawab dari pengetahuan umum
4. SEBUTKAN jika jawabanmu berasal dari dokumen user
5. JANGAN mengarang informasi yang tidak ada di konteks"""

NO_CONTEXT_PROMPT = f"""
{_RULE}
⚠️ TIDAK ADA KONTEKS DARI KNOWLEDGE BASE
{_RULE}

User sepertinya bertanya tentang dokumen/materi yang diupload,
tapi tidak ada dokumen relevan yang ditemukan.

ATURAN: Beritahu user dengan sopan:
"Maaf, saya tidak menemukan informasi tentang ini di knowledge base Anda.
Pastikan Anda sudah mengupload dokumen yang relevan, atau coba tanyakan
dengan kata kunci yang berbeda."

Setelah itu, BOLEH tawarkan bantuan umum jika relevan."""

FORMAT_INSTRUCTIONS = """
FORMAT JAWABAN:
- Gunakan markdown untuk memformat jawaban dengan baik
- Untuk kode program, SELALU gunakan code block dengan bahasa yang sesuai
- Gunakan heading (##, ###) untuk membagi bagian
- Gunakan bullet points dan numbered lists untuk poin-poin
- Gunakan bold (**teks**) untuk penekanan penting
- Gunakan inline code (`kode`) untuk nama fungsi, variabel, atau perintah

FORMAT MATEMATIKA (PENTING):
- Untuk rumus matematika, SELALU gunakan format LaTeX
- Rumus inline: gunakan $...$, contoh: $x^2 + y^2 = z^2$
- Rumus block: gunakan $$...$$, contoh: $$\\frac{a}{b}$$"""
