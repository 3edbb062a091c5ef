"""
Keyword extraction for knowledge entries.

Suggests retrieval keywords from an entry's title and content so curators
do not have to type them by hand. Medical vocabulary is weighted above
ordinary long or repeated words, which are weighted above short phrases.
"""

import re
from typing import Dict, List

from knowledge_service.services.text_normalizer import STOPWORDS

_NON_WORD = re.compile(r"[^\w\s]")
_SENTENCE_BREAK = re.compile(r"[.!?]+")
_LETTERS_ONLY = re.compile(r"^[a-zA-Z]+$")

KEYWORD_STOPWORDS = STOPWORDS | {
    "sebagai", "antara", "oleh", "karena", "hingga", "sampai", "setelah", "sebelum",
    "saat", "ketika", "bila", "jika", "apabila", "maka", "sehingga", "bahwa", "agar",
    "supaya", "namun", "tetapi", "sedangkan", "melainkan", "kecuali", "selain", "hanya",
    "saja", "bahkan", "justru", "malah", "pula", "lagi", "masih", "belum", "baru",
    "pernah", "sedang", "tengah",
}

# Ordered so extraction is deterministic
MEDICAL_TERMS = (
    # Body parts
    "kepala", "mata", "telinga", "hidung", "mulut", "gigi", "leher", "tenggorokan",
    "dada", "paru", "jantung", "perut", "lambung", "usus", "hati", "ginjal",
    "kandung kemih", "tangan", "lengan", "kaki", "lutut", "siku", "bahu",
    "punggung", "pinggang", "tulang", "otot", "kulit", "rambut", "kuku",
    # Symptoms
    "sakit", "nyeri", "pusing", "demam", "panas", "dingin", "menggigil",
    "batuk", "pilek", "bersin", "sesak", "nafas", "mual", "muntah",
    "diare", "sembelit", "konstipasi", "gatal", "ruam", "bengkak",
    "kemerahan", "luka", "berdarah", "memar", "kram", "kejang",
    "lemas", "lelah", "insomnia", "tidur", "stres", "cemas", "depresi",
    # Conditions
    "diabetes", "hipertensi", "darah tinggi", "kolesterol", "asma", "alergi",
    "flu", "masuk angin", "tifus", "malaria", "tuberkulosis", "tbc",
    "hepatitis", "gastritis", "maag", "infeksi", "radang", "tumor",
    "kanker", "stroke", "serangan jantung", "aritmia", "anemia",
    # Treatments
    "obat", "tablet", "kapsul", "sirup", "salep", "krim", "tetes",
    "suntik", "vaksin", "imunisasi", "terapi", "fisioterapi", "operasi",
    "bedah", "rawat inap", "rawat jalan", "kontrol", "pemeriksaan",
    "tes darah", "rontgen", "usg", "ct scan", "mri",
    # Medical professionals
    "dokter", "perawat", "bidan", "apoteker", "terapis", "ahli gizi",
    "spesialis", "umum", "anak", "kandungan", "tht", "jiwa", "saraf",
    "orthopedi", "urologi", "onkologi",
    # Healthcare facilities
    "puskesmas", "rumah sakit", "klinik", "apotek", "laboratorium",
    "ugd", "icu", "poliklinik", "posyandu", "pustu",
)
_MEDICAL_TERM_SET = frozenset(MEDICAL_TERMS)

MEDICAL_PREFIXES = ("anti", "pre", "post", "over", "under", "hyper", "hypo")
MEDICAL_SUFFIXES = ("itis", "osis", "emia", "uria", "algia", "pathy", "ology")

MEDICAL_TERM_SCORE = 3
SIGNIFICANT_WORD_SCORE = 2
PHRASE_SCORE = 1

MIN_KEYWORD_LENGTH = 3
SUGGESTED_COUNT = 8
ADDITIONAL_COUNT = 7

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "symptoms": [
        "Sakit", "Nyeri", "Demam", "Pusing", "Mual", "Batuk", "Pilek",
        "Sesak Nafas", "Gatal", "Bengkak", "Lemas", "Diare",
    ],
    "conditions": [
        "Diabetes", "Hipertensi", "Asma", "Alergi", "Flu", "Maag",
        "Infeksi", "Radang", "Gastritis", "Anemia",
    ],
    "treatments": [
        "Obat", "Terapi", "Pemeriksaan", "Kontrol", "Vaksin", "Imunisasi",
        "Fisioterapi", "Diet", "Istirahat", "Kompres",
    ],
    "emergency": [
        "Darurat", "UGD", "Pertolongan Pertama", "Kecelakaan", "Luka",
        "Pendarahan", "Pingsan", "Sesak", "Nyeri Dada",
    ],
    "general": [
        "Kesehatan", "Pencegahan", "Gizi", "Olahraga", "Pola Hidup",
        "Imunitas", "Vitamin", "Mineral",
    ],
}


def _normalize(text: str) -> str:
    return " ".join(_NON_WORD.sub(" ", text.lower()).split())


def _is_significant_word(word: str) -> bool:
    return (
        len(word) >= 4
        and word not in KEYWORD_STOPWORDS
        and bool(_LETTERS_ONLY.match(word))
    )


def _is_significant_phrase(phrase: str) -> bool:
    words = phrase.split(" ")
    has_significant_word = any(
        _is_significant_word(word) or word in _MEDICAL_TERM_SET for word in words
    )
    all_stopwords = all(word in KEYWORD_STOPWORDS for word in words)
    return has_significant_word and not all_stopwords and len(phrase) >= 8


def _extract_medical_terms(text: str) -> List[str]:
    words = text.split()
    word_set = set(words)
    padded = f" {text} "

    found = []
    for term in MEDICAL_TERMS:
        if " " in term:
            if f" {term} " in padded:
                found.append(term)
        elif term in word_set:
            found.append(term)

    for word in words:
        if len(word) >= 5 and (word.startswith(MEDICAL_PREFIXES) or word.endswith(MEDICAL_SUFFIXES)):
            found.append(word)

    return list(dict.fromkeys(found))


def _extract_significant_words(text: str, limit: int = 10) -> List[str]:
    frequency: Dict[str, int] = {}
    for word in text.split():
        if _is_significant_word(word):
            frequency[word] = frequency.get(word, 0) + 1

    return [
        word for word, count in frequency.items()
        if count > 1 or len(word) >= 6
    ][:limit]


def _extract_phrases(raw_text: str, limit: int = 5) -> List[str]:
    phrases = []
    for sentence in _SENTENCE_BREAK.split(raw_text):
        words = _normalize(sentence).split()
        for i in range(len(words) - 1):
            candidates = [" ".join(words[i:i + 2])]
            if i < len(words) - 2:
                candidates.append(" ".join(words[i:i + 3]))
            phrases.extend(phrase for phrase in candidates if _is_significant_phrase(phrase))

    return list(dict.fromkeys(phrases))[:limit]


def extract_keywords(text: str, max_keywords: int = 10) -> List[str]:
    """Top-scoring keywords for a piece of text, best first."""
    if not text or not text.strip():
        return []

    normalized = _normalize(text)
    scores: Dict[str, int] = {}

    for keyword in _extract_medical_terms(normalized):
        scores[keyword] = scores.get(keyword, 0) + MEDICAL_TERM_SCORE
    for keyword in _extract_significant_words(normalized):
        scores[keyword] = scores.get(keyword, 0) + SIGNIFICANT_WORD_SCORE
    for keyword in _extract_phrases(text):
        scores[keyword] = scores.get(keyword, 0) + PHRASE_SCORE

    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [keyword for keyword, _ in ranked[:max_keywords] if len(keyword) >= MIN_KEYWORD_LENGTH]


def extract_keywords_with_suggestions(text: str) -> Dict[str, List[str]]:
    """Split extracted keywords into automatic suggestions and optional extras."""
    keywords = extract_keywords(text, max_keywords=20)
    return {
        "suggested": keywords[:SUGGESTED_COUNT],
        "additional": keywords[SUGGESTED_COUNT:SUGGESTED_COUNT + ADDITIONAL_COUNT],
    }


def suggest_keywords_by_category(category: str) -> List[str]:
    return list(CATEGORY_KEYWORDS.get(category, []))


def format_keywords(keywords: List[str]) -> List[str]:
    """Trim, drop short keywords and title-case each word for display."""
    formatted = []
    for keyword in keywords:
        keyword = keyword.strip()
        if len(keyword) < MIN_KEYWORD_LENGTH:
            continue
        formatted.append(" ".join(word[:1].upper() + word[1:] for word in keyword.split(" ")))
    return formatted
