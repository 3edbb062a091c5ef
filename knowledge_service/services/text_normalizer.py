"""
Text normalization and tokenization for Indonesian chat queries.

Shared by the retrieval scorer and the similarity scorer. All functions are
pure and deterministic.
"""

import re
from typing import List

_NON_WORD = re.compile(r"[^\w\s]")

# Conversational particles that carry no meaning in a query
FILLER_WORDS = frozenset({"sih", "dong", "kok"})

# Function words, pronouns, interrogatives and particles
STOPWORDS = frozenset({
    "yang", "dan", "di", "ke", "dari", "pada", "untuk", "dengan", "adalah", "ini", "itu",
    "atau", "juga", "akan", "telah", "sudah", "ada", "tidak", "bisa", "dapat", "harus",
    "dalam", "apa", "apakah", "bagaimana", "dimana", "kapan", "siapa", "kenapa", "mengapa",
    "berapa", "saya", "anda", "kita", "kami", "mereka", "dia", "ia", "nya", "mu", "ku",
    "sih", "dong", "kok", "lah", "kah", "tah", "pun", "kan", "aku", "gue", "gua",
})

MIN_TOKEN_LENGTH = 3


def normalize(text: str) -> str:
    """
    Lowercase, strip punctuation, collapse whitespace and drop filler words.

    normalize(normalize(x)) == normalize(x) for every string.
    """
    if not text:
        return ""

    words = _NON_WORD.sub(" ", text.lower()).split()
    return " ".join(word for word in words if word not in FILLER_WORDS)


def tokenize(text: str) -> List[str]:
    """
    Split normalized text into meaningful tokens.

    Drops tokens shorter than three characters and stopwords. Returns an
    empty list for empty or all-stopword input.
    """
    return [
        token for token in normalize(text).split()
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOPWORDS
    ]


def word_overlap(text1: str, text2: str) -> float:
    """Intersection over union of the normalized words of two texts."""
    words1 = set(normalize(text1).split())
    words2 = set(normalize(text2).split())

    if not words1 or not words2:
        return 0.0

    return len(words1 & words2) / len(words1 | words2)
