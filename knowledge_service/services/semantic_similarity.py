"""
Semantic Similarity Scorer

Estimates whether two user queries express the same intent. Used to fold
near-duplicate knowledge gaps together, both when a gap is logged and in the
admin merge operation.

The score is an explainable blend of lexical heuristics tuned for Indonesian
queries and a small medical synonym table. It is deterministic and symmetric:
calculate_similarity(a, b) == calculate_similarity(b, a).
"""

from typing import Dict, FrozenSet, List, Set, Tuple

from rapidfuzz.distance import Levenshtein

from knowledge_service.services.text_normalizer import normalize, tokenize

# Interrogative markers, in detection order
QUESTION_MARKERS = (
    "apa", "bagaimana", "dimana", "kapan", "siapa", "kenapa", "mengapa", "berapa",
    "apakah", "bisakah", "dapatkah", "haruskah", "adakah",
)

MEDICAL_SYNONYMS: Dict[str, List[str]] = {
    "puskesmas": ["pusat kesehatan masyarakat", "puskes", "klinik desa", "klinik pemerintah"],
    "sakit": ["penyakit", "gangguan", "keluhan", "masalah kesehatan", "nyeri"],
    "obat": ["pengobatan", "terapi", "medikasi", "farmasi"],
    "dokter": ["medis", "tenaga medis", "petugas kesehatan"],
    "rumah sakit": ["rs", "hospital", "klinik besar"],
    "desa": ["kampung", "kelurahan", "wilayah"],
    "apa": ["apakah"],
    "dimana": ["dimanakah", "lokasi", "tempat", "berada"],
    "bagaimana": ["gimana", "cara"],
    "nyeri": ["sakit", "pusing", "perih"],
    "parah": ["hebat", "berat", "keras"],
    "anak": ["balita", "bocah", "kecil"],
    "demam": ["panas", "febris"],
}

# Component weights
LEXICAL_WEIGHT = 0.5
STRUCTURAL_WEIGHT = 0.2
SEMANTIC_WEIGHT = 0.3

# Token match scores
EXACT_MATCH_SCORE = 1.0
SYNONYM_MATCH_SCORE = 0.9
PARTIAL_MATCH_SCORE = 0.6
PARTIAL_MATCH_MIN_LENGTH = 4
FUZZY_MATCH_MIN_SIMILARITY = 0.7
FUZZY_MATCH_FACTOR = 0.5

# Structural scores
SAME_QUESTION_TYPE_SCORE = 0.8
DIFFERENT_STRUCTURE_SCORE = 0.3


def _build_synonym_groups() -> Dict[str, FrozenSet[int]]:
    groups: Dict[str, Set[int]] = {}
    for index, (key, synonyms) in enumerate(MEDICAL_SYNONYMS.items()):
        for term in [key, *synonyms]:
            groups.setdefault(term, set()).add(index)
    return {term: frozenset(ids) for term, ids in groups.items()}


_SYNONYM_GROUPS = _build_synonym_groups()


def levenshtein_similarity(text1: str, text2: str) -> float:
    """1 - edit distance / longer length. Two empty strings are identical."""
    return Levenshtein.normalized_similarity(text1, text2)


class SemanticSimilarityService:
    """Heuristic query-to-query similarity in [0, 1]."""

    def calculate_similarity(self, query1: str, query2: str) -> float:
        norm1 = normalize(query1)
        norm2 = normalize(query2)

        if norm1 == norm2:
            return 1.0

        tokens1 = tokenize(query1)
        tokens2 = tokenize(query2)

        # Too sparse for token-set comparison
        if len(tokens1) < 2 or len(tokens2) < 2:
            return levenshtein_similarity(norm1, norm2)

        set1 = set(tokens1)
        set2 = set(tokens2)

        lexical = self._lexical_similarity(set1, set2)
        structural = self._structural_similarity(query1, query2, norm1, norm2)
        semantic = self._semantic_similarity(set1, set2)

        total = (
            lexical * LEXICAL_WEIGHT
            + structural * STRUCTURAL_WEIGHT
            + semantic * SEMANTIC_WEIGHT
        )
        return min(total, 1.0)

    def find_similar_questions(
        self,
        target_query: str,
        existing_queries: List[str],
        threshold: float = 0.75
    ) -> List[Tuple[str, float]]:
        """
        Return (query, similarity) pairs at or above threshold, most similar first.
        """
        scored = [
            (query, self.calculate_similarity(target_query, query))
            for query in existing_queries
        ]
        similar = [(query, score) for query, score in scored if score >= threshold]
        similar.sort(key=lambda item: item[1], reverse=True)
        return similar

    def are_questions_equivalent(self, query1: str, query2: str, threshold: float = 0.8) -> bool:
        return self.calculate_similarity(query1, query2) >= threshold

    # Components

    @staticmethod
    def _lexical_similarity(set1: Set[str], set2: Set[str]) -> float:
        if not set1 or not set2:
            return 0.0
        return len(set1 & set2) / len(set1 | set2)

    def _structural_similarity(self, raw1: str, raw2: str, norm1: str, norm2: str) -> float:
        is_question1 = self._is_question(raw1, norm1)
        is_question2 = self._is_question(raw2, norm2)

        if is_question1 != is_question2:
            return DIFFERENT_STRUCTURE_SCORE

        if is_question1:
            type1 = self._question_type(norm1)
            if type1 is not None and type1 == self._question_type(norm2):
                return SAME_QUESTION_TYPE_SCORE

        return self._string_structure_similarity(norm1, norm2)

    def _semantic_similarity(self, set1: Set[str], set2: Set[str]) -> float:
        total_tokens = len(set1) + len(set2)
        if total_tokens == 0:
            return 0.0

        forward = sum(self._best_token_match(token, set2) for token in set1)
        backward = sum(self._best_token_match(token, set1) for token in set2)

        return min((forward + backward) / total_tokens, 1.0)

    # Helpers

    def _best_token_match(self, token: str, candidates: Set[str]) -> float:
        best = 0.0
        for candidate in candidates:
            best = max(best, self._token_match_score(token, candidate))
            if best == EXACT_MATCH_SCORE:
                break
        return best

    @staticmethod
    def _token_match_score(token1: str, token2: str) -> float:
        if token1 == token2:
            return EXACT_MATCH_SCORE

        if _SYNONYM_GROUPS.get(token1, frozenset()) & _SYNONYM_GROUPS.get(token2, frozenset()):
            return SYNONYM_MATCH_SCORE

        # Compound words, e.g. "kepala" in "sakitkepala"
        if min(len(token1), len(token2)) >= PARTIAL_MATCH_MIN_LENGTH and (
            token1 in token2 or token2 in token1
        ):
            return PARTIAL_MATCH_SCORE

        similarity = levenshtein_similarity(token1, token2)
        if similarity > FUZZY_MATCH_MIN_SIMILARITY:
            return similarity * FUZZY_MATCH_FACTOR

        return 0.0

    @staticmethod
    def _is_question(raw: str, normalized: str) -> bool:
        if "?" in raw:
            return True
        words = set(normalized.split())
        return any(marker in words for marker in QUESTION_MARKERS)

    @staticmethod
    def _question_type(normalized: str):
        words = set(normalized.split())
        for marker in QUESTION_MARKERS:
            if marker in words:
                return marker
        return None

    @staticmethod
    def _string_structure_similarity(text1: str, text2: str) -> float:
        longest = max(len(text1), len(text2))
        length_similarity = 1 - abs(len(text1) - len(text2)) / longest if longest else 1.0
        bigram_similarity = _ngram_similarity(text1, text2, 2)
        return length_similarity * 0.3 + bigram_similarity * 0.7


def _ngrams(text: str, n: int) -> Set[str]:
    return {text[i:i + n] for i in range(len(text) - n + 1)}


def _ngram_similarity(text1: str, text2: str, n: int) -> float:
    ngrams1 = _ngrams(text1, n)
    ngrams2 = _ngrams(text2, n)

    if not ngrams1 and not ngrams2:
        return 1.0
    if not ngrams1 or not ngrams2:
        return 0.0

    return len(ngrams1 & ngrams2) / len(ngrams1 | ngrams2)


semantic_similarity_service = SemanticSimilarityService()
