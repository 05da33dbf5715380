"""Text and contact similarity shared by the duplicate detectors."""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Final

from realty_corridor.models.catalog import Listing

# Listing descriptions are Russian-language; these words carry no identity.
STOP_WORDS: Final = frozenset(
    {
        "в", "на", "с", "по", "из", "от", "до", "для", "при", "без", "под", "над",
        "через", "о", "об", "про", "за", "к", "у", "и", "или", "но", "да", "не",
        "ни", "же", "ли", "квартира", "комната", "дом", "продам", "продается",
        "продаю", "срочно", "недорого", "цена", "стоимость", "рублей", "руб",
        "тысяч", "млн", "миллион", "тыс",
    }
)

_NON_WORD = re.compile(r"[^\w\s]")
_DIGITS = re.compile(r"\d+")
_PHONE = re.compile(r"[+7|8]?[\s\-()]?[\d\s\-()]{10,}")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")
_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

TEXT_COSINE_WEIGHT: Final = 0.7
TEXT_JACCARD_WEIGHT: Final = 0.3


def tokenize(text: str | None) -> list[str]:
    """Lowercase, blank out punctuation, fold numbers to NUM, drop short/stop words."""

    if not text:
        return []
    cleaned = _DIGITS.sub("NUM", _NON_WORD.sub(" ", text.lower()))
    return [
        word for word in cleaned.split() if len(word) > 2 and word not in STOP_WORDS
    ]


def tfidf_cosine(tokens1: list[str], tokens2: list[str]) -> float:
    """Cosine similarity of TF-IDF vectors computed over the two documents.

    IDF is ``log(N / (df + 1))`` with N = 2, so only words shared by both
    documents carry weight.
    """

    if not tokens1 or not tokens2:
        return 0.0

    docs = (Counter(tokens1), Counter(tokens2))
    vocabulary = set(docs[0]) | set(docs[1])
    idf = {
        word: math.log(len(docs) / (sum(1 for doc in docs if word in doc) + 1))
        for word in vocabulary
    }
    vectors = [
        {word: doc[word] / sum(doc.values()) * idf[word] for word in vocabulary}
        for doc in docs
    ]

    dot = sum(vectors[0][word] * vectors[1][word] for word in vocabulary)
    norm1 = math.sqrt(sum(value * value for value in vectors[0].values()))
    norm2 = math.sqrt(sum(value * value for value in vectors[1].values()))
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return dot / (norm1 * norm2)


def jaccard(tokens1: list[str], tokens2: list[str]) -> float:
    words1, words2 = set(tokens1), set(tokens2)
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


@dataclass(slots=True)
class TextSimilarity:
    cosine: float
    jaccard: float

    @property
    def combined(self) -> float:
        return self.cosine * TEXT_COSINE_WEIGHT + self.jaccard * TEXT_JACCARD_WEIGHT


def text_similarity(text1: str | None, text2: str | None) -> TextSimilarity:
    tokens1, tokens2 = tokenize(text1), tokenize(text2)
    if not tokens1 or not tokens2:
        return TextSimilarity(cosine=0.0, jaccard=0.0)
    return TextSimilarity(
        cosine=tfidf_cosine(tokens1, tokens2), jaccard=jaccard(tokens1, tokens2)
    )


def normalize_phone(raw: str) -> str:
    digits = _PHONE_SEPARATORS.sub("", raw)
    return re.sub(r"^\+?7", "8", digits)


@dataclass(slots=True)
class ContactInfo:
    phones: set[str] = field(default_factory=set)
    emails: set[str] = field(default_factory=set)
    seller_name: str | None = None


def extract_contacts(listing: Listing) -> ContactInfo:
    """Phones and emails found in the description, seller name and phone fields."""

    text = " ".join(
        part for part in (listing.description, listing.seller_name, listing.phone) if part
    )
    phones = {
        phone
        for phone in (normalize_phone(match) for match in _PHONE.findall(text))
        if len(phone) >= 10
    }
    emails = {email.lower() for email in _EMAIL.findall(text)}
    name = (listing.seller_name or "").strip().lower() or None
    return ContactInfo(phones=phones, emails=emails, seller_name=name)


def contact_similarity(first: ContactInfo, second: ContactInfo) -> float:
    """1.0 when any phone, email or seller name matches, else 0.0."""

    if first.phones & second.phones:
        return 1.0
    if first.emails & second.emails:
        return 1.0
    if first.seller_name and first.seller_name == second.seller_name:
        return 1.0
    return 0.0
