import re

from prepai.core.numeric import clamp, round_half_up

TECHNICAL_TERMS = ("algorithm", "data structure", "optimization", "complexity", "implementation")
EXPLANATORY_CONNECTIVES = ("because", "therefore")

# (question verb, answer predicate, bonus)
COMPLETENESS_PAIRINGS = (
    ("explain", lambda answer: len(answer) > 100, 15),
    ("describe", lambda answer: "step" in answer.lower(), 15),
    ("compare", lambda answer: "vs" in answer.lower(), 15),
)


def keyword_variations(keyword: str) -> list[str]:
    base = str(keyword or "").strip().lower()
    if not base:
        return []
    variations = [base]
    if re.search(r"\s", base):
        variations.append(re.sub(r"\s+", "", base))
    if base.endswith("s"):
        variations.append(base[:-1])
    else:
        variations.append(base + "s")
    return variations


def contains_keyword(answer: str, keyword: str) -> bool:
    text = str(answer or "").lower()
    return any(variation and variation in text for variation in keyword_variations(keyword))


def split_keywords(answer: str, keywords: list[str] | tuple[str, ...]) -> tuple[list[str], list[str]]:
    matched: list[str] = []
    missed: list[str] = []
    for keyword in keywords or []:
        if contains_keyword(answer, keyword):
            matched.append(keyword)
        else:
            missed.append(keyword)
    return matched, missed


def keyword_score(matched_count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return (matched_count / total) * 100.0


def clarity_score(answer: str) -> float:
    text = str(answer or "")
    lowered = text.lower()
    score = 50.0

    if len(text) > 100:
        score += 20
    elif len(text) > 50:
        score += 10

    if "." in text or "!" in text or "?" in text:
        score += 10
    if "," in text:
        score += 5
    if any(word in lowered for word in EXPLANATORY_CONNECTIVES):
        score += 10

    score += 5 * sum(1 for term in TECHNICAL_TERMS if term in lowered)
    return min(100.0, score)


def completeness_score(answer: str, question: str) -> float:
    text = str(answer or "")
    prompt = str(question or "").lower()
    score = 50.0

    question_words = max(1, len(prompt.split()))
    ratio = len(text.split()) / question_words
    if ratio > 2:
        score += 20
    elif ratio > 1:
        score += 10

    for verb, predicate, bonus in COMPLETENESS_PAIRINGS:
        if verb in prompt and predicate(text):
            score += bonus

    return min(100.0, score)


def salient_terms(question: str) -> list[str]:
    cleaned = re.sub(r"[^\w\s]", "", str(question or "").lower())
    return [term for term in cleaned.split() if len(term) > 3]


def relevance_score(answer: str, question: str) -> float:
    terms = salient_terms(question)
    if not terms:
        return 50.0
    lowered = str(answer or "").lower()
    addressed = sum(1 for term in terms if term in lowered)
    return min(100.0, 50.0 + (addressed / len(terms)) * 30.0)


def overall_score(keyword: float, clarity: float, completeness: float, relevance: float) -> int:
    weighted = (keyword * 0.4) + (clarity * 0.3) + (completeness * 0.2) + (relevance * 0.1)
    return int(clamp(round_half_up(weighted)))


def confidence_level(score: float, answer_length: int) -> int:
    confidence = float(score)
    if answer_length > 200:
        confidence += 10
    elif answer_length < 50:
        confidence -= 20
    return int(clamp(round_half_up(confidence)))
