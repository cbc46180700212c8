import json
import logging
from pathlib import Path

from prepai.questions.models import QuestionDefinition

logger = logging.getLogger("prepai.questions.bank")

DEFAULT_BANK_PATH = Path(__file__).resolve().parents[1] / "data" / "question_bank.json"


def load_question_bank(path: str | Path | None = None) -> list[QuestionDefinition]:
    bank_path = Path(path) if path else DEFAULT_BANK_PATH
    payload = json.loads(bank_path.read_text(encoding="utf-8"))
    rows = payload.get("questions") if isinstance(payload, dict) else payload
    if not isinstance(rows, list):
        raise ValueError(f"question bank {bank_path} must be a list or an object with a 'questions' list")

    questions: list[QuestionDefinition] = []
    seen: set[str] = set()
    for row in rows:
        if not isinstance(row, dict):
            continue
        question = QuestionDefinition.from_dict(row)
        if question.question_id in seen:
            raise ValueError(f"duplicate question_id {question.question_id} in {bank_path}")
        seen.add(question.question_id)
        questions.append(question)
    return questions


async def seed_question_bank(store, path: str | Path | None = None) -> int:
    questions = load_question_bank(path)
    for question in questions:
        await store.add_question(question)
    logger.info("seeded question bank count=%s source=%s", len(questions), path or DEFAULT_BANK_PATH)
    return len(questions)
