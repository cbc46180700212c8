from __future__ import annotations

from typing import Any

from prepai.core.state import Difficulty, SessionVariant

CATEGORY_INFO = {
    "technical": ("Technical", "Coding, algorithms, and system design questions"),
    "behavioral": ("Behavioral", "STAR method, leadership, and teamwork scenarios"),
    "communication": ("Communication Skills", "Presentation, public speaking, and articulation"),
    "domain_specific": ("Domain Specific", "Industry-specific questions and scenarios"),
    "programming": ("Programming Fundamentals", "Basic programming concepts and syntax"),
    "databases": ("Databases", "SQL, NoSQL, and database design"),
    "algorithms": ("Algorithms", "Sorting, searching, and dynamic programming"),
    "networking": ("Networking", "Protocols, addressing, and how requests travel"),
}

VARIANT_CATEGORIES = {
    SessionVariant.INTERVIEW: ("technical", "behavioral", "communication", "domain_specific"),
    SessionVariant.TEST: ("programming", "databases", "algorithms", "networking", "technical"),
}


async def list_categories(store, variant: SessionVariant | str) -> list[dict[str, Any]]:
    """Categories offered for a variant, with live question counts per difficulty."""
    pools = await store.question_pools()
    rows = []
    for category in VARIANT_CATEGORIES[SessionVariant(variant)]:
        name, description = CATEGORY_INFO[category]
        counts = {difficulty.value: pools.get((category, difficulty.value), 0) for difficulty in Difficulty}
        rows.append({
            "id": category,
            "name": name,
            "description": description,
            "question_counts": counts,
            "total_questions": sum(counts.values()),
            "available": any(counts.values()),
        })
    return rows
