"""Built-in content: goals, default intentions, fallback lines and seed templates."""
from __future__ import annotations

from typing import Dict, List, Tuple

GOALS: Tuple[str, ...] = ("sleep", "focus", "calm", "manifest")

DEFAULT_INTENTIONS: Dict[str, str] = {
    "sleep": "I want to release the day and welcome deep, restorative rest",
    "focus": "I want to sharpen my focus and complete my tasks with clarity and purpose",
    "calm": "I want to find peace and center myself in the present moment",
    "manifest": "I want to create and receive the abundance and success I'm working toward",
}

# Served when generation is unavailable; also seeded into the pool.
FALLBACK_LINES: Dict[str, List[str]] = {
    "sleep": [
        "I am safe and ready to rest",
        "My body knows how to relax deeply",
        "I deserve peaceful and restorative sleep",
        "My mind is calm and quiet",
        "I release all tension from my day",
        "I trust my body to restore itself",
        "My breath slows and softens with every exhale",
        "I let tomorrow wait until morning",
        "I am done for today, and that is enough",
        "My thoughts drift away like passing clouds",
    ],
    "focus": [
        "I am focused and in control",
        "My mind is clear and sharp",
        "I accomplish tasks with ease and confidence",
        "I am capable of great things",
        "My energy flows toward my goals",
        "I work with purpose and clarity",
        "I give this one task my full attention",
        "My next step is small and clear",
        "I return to my work each time I drift",
        "I finish what I start today",
    ],
    "calm": [
        "I am at peace with this moment",
        "My breath brings me back to center",
        "I am safe and supported right now",
        "I release what I cannot control",
        "My heart is open and at ease",
        "I trust the journey I am on",
        "I notice my shoulders soften",
        "My feet are grounded and steady",
        "I meet this moment with patience",
        "I am allowed to slow down",
    ],
    "manifest": [
        "I am a powerful creator of my reality",
        "My dreams are becoming my reality now",
        "I attract abundance with ease and joy",
        "My goals are aligning perfectly for me",
        "I am worthy of all I desire",
        "My success is inevitable and natural",
        "I take inspired action every day",
        "My work creates real value for others",
        "I welcome new opportunities with open arms",
        "I am ready to receive what I am building",
    ],
}

# Tags applied to fallback lines when they are seeded into the pool.
FALLBACK_TAGS: Dict[str, List[str]] = {
    "sleep": ["rest", "sleep", "relaxation", "release"],
    "focus": ["focus", "clarity", "productivity", "discipline"],
    "calm": ["peace", "calm", "grounding", "presence"],
    "manifest": ["abundance", "success", "confidence", "worthiness"],
}

# Seed templates: (goal, title, intent, indexes into FALLBACK_LINES[goal])
SEED_TEMPLATES: List[Tuple[str, str, str, List[int]]] = [
    ("sleep", "Restful Release", DEFAULT_INTENTIONS["sleep"], [0, 1, 2, 3, 4, 5]),
    ("focus", "Clear Work Session", DEFAULT_INTENTIONS["focus"], [0, 1, 2, 5, 6, 7]),
    ("calm", "Present Moment", DEFAULT_INTENTIONS["calm"], [0, 1, 2, 3, 6, 7]),
    ("manifest", "Receiving Abundance", DEFAULT_INTENTIONS["manifest"], [0, 1, 2, 4, 6, 9]),
]


def default_intention(goal: str) -> str:
    return DEFAULT_INTENTIONS.get(goal, DEFAULT_INTENTIONS["calm"])


def fallback_lines(goal: str) -> List[str]:
    return list(FALLBACK_LINES.get(goal, FALLBACK_LINES["calm"]))
