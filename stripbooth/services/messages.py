import random
from typing import Dict, Optional, Tuple

INSTRUCTIONS: Tuple[str, ...] = (
    "Strike a pose!",
    "Say cheese!",
    "Look fabulous!",
    "Show me your best smile!",
    "Let's capture this moment!",
    "Ready for your close-up?",
)

COMPLETION: Tuple[str, ...] = (
    "Perfect! You look amazing!",
    "Great shots!",
    "Fabulous photos!",
    "You're a natural!",
    "These turned out great!",
)

COUNTDOWN: Dict[int, str] = {
    3: "Get ready...",
    2: "Almost there...",
    1: "Say cheese!",
    0: "CLICK!",
}

FALLBACK_MESSAGE = "Let's take some photos!"

MESSAGES: Dict[str, Tuple[str, ...]] = {
    "instructions": INSTRUCTIONS,
    "completion": COMPLETION,
}


def message_at(kind: str, index: int) -> str:
    messages = MESSAGES.get(kind)
    if not messages:
        return FALLBACK_MESSAGE
    return messages[index % len(messages)]


def pick_message(kind: str = "instructions", rng: Optional[random.Random] = None) -> str:
    """Pick a prompt of the given kind using ``rng`` as the random source."""
    messages = MESSAGES.get(kind)
    if not messages:
        return FALLBACK_MESSAGE
    rng = rng or random.Random()
    return message_at(kind, rng.randrange(len(messages)))


def countdown_message(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return COUNTDOWN.get(value)
