import random

from stripbooth.services.messages import (
    COMPLETION, FALLBACK_MESSAGE, INSTRUCTIONS, countdown_message, message_at, pick_message
)


def test_pick_message_is_reproducible_with_seeded_random():
    first = [pick_message("instructions", random.Random(42)) for _ in range(3)]
    second = [pick_message("instructions", random.Random(42)) for _ in range(3)]
    assert first == second
    assert first[0] in INSTRUCTIONS


def test_pick_message_uses_given_random_source():
    rng = random.Random(3)
    expected = COMPLETION[random.Random(3).randrange(len(COMPLETION))]
    assert pick_message("completion", rng) == expected


def test_message_at_wraps_around():
    assert message_at("instructions", 0) == INSTRUCTIONS[0]
    assert message_at("instructions", len(INSTRUCTIONS)) == INSTRUCTIONS[0]


def test_unknown_kind_falls_back():
    assert pick_message("nonsense") == FALLBACK_MESSAGE
    assert message_at("nonsense", 2) == FALLBACK_MESSAGE


def test_countdown_message():
    assert countdown_message(3) == "Get ready..."
    assert countdown_message(0) == "CLICK!"
    assert countdown_message(None) is None
    assert countdown_message(9) is None
