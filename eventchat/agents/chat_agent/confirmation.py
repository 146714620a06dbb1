"""
Deterministic tier of the draft confirmation decision.

The user was asked "edit anything, or proceed?", so declining ("no", "nope") means
proceed. A proceed phrase under negation ("don't proceed") never proceeds.
Only messages that match none of these tokens go to the AI tier.
"""
import re
from typing import Literal

Decision = Literal["proceed", "edit", "cancel", "unclear"]

PROCEED = "proceed"
EDIT = "edit"
CANCEL = "cancel"
UNCLEAR = "unclear"

PROCEED_WORDS = frozenset({"yes", "y", "yeah", "yep", "yup", "ok", "okay", "k", "sure", "confirm",
                           "confirmed", "proceed", "correct", "done", "looks good", "all good"})
PROCEED_PHRASES = ("go ahead", "create it", "proceed", "confirm", "looks good", "save it")
NO_EDIT_PHRASES = ("no changes", "no change needed", "nothing to change", "no need", "no edits",
                   "dont change", "don't change", "do not change", "keep it")
NEGATIVE_WORDS = frozenset({"no", "nope", "nah", "n"})
NEGATIVE_PREFIXES = ("no ", "no.", "no,", "nope ", "nah ")
EDIT_WORDS = ("edit", "change", "modify", "update", "fix", "wrong", "correct the", "rename")
CANCEL_WORDS = frozenset({"cancel", "abort", "discard", "stop", "never mind", "nevermind", "forget it",
                          "cancel it"})
CANCEL_PHRASES = tuple(f"{neg} {verb}" for neg in ("don't", "dont", "do not")
                       for verb in ("create it", "save it", "proceed", "go ahead"))
REFUSAL_WORDS = frozenset({"don't", "dont", "never", "cannot", "can't"})
HESITATION_WORDS = frozenset({"not", "wait"})

_PUNCT = re.compile(r"[.,!?;:]")


def normalize_reply(message: str) -> str:
    return re.sub(r"\s+", " ", _PUNCT.sub("", (message or "").lower())).strip()


def is_negative(message: str) -> bool:
    """"no"-style replies, which mean "no edits, go ahead"."""
    raw = (message or "").strip().lower()
    text = normalize_reply(message)
    return text in NEGATIVE_WORDS or raw.startswith(NEGATIVE_PREFIXES)


def is_cancellation(message: str) -> bool:
    text = normalize_reply(message)
    return text in CANCEL_WORDS or any(p in text for p in CANCEL_PHRASES)


def is_refusal(message: str) -> bool:
    """Negated wording ("do not", "don't want", "never") anywhere in the reply."""
    text = normalize_reply(message)
    return bool(REFUSAL_WORDS.intersection(text.split())) or "do not" in text


def is_hesitant(message: str) -> bool:
    text = normalize_reply(message)
    return is_refusal(message) or bool(HESITATION_WORDS.intersection(text.split())) or "hold on" in text


def classify_confirmation(message: str) -> Decision:
    """First tier: exact token rules. Returns "unclear" when the AI tier must decide."""
    text = normalize_reply(message)
    if not text:
        return UNCLEAR
    if is_cancellation(message):
        return CANCEL
    if text in PROCEED_WORDS or text in NEGATIVE_WORDS:
        return PROCEED
    if any(p in text for p in NO_EDIT_PHRASES):
        return PROCEED
    words = text.split()
    if any(w in words or (" " in w and w in text) for w in EDIT_WORDS):
        return EDIT
    if text.startswith("yes ") or any(p in text for p in PROCEED_PHRASES):
        if is_refusal(message):
            return CANCEL
        if is_hesitant(message):
            return UNCLEAR
        return PROCEED
    if is_negative(message):
        return PROCEED
    return UNCLEAR


def safety_net(message: str) -> Decision:
    """Last tier after the AI: negatives (and a bare "not") still mean proceed."""
    text = normalize_reply(message)
    if is_negative(message) or text == "not":
        return PROCEED
    return UNCLEAR
