"""
Heuristic dialogue voice checks.

A stored voice descriptor ("terse, clipped", "formal, never uses
contractions") is mapped onto measurable traits of the dialogue lines:
average words per line and the share of lines using contractions.
"""

from __future__ import annotations

import re
from typing import Optional

from narrative_consistency.config import VoiceRules
from narrative_consistency.utils import normalize_text, tokenize

CONTRACTIONS = {
    "can't": "cannot",
    "won't": "will not",
    "don't": "do not",
    "doesn't": "does not",
    "didn't": "did not",
    "isn't": "is not",
    "aren't": "are not",
    "wasn't": "was not",
    "weren't": "were not",
    "haven't": "have not",
    "hasn't": "has not",
    "hadn't": "had not",
    "couldn't": "could not",
    "shouldn't": "should not",
    "wouldn't": "would not",
    "i'm": "I am",
    "i've": "I have",
    "i'll": "I will",
    "i'd": "I would",
    "you're": "you are",
    "you've": "you have",
    "you'll": "you will",
    "you'd": "you would",
    "we're": "we are",
    "we've": "we have",
    "we'll": "we will",
    "they're": "they are",
    "they've": "they have",
    "they'll": "they will",
    "he's": "he is",
    "she's": "she is",
    "he'll": "he will",
    "she'll": "she will",
    "it's": "it is",
    "that's": "that is",
    "there's": "there is",
    "what's": "what is",
    "let's": "let us",
}

_CONTRACTION_RE = re.compile(
    r"\b(" + "|".join(re.escape(c) for c in sorted(CONTRACTIONS, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)


def _matches_marker(descriptor: str, markers) -> bool:
    return any(
        re.search(r"\b" + re.escape(normalize_text(m)) + r"\b", descriptor)
        for m in markers
        if m
    )


def has_contraction(line: str) -> bool:
    return _CONTRACTION_RE.search(line.replace("’", "'")) is not None


def expand_contractions(line: str) -> str:
    """Replace contractions with their long forms, keeping leading capitals."""

    def _expand(match: re.Match) -> str:
        word = match.group(0)
        expanded = CONTRACTIONS[word.lower()]
        if word[0].isupper() and not expanded[0].isupper():
            expanded = expanded[0].upper() + expanded[1:]
        return expanded

    return _CONTRACTION_RE.sub(_expand, line.replace("’", "'"))


def voice_mismatch(descriptor: str, dialogue, rules: VoiceRules) -> Optional[str]:
    """Return the voice trait the dialogue breaks, or None.

    Traits are ``"terse"``, ``"verbose"`` and ``"formal"``.  Descriptors
    that mention none of the configured markers are never checked.
    """
    voice = normalize_text(descriptor)
    lines = [line for line in dialogue if line and line.strip()]
    if not voice or not lines:
        return None

    average = sum(len(tokenize(line)) for line in lines) / len(lines)
    if _matches_marker(voice, rules.short_markers) and average > rules.short_max_words:
        return "terse"
    if _matches_marker(voice, rules.long_markers) and average < rules.long_min_words:
        return "verbose"
    if _matches_marker(voice, rules.formal_markers):
        ratio = sum(1 for line in lines if has_contraction(line)) / len(lines)
        if ratio > rules.max_contraction_ratio:
            return "formal"
    return None
