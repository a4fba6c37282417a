"""
Fast-path query classification.

Greetings, thanks, farewells and small talk are answered from a fixed pool
of replies without touching retrieval or the model. Questions about the
assistant itself are answered by the model without retrieval.
"""

from __future__ import annotations

import random
import re
from enum import Enum
from typing import Dict, List, Optional, Tuple


class QueryCategory(str, Enum):
    GREETING = "greeting"
    THANKS = "thanks"
    FAREWELL = "farewell"
    SMALL_TALK = "smalltalk"
    IDENTITY = "identity"
    INFORMATIONAL = "informational"

    @property
    def is_chitchat(self) -> bool:
        return self in CHITCHAT_CATEGORIES


CHITCHAT_CATEGORIES = frozenset(
    {
        QueryCategory.GREETING,
        QueryCategory.THANKS,
        QueryCategory.FAREWELL,
        QueryCategory.SMALL_TALK,
    }
)

GREETINGS: Tuple[str, ...] = (
    "hi", "hello", "hey", "greetings", "good morning", "good afternoon",
    "good evening", "howdy", "sup", "yo", "what's up", "whats up",
)

THANKS: Tuple[str, ...] = (
    "thank you", "thanks", "thx", "thank u", "ty", "appreciated",
    "appreciate it", "many thanks",
)

FAREWELLS: Tuple[str, ...] = (
    "bye", "goodbye", "see you", "see ya", "later", "farewell",
    "take care", "have a good day",
)

SMALL_TALK: Tuple[str, ...] = (
    "how are you", "how r u", "how are u",
    "how is your day", "how's your day", "hows your day",
    "how is the day", "how's the day", "hows the day",
    "how's it going", "hows it going", "how is it going",
    "how've you been", "how have you been",
    "what's new", "whats new",
    "how do you do",
    "how are things",
    "how are you doing",
)

IDENTITY_PATTERNS: Tuple[str, ...] = (
    "who are you",
    "what are you",
    "what is your name",
    "what's your name",
    "who made you",
    "who created you",
    "what can you do",
    "what do you do",
    "tell me about yourself",
    "introduce yourself",
    "your name",
    "your purpose",
    "what is hive bot",
    "who is hive bot",
)

CHITCHAT_RESPONSES: Dict[QueryCategory, List[str]] = {
    QueryCategory.GREETING: [
        "Hey there! 👋 How can I help you today?",
        "Hi! 👋 What can I assist you with?",
        "Hello! 👋 I'm here to help. What would you like to know?",
    ],
    QueryCategory.THANKS: [
        "You're welcome! 😊 Let me know if you need anything else.",
        "Happy to help! Feel free to ask if you have more questions.",
        "Anytime! I'm here if you need more information.",
    ],
    QueryCategory.FAREWELL: [
        "Goodbye! Feel free to come back anytime. 👋",
        "Take care! Let me know if you need help later.",
        "See you! Don't hesitate to reach out if you have questions. 👋",
    ],
    QueryCategory.SMALL_TALK: [
        "I'm doing great, thanks for asking! 😊 How can I help you with information from the website today?",
        "I'm here and ready to help! Is there anything specific you'd like to know about?",
        "All good here! I'm ready to answer your questions. What would you like to know?",
        "Doing well, thank you! What brings you here today? I'm happy to help with any questions.",
    ],
}

# Punctuation other than apostrophes becomes whitespace
_PUNCTUATION = re.compile(r"[^\w\s']")
_WHITESPACE = re.compile(r"\s+")


def normalize(message: str) -> str:
    text = _PUNCTUATION.sub(" ", message.lower())
    return _WHITESPACE.sub(" ", text).strip()


def _contains_phrase(text: str, phrases: Tuple[str, ...]) -> bool:
    # Whole-word match so "ty" does not fire inside "city"
    return any(re.search(rf"\b{re.escape(p)}\b", text) for p in phrases)


def classify_message(message: str) -> QueryCategory:
    """
    Categorize a user message.

    Greetings must open the message; the other phrase sets match anywhere
    on word boundaries. Checked in order: greeting, thanks, farewell, small
    talk, identity.
    """
    text = normalize(message)
    if not text:
        return QueryCategory.INFORMATIONAL

    if any(text == g or text.startswith(g + " ") for g in GREETINGS):
        return QueryCategory.GREETING
    if _contains_phrase(text, THANKS):
        return QueryCategory.THANKS
    if _contains_phrase(text, FAREWELLS):
        return QueryCategory.FAREWELL
    if _contains_phrase(text, SMALL_TALK):
        return QueryCategory.SMALL_TALK
    if _contains_phrase(text, IDENTITY_PATTERNS):
        return QueryCategory.IDENTITY

    return QueryCategory.INFORMATIONAL


def chitchat_response(
    category: QueryCategory,
    rng: Optional[random.Random] = None,
) -> str:
    """Pick a canned reply; unknown categories fall back to a greeting."""
    options = CHITCHAT_RESPONSES.get(category) or CHITCHAT_RESPONSES[QueryCategory.GREETING]
    return (rng or random).choice(options)
