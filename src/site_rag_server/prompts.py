"""
Prompt templates and prompt assembly for the ask pipeline.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .config import settings
from .db.vector_store import RetrievedMatch
from .llm.client import InlineDataPart, Part, TextPart

NO_MATCH_TEXT = (
    "I couldn't find relevant information in the website content to answer "
    "your question. Could you try rephrasing or asking something else?"
)

CONTEXT_SEPARATOR = "\n\n---\n\n"


def rag_system_prompt(bot_name: Optional[str] = None) -> str:
    name = bot_name or settings.bot_name
    return f"""You are {name}, a helpful AI assistant that answers questions using website content.

Your role:
- Answer questions based on the context provided below
- Be conversational, friendly, and helpful
- If the exact answer isn't in the context but related information is, provide what you can
- If you truly cannot answer from the context, say "I don't have enough information about that in the website content"
- Cite sources naturally in your response (e.g., "According to [Source 1]...")
- For general questions about yourself, you can answer without needing website context"""


def identity_prompt(message: str, bot_name: Optional[str] = None) -> str:
    name = bot_name or settings.bot_name
    return (
        f"You are {name}, a helpful AI assistant. "
        f'Answer this question naturally and conversationally: "{message}"'
    )


def format_context(
    matches: Sequence[RetrievedMatch],
    excerpt_chars: int = 1000,
) -> str:
    """
    Number each match and cap its excerpt:

        [Source 1: https://example.com/a]
        first 1000 characters...
    """
    return CONTEXT_SEPARATOR.join(
        f"[Source {i}: {m.url}]\n{m.content[:excerpt_chars]}"
        for i, m in enumerate(matches, start=1)
    )


def build_rag_parts(
    question: str,
    matches: Sequence[RetrievedMatch],
    excerpt_chars: int = 1000,
    image: Optional[InlineDataPart] = None,
    bot_name: Optional[str] = None,
) -> List[Part]:
    """
    Assemble the grounded multi-part prompt: system instruction, context
    block with the question, and the attached image if any.
    """
    user_prompt = (
        f"Context from website:\n\n{format_context(matches, excerpt_chars)}"
        f"\n\nUser question: {question}"
        "\n\nProvide a helpful answer using the context above."
    )

    parts: List[Part] = [
        TextPart(rag_system_prompt(bot_name)),
        TextPart(user_prompt),
    ]
    if image is not None:
        parts.append(image)
    return parts
