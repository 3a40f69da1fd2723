"""Lightweight keyword and follow-up heuristics for conversation context.

The manager keeps one ``ConversationContext`` per conversation; chat surfaces
use it to prefix a query with what the conversation has been about.
"""

from typing import Optional

from pydantic import BaseModel, Field

_STOP_WORDS = frozenset({
    "the", "a", "an", "in", "on", "at", "to", "for", "of", "with", "is", "are",
    "was", "were", "how", "what", "where", "when", "why", "does", "do", "can",
    "show", "find", "explain", "tell", "me",
})

_FOLLOW_UP_INDICATORS = (
    "and", "also", "what about", "how about", "that", "this", "it", "show me",
    "explain more", "what else", "continue", "more", "further", "additionally",
)

MAX_KEYWORDS = 5
MAX_TOPICS = 10


def extract_keywords(query: str) -> list[str]:
    words = query.lower().split()
    return [w for w in words if len(w) > 3 and w not in _STOP_WORDS][:MAX_KEYWORDS]


def is_follow_up_question(query: str) -> bool:
    # Substring match on purpose: "it" inside "split" counts.
    lowered = query.lower()
    return any(indicator in lowered for indicator in _FOLLOW_UP_INDICATORS)


class ConversationContext(BaseModel):
    files_discussed: list[str] = Field(default_factory=list)
    functions_discussed: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    last_query: str = ""
    workspace: Optional[str] = None

    def update_from_query(
        self,
        query: str,
        files: Optional[list[str]] = None,
        functions: Optional[list[str]] = None,
    ) -> None:
        for path in files or []:
            if path not in self.files_discussed:
                self.files_discussed.append(path)
        for name in functions or []:
            if name not in self.functions_discussed:
                self.functions_discussed.append(name)
        for keyword in extract_keywords(query):
            if keyword not in self.topics:
                self.topics.append(keyword)
        self.topics = self.topics[-MAX_TOPICS:]
        self.last_query = query

    def build_contextual_query(self, query: str) -> str:
        parts = []
        if self.files_discussed:
            parts.append(f"Context: We're discussing {', '.join(self.files_discussed[-3:])}.")
        if self.functions_discussed:
            parts.append(f"Functions: {', '.join(self.functions_discussed[-3:])}.")
        if self.topics:
            parts.append(f"Recent topics: {', '.join(self.topics[-3:])}.")
        if self.last_query and is_follow_up_question(query):
            parts.append(f'Previous question: "{self.last_query}".')

        if not parts:
            return query
        return f"{' '.join(parts)}\n\nCurrent question: {query}"

    def clear(self) -> None:
        self.files_discussed = []
        self.functions_discussed = []
        self.topics = []
        self.last_query = ""
