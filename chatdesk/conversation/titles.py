from ..config import DEFAULT_TITLE

ELLIPSIS = "..."


def auto_title(first_message: str, max_words: int = 6, default: str = DEFAULT_TITLE) -> str:
    """Build a display title from the leading words of a message."""
    words = first_message.split()
    title = " ".join(words[:max_words])
    if len(words) > max_words:
        title += ELLIPSIS
    return title or default
