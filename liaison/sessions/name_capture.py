"""Best-effort capture of a visitor's name from a short chat reply.

Operators usually ask "who am I talking to?" right after joining, and the
visitor answers with something like "I'm Anna" or just "anna rossi".
"""

import re

MAX_LENGTH = 50

# Any of these words means the reply is conversation, not a name
CONVERSATION_WORDS: frozenset[str] = frozenset({
    "hi", "hello", "hey", "thanks", "thank", "please", "help", "problem",
    "issue", "error", "working", "how", "what", "when", "where", "why", "who",
    "need", "want", "would", "like", "can", "could", "yes", "no", "ok", "okay",
    "sure", "still", "here", "there", "the", "a", "is", "it", "fine", "good",
    "great", "back", "done", "sorry", "busy", "ready", "not", "just", "me",
    "you", "my", "i",
})

_LETTERS = r"[^\W\d_]"
_INTRO_PATTERN = re.compile(
    rf"^(?:my name is|my name's|i am|i'm|im|this is|call me|it's)\s+"
    rf"({_LETTERS}+(?:[\s'-]{_LETTERS}+){{0,2}})[.!]?$",
    re.IGNORECASE,
)
_BARE_NAME_PATTERN = re.compile(rf"^({_LETTERS}+(?:\s+{_LETTERS}+){{0,2}})[.!]?$")


_WORD = re.compile(rf"{_LETTERS}+")


def _title(name: str) -> str:
    # Capitalizes each part of "jean-luc" and "o'brien" too
    return _WORD.sub(
        lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(),
        " ".join(name.split()),
    )


def extract_user_name(content: str | None) -> str | None:
    """Return a capitalized name if ``content`` looks like one, else None.

    >>> extract_user_name("my name is anna rossi")
    'Anna Rossi'
    >>> extract_user_name("how do I reset my password?") is None
    True
    """
    if not content:
        return None

    text = content.strip()
    if not text or len(text) > MAX_LENGTH:
        return None

    match = _INTRO_PATTERN.match(text)
    if match:
        candidate = match.group(1)
    else:
        match = _BARE_NAME_PATTERN.match(text)
        if not match:
            return None
        candidate = match.group(1)

    words = {w.lower() for w in re.split(r"[\s'-]+", candidate) if w}
    if words & CONVERSATION_WORDS:
        return None
    return _title(candidate)
