"""
Clean-up of free-text host lines.

Gemini occasionally wraps a host line in formatting the team should never see:
a role label ("Host:", "**Host:**", "HOST -"), surrounding quotes or a code
fence. Each artifact has one pattern below; they are applied in order until the
text stops changing.
"""
import re

CODE_FENCE = re.compile(r"```[a-zA-Z]*\n?|```\n?")

ROLE_LABEL = re.compile(
    r"^(?:\*\*|__)?\s*(?:the\s+)?host(?:\s+says|\s+said)?\s*(?:\*\*|__)?"
    r"(?::|\s+[-–—])\s*(?:\*\*|__)?\s*",
    flags=re.IGNORECASE,
)

QUOTE_PAIRS = (
    ('"', '"'),
    ("'", "'"),
    ("“", "”"),
    ("‘", "’"),
)


def strip_code_fences(text: str) -> str:
    return CODE_FENCE.sub("", text)


def strip_role_label(text: str) -> str:
    return ROLE_LABEL.sub("", text, count=1)


def strip_surrounding_quotes(text: str) -> str:
    for opening, closing in QUOTE_PAIRS:
        if len(text) >= 2 and text.startswith(opening) and text.endswith(closing):
            inner = text[len(opening):-len(closing)]
            # two separate quoted phrases, not one wrapped line
            if opening in inner or closing in inner:
                return text
            return inner
    return text


HOST_LINE_STEPS = (
    strip_code_fences,
    str.strip,
    strip_role_label,
    strip_surrounding_quotes,
    str.strip,
)


def normalize_host_line(text: str | None) -> str:
    """
    Returns the host line without role labels, wrapping quotes, code fences or
    surrounding whitespace. Quotes inside the sentence are kept.
    """
    current = text or ""
    while True:
        previous = current
        for step in HOST_LINE_STEPS:
            current = step(current)
        if current == previous:
            return current
