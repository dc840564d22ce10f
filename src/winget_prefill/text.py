"""Text cleanup for descriptions and release notes.

Manifest text fields are rendered one sentence per line. A sentence starts
with a capital letter followed by a lowercase one and ends with ``.``,
``:``, ``!`` or ``?`` that is followed by the end of the text or by a space
and another capital letter.

Release notes come from markdown release bodies, so they are also reduced
to plain headings and ``- `` bullets.
"""

from __future__ import annotations

import re

SENTENCE = re.compile(r"([A-Z][a-z].*?[.:!?](?=$| [A-Z]))")

_DETAILS = re.compile(r"<details>.*?</details>", re.DOTALL | re.IGNORECASE)
_STRIKETHROUGH = re.compile(r"~+([^~]+)~+")
_EMPHASIS = re.compile(r"\*+([^*]+)\*+")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")

BULLET = "- "


def split_sentences(text: str, separator: str = "\n") -> str:
    """Append ``separator`` after every sentence in ``text``."""
    return SENTENCE.sub(lambda match: match.group(1) + separator, text)


def format_description(text: str) -> str:
    """Put each sentence of a description on its own trimmed line.

    >>> format_description("Full description. It has more. Done!")
    'Full description.\\nIt has more.\\nDone!'
    """
    lines = split_sentences(text).strip().splitlines()
    return "\n".join(line.strip() for line in lines)


def strip_markdown(line: str) -> str:
    """Reduce one markdown line to plain text.

    ``* `` bullets become ``- ``; strikethrough, emphasis, backticks and
    link targets are removed.
    """
    line = line.strip()
    if line.startswith("* "):
        line = line.replace("* ", BULLET, 1)
    line = _STRIKETHROUGH.sub(r"\1", line)
    line = _EMPHASIS.sub(r"\1", line)
    line = line.replace("`", "")
    return _LINK.sub(r"\1", line)


def format_release_notes(body: str | None) -> str | None:
    """Convert a markdown release body into manifest release notes.

    Only headings and bullet points are kept. A heading is kept when a
    bullet follows within the next two lines. Multi-sentence bullets are
    split so that each further sentence starts on an indented line.

    Args:
        body: The raw release body

    Returns:
        The formatted notes, or None if nothing is left
    """
    if body is None:
        return None

    lines = [strip_markdown(line) for line in _DETAILS.sub("", body).splitlines()]
    kept: list[str] = []
    for index, line in enumerate(lines):
        if line.startswith("#"):
            following = lines[index + 1 : index + 3]
            if any(candidate.startswith(BULLET) for candidate in following):
                heading = line.lstrip("#").strip()
                if heading:
                    kept.append(heading)
        elif line.startswith(BULLET):
            sentences = split_sentences(line, "\n ")
            kept.append(BULLET + sentences[len(BULLET) :].strip())

    notes = "\n".join(kept).strip()
    return notes or None
