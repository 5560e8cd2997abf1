"""Language classification for submitted snippets.

Turns raw assistant text, optionally wrapped in a fenced code block, into a
CodeSubmission carrying the cleaned code and the language it will run as.
Classification is a pure function of its input: the fence tag wins when it
names a supported language, otherwise content heuristics decide, and every
ambiguous case resolves to JavaScript.
"""

from __future__ import annotations

import re

from snippet_sandbox.core.models import CodeSubmission, Language

# Opening fence: optional indentation, ``` and an optional word tag up to end of
# line. Tags such as "c++" do not open a fence; the text is classified as is.
_FENCE_OPEN = re.compile(r"^\s*```(\w*)[ \t]*\r?\n")

LANGUAGE_ALIASES: dict[str, Language] = {
    "python": Language.PYTHON,
    "py": Language.PYTHON,
    "javascript": Language.JAVASCRIPT,
    "js": Language.JAVASCRIPT,
    "typescript": Language.TYPESCRIPT,
    "ts": Language.TYPESCRIPT,
}

_PYTHON_MARKERS = (
    "def ",
    "import ",
    "print(",
    'if __name__ == "__main__"',
    "if __name__ == '__main__'",
)

_TYPESCRIPT_MARKERS = (
    ": string",
    ": number",
    ": boolean",
    "interface ",
    "type ",
)


def canonical_language(tag: str | None) -> Language | None:
    """Map a fence tag or language name to a Language, case-insensitively.

    Returns None for empty or unrecognized tags.
    """
    if not tag:
        return None
    return LANGUAGE_ALIASES.get(tag.strip().lower())


def detect_language(content: str) -> Language:
    """Infer the language of unfenced code from its content.

    Checks run in order and the first match wins: Python markers, then
    TypeScript markers (type annotations, interface/type declarations, or
    angle brackets together with ``extends``), then JavaScript as default.
    """
    if any(marker in content for marker in _PYTHON_MARKERS):
        return Language.PYTHON

    if any(marker in content for marker in _TYPESCRIPT_MARKERS):
        return Language.TYPESCRIPT
    if "<" in content and ">" in content and "extends" in content:
        return Language.TYPESCRIPT

    return Language.JAVASCRIPT


def strip_fence(raw: str) -> tuple[str | None, str] | None:
    """Split a fenced block into its tag and body.

    Returns None when the text does not open with a fence. Otherwise the
    first and last lines are dropped; a single trailing newline after the
    closing fence is tolerated.

    Returns:
        Tuple of (lower-cased tag or None, body text), or None
    """
    match = _FENCE_OPEN.match(raw)
    if match is None:
        return None

    tag = match.group(1).strip().lower() or None

    lines = raw.split("\n")
    if len(lines) > 2 and lines[-1] == "":
        lines.pop()
    body = "\n".join(lines[1:-1])
    return tag, body


def classify(raw: str) -> CodeSubmission:
    """Classify raw snippet text into a CodeSubmission.

    Args:
        raw: Text as produced by the assistant, fenced or not

    Returns:
        CodeSubmission with cleaned code, declared tag and inferred language

    Examples:
        >>> classify("```py\\nprint(1)\\n```").inferred_language
        <Language.PYTHON: 'python'>
        >>> classify("console.log(1)").inferred_language
        <Language.JAVASCRIPT: 'javascript'>
    """
    fenced = strip_fence(raw)
    if fenced is None:
        return CodeSubmission(
            raw_content=raw,
            cleaned_code=raw,
            declared_language=None,
            inferred_language=detect_language(raw),
        )

    tag, body = fenced
    language = canonical_language(tag)
    if language is None:
        language = detect_language(body)

    return CodeSubmission(
        raw_content=raw,
        cleaned_code=body,
        declared_language=tag,
        inferred_language=language,
    )
