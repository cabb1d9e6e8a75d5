"""Parse quizzes written in the plain-text authoring format.

Questions are separated by a blank line or a ``---`` line. An optional
``TITLE:`` line before the first question names the quiz::

    TITLE: Angles in radians

    Q: What is $30^o$ in radians?
    A: \\frac{\\pi}{2}
    B: \\frac{\\pi}{6}
    C: \\frac{\\pi}{4}
    D: \\frac{\\pi}{3}
    CORRECT: B
    EXPLANATION: 30 degrees is one sixth of 180 degrees.

Lines that do not start with a marker continue the question text, the
current option, or the explanation. A continuation line that would
otherwise read as a marker, a ``---`` separator or a blank line is written
with a leading backslash (``\\A: ...``, ``\\---``, ``\\``); one
backslash is removed again on import.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from classroom_app.core.errors import ValidationError
from classroom_app.core.models import QuizQuestion

OPTION_LETTERS = ("A", "B", "C", "D")
SECTION_MARKERS = ("Q", *OPTION_LETTERS, "CORRECT", "EXPLANATION", "TITLE")
ESCAPE = "\\"


class QuizImportError(ValidationError):
    """Raised when a quiz definition cannot be parsed."""


@dataclass(slots=True)
class ImportedQuiz:
    title: str | None
    questions: list[QuizQuestion]


def needs_escape(line: str) -> bool:
    """Whether a continuation line must be escaped to survive a round trip."""
    stripped = line.strip()
    if not stripped or stripped == "---":
        return True
    if stripped.startswith(ESCAPE):
        return needs_escape(stripped[len(ESCAPE) :])
    marker, separator, _ = stripped.partition(":")
    return bool(separator) and marker.strip().upper() in SECTION_MARKERS


def escape_line(line: str) -> str:
    return ESCAPE + line.strip() if needs_escape(line) else line


def unescape_line(line: str) -> str:
    if line.startswith(ESCAPE) and needs_escape(line[len(ESCAPE) :]):
        return line[len(ESCAPE) :]
    return line


def load_quiz_from_file(file_path: Path) -> ImportedQuiz:
    return parse_quiz_text(file_path.read_text(encoding="utf-8"))


def parse_quiz_text(text: str) -> ImportedQuiz:
    title: str | None = None
    blocks: list[list[str]] = [[]]
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped.upper().startswith("TITLE:") and not any(blocks):
            title = stripped.split(":", 1)[1].strip() or None
            continue
        if not stripped or stripped == "---":
            if blocks[-1]:
                blocks.append([])
            continue
        blocks[-1].append(stripped)

    questions = [_parse_block(lines) for lines in blocks if lines]
    if not questions:
        raise QuizImportError("Quiz text did not contain any questions.")
    return ImportedQuiz(title=title, questions=questions)


def _parse_block(lines: list[str]) -> QuizQuestion:
    sections: dict[str, list[str]] = {}
    correct_letter: str | None = None
    current: str | None = None

    for line in lines:
        marker, separator, rest = line.partition(":")
        marker = marker.strip().upper()
        if separator and marker in ("Q", *OPTION_LETTERS, "EXPLANATION"):
            current = marker
            sections[current] = [rest.strip()]
        elif separator and marker == "CORRECT":
            correct_letter = rest.strip().upper()
            current = None
        elif current is not None:
            sections[current].append(unescape_line(line))
        else:
            raise QuizImportError(f"Encountered text outside of a known section: '{line}'.")

    question_text = "\n".join(sections.get("Q", [])).strip()
    if not question_text:
        raise QuizImportError("Question text missing (Q: ...).")
    if any(letter not in sections for letter in OPTION_LETTERS):
        raise QuizImportError("Each question must define exactly four options (A-D).")
    options = ["\n".join(sections[letter]).strip() for letter in OPTION_LETTERS]
    if any(not option for option in options):
        raise QuizImportError("Option text cannot be empty.")
    if correct_letter is None:
        raise QuizImportError(f"Question '{question_text[:40]}' has no CORRECT line.")
    if correct_letter not in OPTION_LETTERS:
        raise QuizImportError("CORRECT must be one of A, B, C, or D.")

    explanation = "\n".join(sections.get("EXPLANATION", [])).strip() or None
    return QuizQuestion(
        text=question_text,
        options=options,
        correct_option_index=OPTION_LETTERS.index(correct_letter),
        explanation=explanation,
    )
