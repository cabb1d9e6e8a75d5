"""Write quizzes back out in the plain-text authoring format."""

from __future__ import annotations

from pathlib import Path

from classroom_app.core.models import Quiz, QuizQuestion
from classroom_app.core.quiz_importer import OPTION_LETTERS, escape_line


def save_quiz_to_file(file_path: Path, quiz: Quiz) -> None:
    if not quiz.questions:
        raise ValueError("Cannot export an empty quiz.")
    file_path = file_path.resolve()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(quiz_to_text(quiz), encoding="utf-8")


def quiz_to_text(quiz: Quiz) -> str:
    blocks = [_serialize_question(question) for question in quiz.questions]
    header = f"TITLE: {quiz.title}\n\n" if quiz.title else ""
    return header + "\n\n---\n\n".join(blocks) + "\n"


def _serialize_question(question: QuizQuestion) -> str:
    lines = _marked("Q", question.text)
    for letter, option in zip(OPTION_LETTERS, question.options):
        lines.extend(_marked(letter, option))
    lines.append(f"CORRECT: {OPTION_LETTERS[question.correct_option_index]}")
    if question.explanation:
        lines.extend(_marked("EXPLANATION", question.explanation))
    return "\n".join(lines)


def _marked(marker: str, text: str) -> list[str]:
    text_lines = text.strip().splitlines() or [""]
    return [f"{marker}: {text_lines[0].strip()}", *(escape_line(line) for line in text_lines[1:])]
