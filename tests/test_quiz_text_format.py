from pathlib import Path

import pytest

from classroom_app.core.errors import ValidationError
from classroom_app.core.markdown_renderer import MarkdownMathRenderer
from classroom_app.core.models import LessonPage, Quiz, QuizQuestion
from classroom_app.core.quiz_exporter import quiz_to_text, save_quiz_to_file
from classroom_app.core.quiz_importer import QuizImportError, load_quiz_from_file, parse_quiz_text

SAMPLE = """TITLE: Angles in radians

Q: What is $30^o$ in radians?
A: \\frac{\\pi}{2}
B: \\frac{\\pi}{6}
C: \\frac{\\pi}{4}
D: \\frac{\\pi}{3}
CORRECT: b
EXPLANATION: 30 degrees is one sixth of 180 degrees.
---
Q: Which is prime?
spanning two lines
A: 4
B: 6
C: 7
D: 9
CORRECT: C
"""


def test_parse_sample_quiz():
    imported = parse_quiz_text(SAMPLE)

    assert imported.title == "Angles in radians"
    first, second = imported.questions
    assert first.correct_option_index == 1
    assert first.options[3] == "\\frac{\\pi}{3}"
    assert first.explanation == "30 degrees is one sixth of 180 degrees."
    assert second.text == "Which is prime?\nspanning two lines"
    assert second.correct_option_index == 2
    assert second.explanation is None


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("", "did not contain any questions"),
        ("Q: x\nA: 1\nB: 2\nC: 3\nCORRECT: A", "four options"),
        ("Q: x\nA: 1\nB: 2\nC: 3\nD: 4", "no CORRECT line"),
        ("Q: x\nA: 1\nB: 2\nC: 3\nD: 4\nCORRECT: E", "one of A, B, C, or D"),
        ("stray text\nQ: x", "outside of a known section"),
    ],
)
def test_malformed_quiz_text(text, message):
    with pytest.raises(QuizImportError, match=message):
        parse_quiz_text(text)


def test_import_errors_are_validation_errors():
    assert issubclass(QuizImportError, ValidationError)


def test_export_then_import_preserves_questions(tmp_path: Path):
    quiz = Quiz(
        id="quiz_1",
        title="Fractions",
        questions=[
            QuizQuestion(
                text="Half of 1?",
                options=["1/2", "1/3", "1/4", "2"],
                correct_option_index=0,
                explanation="One split in two.",
            ),
            QuizQuestion(text="Double 3?", options=["3", "6", "9", "12"], correct_option_index=1),
        ],
    )
    target = tmp_path / "export" / "fractions.txt"
    save_quiz_to_file(target, quiz)

    assert target.read_text(encoding="utf-8").startswith("TITLE: Fractions\n")
    imported = load_quiz_from_file(target)
    assert imported.title == "Fractions"
    assert imported.questions == quiz.questions


def test_exporting_an_empty_quiz_fails(tmp_path: Path):
    with pytest.raises(ValueError):
        save_quiz_to_file(tmp_path / "empty.txt", Quiz(id="q", title="Empty"))


def test_exported_text_marks_the_correct_letter():
    quiz = Quiz(
        id="q",
        title="",
        questions=[QuizQuestion(text="Pick D", options=["a", "b", "c", "d"], correct_option_index=3)],
    )
    assert quiz_to_text(quiz) == "Q: Pick D\nA: a\nB: b\nC: c\nD: d\nCORRECT: D\n"


def test_marker_like_and_blank_lines_survive_export():
    question = QuizQuestion(
        text="Which is true?\nA: the first claim holds\n\n---\nCORRECT: maybe",
        options=["Para one.\n\nPara two.", "\\frac{1}{2}\n\\", "b", "c"],
        correct_option_index=2,
        explanation="See:\nexplanation: twice\n\\sqrt{2}",
    )
    quiz = Quiz(id="q", title="Tricky", questions=[question])

    text = quiz_to_text(quiz)
    assert "\n\\A: the first claim holds\n" in text

    [imported] = parse_quiz_text(text).questions
    assert imported == question


def test_hand_written_latex_continuation_keeps_its_backslash():
    text = "Q: Simplify\n\\frac{2}{4}\nA: 1\nB: 2\nC: 3\nD: 4\nCORRECT: A\n"
    assert parse_quiz_text(text).questions[0].text == "Simplify\n\\frac{2}{4}"


def test_page_renders_markdown_inside_a_mathjax_document():
    html = MarkdownMathRenderer().render_page(LessonPage(id="p", title="Sums <1>", content="# Heading\n\n$a+b$"))

    assert "<h1>Heading</h1>" in html
    assert "$a+b$" in html
    assert "<title>Sums &lt;1&gt;</title>" in html
    assert "mathjax" in html


def test_raw_html_is_escaped_by_default():
    fragment = MarkdownMathRenderer().render_fragment("<script>alert(1)</script>")
    assert "<script>" not in fragment
    assert MarkdownMathRenderer().render_fragment("   ") == "<p><em>No content provided.</em></p>"
