"""Static metadata describing the classroom service."""

APP_NAME = "Classroom LMS"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "Classroom LMS lets teachers build courses of units, lessons and quizzes, "
    "share lessons with their classes for a limited time, and follow how "
    "students score on each quiz."
)

QUIZ_IMPORT_HELP_TEXT = (
    "Quizzes can be authored as plain text and imported into a lesson. "
    "Separate questions with a blank line or '---':\n\n"
    "Q: What is $30^o$ in radians?\n"
    "A: \\frac{\\pi}{2}\nB: \\frac{\\pi}{6}\nC: \\frac{\\pi}{4}\nD: \\frac{\\pi}{3}\n"
    "CORRECT: B\nEXPLANATION: 30 degrees is one sixth of 180 degrees.\n"
)
