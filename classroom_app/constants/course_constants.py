"""Course, class and quiz constants shared across services and the API."""

MAX_QUIZ_ATTEMPTS: int = 3
CLASS_CODE_LENGTH: int = 6
OPTIONS_PER_QUESTION: int = 4
ID_IN_QUERY_LIMIT: int = 30
GENERATED_PASSWORD_LENGTH: int = 8

DEFAULT_EMAIL_DOMAIN: str = "srcs.edu"
DEFAULT_GENDER: str = "Not specified"
DEFAULT_GRADE_LEVEL: str = "Grade Level"

COURSE_CATEGORIES: tuple[str, ...] = tuple(
    sorted(
        [
            "Applied Subjects (SHS) Learner's Content",
            "Applied Subjects (SHS) Teacher's Content",
            "Junior High School (Learner's Content)",
            "Junior High School (MATATAG) Learner's Content",
            "Junior High School (MATATAG) Teacher's Content",
            "Junior High School (Teacher's Content)",
            "School-based Subjects",
            "Senior High School (Learner's Content)",
            "Senior High School (Teacher's Content)",
            "Specialized Subjects (HUMSS)",
            "Specialized Subjects (STEM)",
        ]
    )
)

# Collection names in the document store.
USERS: str = "users"
CLASSES: str = "classes"
COURSES: str = "courses"
SUBMISSIONS: str = "submissions"
VIEW_RECORDS: str = "viewRecords"
