from enum import Enum


class Subject(str, Enum):
    PHYSICS = "Physics"
    CHEMISTRY = "Chemistry"
    BIOLOGY = "Biology"


class TestSubject(str, Enum):
    PHYSICS = "Physics"
    CHEMISTRY = "Chemistry"
    BIOLOGY = "Biology"
    MIXED = "Mixed"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class OptionLabel(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


SUBJECTS: tuple[str, ...] = tuple(s.value for s in Subject)


def parse_subject(value) -> Subject | None:
    """Case-insensitive lookup of one of the three fixed subjects."""
    text = str(value or "").strip().lower()
    for subject in Subject:
        if subject.value.lower() == text:
            return subject
    return None


def parse_option(value) -> OptionLabel | None:
    text = str(value or "").strip().upper()
    try:
        return OptionLabel(text)
    except ValueError:
        return None
