"""Pure scoring over response records: test results, letter grades, user totals."""
from datetime import datetime, timezone

from mistake_analyzer.core.logging import DOMAIN_SCORING, get_domain_logger
from mistake_analyzer.schemas.common import SUBJECTS
from mistake_analyzer.schemas.responses import ResponseRecord
from mistake_analyzer.schemas.results import Performance, QuestionTiming, ResultsSummary, SubjectScore, UserStats

logger = get_domain_logger(__name__, DOMAIN_SCORING)

# Checked top-down; anything below the last threshold is a D.
GRADE_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (90.0, "A+"),
    (80.0, "A"),
    (70.0, "B"),
    (60.0, "C"),
)
LOWEST_GRADE = "D"


def grade_for_accuracy(accuracy: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if accuracy >= threshold:
            return grade
    return LOWEST_GRADE


def subject_breakdown(records: list[ResponseRecord]) -> dict[str, SubjectScore]:
    """Per-subject correctness for the three fixed subjects.

    Records whose subject is missing or not one of the fixed subjects are left
    out of the breakdown (they still count toward overall totals).
    """
    breakdown = {subject: SubjectScore() for subject in SUBJECTS}
    skipped = 0
    for record in records:
        entry = breakdown.get(record.subject) if record.subject else None
        if entry is None:
            skipped += 1
            continue
        entry.total += 1
        if record.is_correct:
            entry.correct += 1
    for entry in breakdown.values():
        entry.accuracy = round(entry.correct / entry.total * 100, 2) if entry.total else 0.0
    if skipped:
        logger.warning("%d record(s) with missing or unrecognized subject left out of the breakdown", skipped)
    return breakdown


def compute_results(test_id: str, records: list[ResponseRecord], *, now: datetime | None = None) -> ResultsSummary:
    if not records:
        raise ValueError("compute_results needs at least one response record")

    total = len(records)
    correct = sum(1 for r in records if r.is_correct)
    total_time = sum(r.time_taken for r in records)
    accuracy = round(correct / total * 100, 2)

    # Ties on either end resolve to the first record in answer order, not the last.
    fastest = min(records, key=lambda r: r.time_taken)
    slowest = max(records, key=lambda r: r.time_taken)

    summary = ResultsSummary(
        test_id=test_id,
        total_questions=total,
        correct_answers=correct,
        incorrect_answers=total - correct,
        accuracy=accuracy,
        grade=grade_for_accuracy(accuracy),
        total_time=total_time,
        avg_time_per_question=round(total_time / total, 2),
        subject_breakdown=subject_breakdown(records),
        performance=Performance(
            fastest_question=QuestionTiming(question_id=fastest.question_id, time_taken=fastest.time_taken),
            slowest_question=QuestionTiming(question_id=slowest.question_id, time_taken=slowest.time_taken),
        ),
        timestamp=now or datetime.now(timezone.utc),
    )
    logger.info("Results calculated for %s: %d/%d correct (%.1f%%)", test_id, correct, total, accuracy)
    return summary


def compute_user_stats(records: list[ResponseRecord]) -> UserStats:
    total = len(records)
    mistakes = sum(1 for r in records if not r.is_correct)
    accuracy = round((total - mistakes) / total * 100, 1) if total else 0.0
    return UserStats(total_questions=total, mistakes=mistakes, accuracy=accuracy)
