from typing import Optional, Tuple

from sponsorship_admin.core.enums import GRADE_DESCRIPTIONS, ExamGrade

# Lower bound of each band, in percent
GRADE_BANDS: Tuple[Tuple[float, ExamGrade], ...] = (
    (80, ExamGrade.EXCEEDING),
    (50, ExamGrade.MEETING),
    (40, ExamGrade.APPROACHING),
)


def calculate_percentage(score: Optional[float], max_score: float, did_not_sit: bool = False) -> Optional[float]:
    if did_not_sit or score is None or not max_score:
        return None
    return round(score / max_score * 100, 2)


def grade_for_percentage(percentage: Optional[float]) -> Optional[ExamGrade]:
    if percentage is None:
        return None
    for lower_bound, grade in GRADE_BANDS:
        if percentage >= lower_bound:
            return grade
    return ExamGrade.BELOW


def grade_description(grade: Optional[ExamGrade]) -> Optional[str]:
    return GRADE_DESCRIPTIONS.get(grade) if grade else None
