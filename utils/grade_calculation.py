from typing import Dict, Iterable, List, NamedTuple

from utils.score_utils import format_score


class RowSummary(NamedTuple):
    total: float
    count: int
    average: float
    grade: str

    def display(self) -> Dict[str, str]:
        return {
            "total": f"{self.total:.2f}",
            "average": format_score(self.average, 2),
            "grade": self.grade,
        }


def get_grade_letter(average: float) -> str:
    """Map a 0-10 average to the report letter. Keep in sync with the score grid legend."""
    if average >= 8.5:
        return "A"
    if average >= 7:
        return "B"
    if average >= 5.5:
        return "C"
    if average >= 4:
        return "D"
    if average > 0:
        return "F"
    return "-"


def _parsed(value):
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def summarize_row(values: Iterable) -> RowSummary:
    """Total/average/grade for one student's column values.

    Zero and empty values are left out of both the sum and the count: a 0 is
    treated as not yet scored for averaging.
    """
    total = 0.0
    count = 0
    for value in values:
        num = _parsed(value)
        if num is None or num <= 0:
            continue
        total += num
        count += 1

    average = total / count if count > 0 else 0.0
    return RowSummary(round(total, 2), count, average, get_grade_letter(average))


def summarize_grid(rows: Dict[int, List]) -> List[Dict]:
    """Per-student summaries, sorted by student id for a stable order."""
    results = []
    for student_id, values in rows.items():
        summary = summarize_row(values)
        results.append(
            {
                "studentId": student_id,
                "total": summary.total,
                "count": summary.count,
                "average": round(summary.average, 2),
                "grade": summary.grade,
            }
        )
    return sorted(results, key=lambda r: r["studentId"])
