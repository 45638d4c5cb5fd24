"""Score input grid for one class/month/year.

A grid cell is addressed by a GridCellKey: the id of its score row when that row
exists, otherwise a placeholder string built from student/subject/sub-subject.
Saving placeholder cells first applies the confirmed template so the rows get
created, then resolves the placeholders to the new ids before the bulk update.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from utils.errors import NoTemplateError, PartialSaveWarning
from utils.grade_calculation import RowSummary, summarize_grid, summarize_row
from utils.score_utils import parse_score_input
from utils.structure_utils import (
    MAIN,
    Column,
    derive_columns,
    group_columns,
    match_template,
    select_candidates,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "temp"

GridCellKey = Union[int, str]
Identity = Tuple[int, int, Union[int, str]]


def identity_of(student_id, subject_id, sub_subject_id) -> Identity:
    return (int(student_id), int(subject_id), int(sub_subject_id) if sub_subject_id else MAIN)


def placeholder_key(student_id, subject_id, sub_subject_id) -> str:
    _, _, sub = identity_of(student_id, subject_id, sub_subject_id)
    return f"{PLACEHOLDER_PREFIX}-{int(student_id)}-{int(subject_id)}-{sub}"


def is_placeholder(key: GridCellKey) -> bool:
    return isinstance(key, str) and key.startswith(f"{PLACEHOLDER_PREFIX}-")


def parse_placeholder(key: str) -> Optional[Identity]:
    """temp-<studentId>-<subjectId>-<subSubjectId|main> -> identity, or None if malformed."""
    parts = key.split("-")
    if len(parts) != 4 or parts[0] != PLACEHOLDER_PREFIX:
        return None
    try:
        student_id = int(parts[1])
        subject_id = int(parts[2])
        sub = MAIN if parts[3] == MAIN else int(parts[3])
    except ValueError:
        return None
    return (student_id, subject_id, sub)


@dataclass
class SaveResult:
    updated: int = 0
    not_found: List[int] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    created: int = 0
    skipped: int = 0
    applied: bool = False

    @property
    def message(self) -> str:
        if self.updated == 0 and not self.not_found and not self.dropped:
            return "Nothing to save"
        parts = [f"{self.updated} saved"]
        if self.not_found:
            parts.append(f"{len(self.not_found)} not found")
        if self.dropped:
            parts.append(f"{len(self.dropped)} not saved")
        return ", ".join(parts)


def reconcile_save(
    store,
    template: Optional[Dict],
    class_id: int,
    month: int,
    year: int,
    entries: Dict[GridCellKey, str],
) -> SaveResult:
    """Persist grid entries keyed by real ids or placeholders.

    Steps: partition keys; when placeholders exist, apply the confirmed template
    and re-fetch the period to map identities to ids; drop placeholders that do
    not resolve (PartialSaveWarning); then one bulk update. Store errors
    propagate and nothing already applied is rolled back.
    """
    result = SaveResult()
    if not entries:
        return result

    # Validate everything before touching the store
    values = {key: parse_score_input(value) for key, value in entries.items()}

    placeholders = [k for k in values if is_placeholder(k)]
    id_map: Dict[Identity, int] = {}
    if placeholders:
        if not template:
            raise NoTemplateError(
                "No confirmed template for this class and period; apply a template before entering scores"
            )
        applied = store.apply_template(template["id"], class_id, month, year)
        result.applied = True
        result.created = int(applied.get("created", 0))
        result.skipped = int(applied.get("skipped", 0))

        for row in store.get_scores(class_id, month, year):
            id_map[identity_of(row["studentId"], row["subjectId"], row.get("subSubjectId"))] = row["id"]

    payload = []
    for key, score in values.items():
        if is_placeholder(key):
            identity = parse_placeholder(key)
            real_id = id_map.get(identity) if identity else None
            if real_id is None:
                result.dropped.append(key)
                continue
        else:
            real_id = int(key)
        payload.append({"id": real_id, "score": score})

    if result.dropped:
        logger.warning(
            f"Dropped {len(result.dropped)} unresolved cells for class {class_id} "
            f"{month}/{year}: {result.dropped}"
        )
        warnings.warn(
            f"{len(result.dropped)} score cells could not be matched to score rows and were not saved",
            PartialSaveWarning,
            stacklevel=2,
        )

    if not payload:
        return result

    response = store.bulk_update_scores(payload)
    result.updated = int(response.get("updated", 0))
    result.not_found = list(response.get("notFound") or [])
    if result.not_found:
        logger.warning(f"Scores not found during save: {result.not_found}")
    return result


class ScoreGrid:
    """Editable scores for every student x column of one class period."""

    def __init__(
        self,
        store,
        teacher_id: int,
        class_id: int,
        month: int,
        year: int,
        students: Iterable[Dict],
        grade_level=None,
    ):
        self.store = store
        self.teacher_id = teacher_id
        self.class_id = class_id
        self.month = month
        self.year = year
        self.grade_level = grade_level
        self.students = [s for s in students or [] if self._student_id(s) is not None]

        self.template: Optional[Dict] = None
        self.columns: List[Column] = []
        self.scores: List[Dict] = []
        self._keys: Dict[Identity, GridCellKey] = {}
        self._identities: Dict[GridCellKey, Identity] = {}
        self._inputs: Dict[Identity, str] = {}
        self._edited: Set[Identity] = set()

    @staticmethod
    def _student_id(student: Dict) -> Optional[int]:
        value = student.get("studentId") or student.get("id")
        return int(value) if value is not None else None

    @property
    def student_ids(self) -> List[int]:
        return [self._student_id(s) for s in self.students]

    @property
    def is_empty(self) -> bool:
        return not self.columns

    # ---- loading -----------------------------------------------------------

    def load(self, keep_inputs: Optional[Dict[Identity, str]] = None):
        """(Re)load templates and score rows for the period and rebuild cell keys.

        The template is only confirmed when the stored rows match one exactly;
        with no rows there is no confirmed template and the grid is empty.
        """
        templates = self.store.list_templates(teacher_id=self.teacher_id, is_active=True)
        candidates = select_candidates(templates, self.grade_level)

        rows = self.store.get_scores(self.class_id, self.month, self.year)
        self.template = match_template(rows, candidates) if rows else None
        if self.template:
            rows = self.store.get_scores(
                self.class_id, self.month, self.year, template_id=self.template["id"]
            )
        else:
            logger.info(
                f"No template confirmed for class {self.class_id} {self.month}/{self.year} "
                f"({len(rows)} score rows, {len(candidates)} candidates)"
            )

        self.scores = rows
        self.columns = derive_columns(self.template, rows)
        self._rebuild(keep_inputs or {})
        return self

    def _rebuild(self, keep_inputs: Dict[Identity, str]):
        by_identity = {
            identity_of(r["studentId"], r["subjectId"], r.get("subSubjectId")): r
            for r in self.scores
        }
        self._keys = {}
        self._identities = {}
        self._inputs = {}
        self._edited = set()
        for student_id in self.student_ids:
            for col in self.columns:
                identity = identity_of(student_id, col.subject_id, col.sub_subject_id)
                row = by_identity.get(identity)
                if row is not None:
                    key = row["id"]
                    if row.get("score") is not None:
                        self._inputs[identity] = _format_stored(row["score"])
                else:
                    key = placeholder_key(student_id, col.subject_id, col.sub_subject_id)
                self._keys[identity] = key
                self._identities[key] = identity

        for identity, value in keep_inputs.items():
            if identity in self._keys:
                self._inputs[identity] = value
                self._edited.add(identity)

    # ---- cells -------------------------------------------------------------

    def cell_key(self, student_id, column: Column) -> GridCellKey:
        return self._keys[identity_of(student_id, column.subject_id, column.sub_subject_id)]

    def _identity(self, key: GridCellKey) -> Identity:
        try:
            return self._identities[key]
        except KeyError:
            raise KeyError(f"Unknown grid cell {key!r}")

    def get_input(self, key: GridCellKey) -> str:
        return self._inputs.get(self._identity(key), "")

    def set_input(self, key: GridCellKey, value) -> str:
        """Store a typed value; raises ValidationError and leaves state untouched when invalid."""
        identity = self._identity(key)
        text = "" if value is None else str(value).strip()
        parse_score_input(text)
        self._inputs[identity] = text
        self._edited.add(identity)
        return text

    def inputs(self) -> Dict[GridCellKey, str]:
        return {self._keys[i]: v for i, v in self._inputs.items()}

    def row_values(self, student_id) -> List[str]:
        values = []
        for col in self.columns:
            identity = identity_of(student_id, col.subject_id, col.sub_subject_id)
            values.append(self._inputs.get(identity, ""))
        return values

    def row_summary(self, student_id) -> RowSummary:
        return summarize_row(self.row_values(student_id))

    def header_groups(self) -> List[Dict]:
        return group_columns(self.columns)

    def summaries(self) -> List[Dict]:
        """Total, count, average and grade for every student, by student id."""
        return summarize_grid({sid: self.row_values(sid) for sid in self.student_ids})

    # ---- saving ------------------------------------------------------------

    def save(self, keys: Iterable[GridCellKey]) -> SaveResult:
        """Save the given cells, then reload the period.

        Edited cells outside the saved set keep their text across the reload, as
        do dropped placeholder cells; every other cell shows what the store holds.
        When the save raises, nothing is reloaded and every typed value stays in place.
        """
        keys = list(keys)
        entries = {key: self.get_input(key) for key in keys}
        saved = {self._identity(key) for key in keys}
        result = reconcile_save(
            self.store, self.template, self.class_id, self.month, self.year, entries
        )
        saved -= {self._identity(key) for key in result.dropped}
        pending = {i: self._inputs.get(i, "") for i in self._edited if i not in saved}
        self.load(keep_inputs=pending)
        return result

    def save_cell(self, key: GridCellKey) -> SaveResult:
        return self.save([key])

    def save_student(self, student_id) -> SaveResult:
        student_id = int(student_id)
        keys = [self._keys[i] for i in self._inputs if i[0] == student_id]
        return self.save(keys)

    def save_all(self) -> SaveResult:
        return self.save(list(self.inputs()))


def _format_stored(score) -> str:
    value = float(score)
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")
