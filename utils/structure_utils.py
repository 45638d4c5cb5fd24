from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple, Union

MAIN = "main"

StructureKey = Tuple[int, Union[int, str]]


class Column(NamedTuple):
    subject_id: int
    sub_subject_id: Optional[int]
    order: int

    @property
    def key(self) -> StructureKey:
        return structure_key(self.subject_id, self.sub_subject_id)


def structure_key(subject_id, sub_subject_id) -> StructureKey:
    """(subjectId, subSubjectId or "main"), the unit compared by the matcher."""
    return (int(subject_id), int(sub_subject_id) if sub_subject_id else MAIN)


def rows_structure(score_rows: Iterable[Dict]) -> Set[StructureKey]:
    """Structure set of stored score rows, independent of student."""
    keys = set()
    for row in score_rows or []:
        if not isinstance(row, dict) or row.get("subjectId") is None:
            continue
        keys.add(structure_key(row["subjectId"], row.get("subSubjectId")))
    return keys


def template_structure(template: Dict) -> Set[StructureKey]:
    """Structure set of a template.

    Expected input shape:
    {"subjects": [{"subjectId": int, "order": int,
                   "subSubjects": [{"subSubjectId": int, "order": int}]}]}
    A subject without sub-subjects contributes (subjectId, "main").
    """
    keys = set()
    for subj in (template or {}).get("subjects") or []:
        subject_id = subj.get("subjectId")
        if subject_id is None:
            continue
        subs = subj.get("subSubjects") or []
        if subs:
            for sub in subs:
                keys.add(structure_key(subject_id, sub.get("subSubjectId")))
        else:
            keys.add(structure_key(subject_id, None))
    return keys


def select_candidates(templates: List[Dict], grade_level=None) -> List[Dict]:
    """Narrow a teacher's templates to the class grade level.

    Falls back to the full list when nothing matches the grade level.
    """
    templates = list(templates or [])
    if grade_level in (None, ""):
        return templates
    wanted = str(grade_level)
    filtered = [t for t in templates if str(t.get("gradeLevel")) == wanted]
    return filtered or templates


def match_template(score_rows: List[Dict], candidates: List[Dict]) -> Optional[Dict]:
    """Return the first candidate whose structure set equals the rows' one.

    Returns None when there are no rows or nothing matches; never guesses a default.
    """
    existing = rows_structure(score_rows)
    if not existing:
        return None
    for template in candidates or []:
        structure = template_structure(template)
        if len(structure) == len(existing) and existing.issubset(structure):
            return template
    return None


def template_columns(template: Dict) -> List[Column]:
    """Flatten a template in (subjectOrder, subSubjectOrder) order."""
    subjects = sorted(
        enumerate((template or {}).get("subjects") or []),
        key=lambda t: (t[1].get("order") or 0, t[0]),
    )
    columns: List[Column] = []
    seen = set()
    for _, subj in subjects:
        subject_id = subj.get("subjectId")
        if subject_id is None:
            continue
        subs = sorted(
            enumerate(subj.get("subSubjects") or []),
            key=lambda t: (t[1].get("order") or 0, t[0]),
        )
        if not subs:
            candidates = [None]
        else:
            candidates = [sub.get("subSubjectId") for _, sub in subs]
        for sub_subject_id in candidates:
            key = structure_key(subject_id, sub_subject_id)
            if key in seen:
                continue
            seen.add(key)
            columns.append(
                Column(
                    int(subject_id),
                    int(sub_subject_id) if sub_subject_id else None,
                    len(columns),
                )
            )
    return columns


def infer_columns(score_rows: List[Dict]) -> List[Column]:
    """Columns for rows without a confirmed template.

    Distinct pairs in first-appearance order, then stable-sorted by
    (subjectId, subSubjectId or 0) since there is no template order to trust.
    """
    pairs = []
    seen = set()
    for row in score_rows or []:
        if not isinstance(row, dict) or row.get("subjectId") is None:
            continue
        key = structure_key(row["subjectId"], row.get("subSubjectId"))
        if key in seen:
            continue
        seen.add(key)
        sub = row.get("subSubjectId")
        pairs.append((int(row["subjectId"]), int(sub) if sub else None))

    pairs.sort(key=lambda p: (p[0], p[1] or 0))
    return [Column(s, sub, i) for i, (s, sub) in enumerate(pairs)]


def derive_columns(template: Optional[Dict], score_rows: List[Dict]) -> List[Column]:
    if template:
        columns = template_columns(template)
        if columns:
            return columns
    if score_rows:
        return infer_columns(score_rows)
    return []


def column_order_map(template: Dict) -> Dict[StructureKey, int]:
    """structure key -> column index, used to sort score rows by template order."""
    return {col.key: col.order for col in template_columns(template)}


def group_columns(columns: List[Column]) -> List[Dict]:
    """Group consecutive columns of the same subject for two-row grid headers.

    Output: [{subjectId, columns: [Column, ...], span: int}]
    """
    groups: List[Dict] = []
    for col in columns:
        if not groups or groups[-1]["subjectId"] != col.subject_id:
            groups.append({"subjectId": col.subject_id, "columns": []})
        groups[-1]["columns"].append(col)
    for group in groups:
        group["span"] = len(group["columns"])
    return groups
