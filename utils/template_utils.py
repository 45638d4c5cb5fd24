from typing import Dict, List, Optional, Tuple

from utils.errors import ValidationError


def _as_id(value, field: str, index: int, errors: list) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        as_int = int(value)
    except (TypeError, ValueError):
        errors.append(f"items[{index}].{field} must be an integer")
        return None
    if as_int <= 0:
        errors.append(f"items[{index}].{field} must be positive")
        return None
    return as_int


def normalize_items(items) -> List[Tuple[int, Optional[int]]]:
    """Turn submitted template items into (subject_id, sub_subject_id) pairs.

    Accepts dicts with subjectId/subSubjectId. Any subjectOrder/subSubjectOrder
    fields sent by the client are ignored. Raises ValidationError on missing
    subjects, non-integer ids or duplicate pairs.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty array")

    errors = []
    pairs = []
    seen = set()
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            errors.append(f"items[{i}] must be an object")
            continue
        subject_id = _as_id(item.get("subjectId"), "subjectId", i, errors)
        if subject_id is None:
            if item.get("subjectId") in (None, ""):
                errors.append(f"items[{i}].subjectId is required")
            continue
        sub_subject_id = _as_id(item.get("subSubjectId"), "subSubjectId", i, errors)
        pair = (subject_id, sub_subject_id)
        if pair in seen:
            errors.append(
                f"items[{i}] duplicates subject {subject_id} / "
                f"{sub_subject_id if sub_subject_id is not None else 'main'}"
            )
            continue
        seen.add(pair)
        pairs.append(pair)

    if errors:
        raise ValidationError("invalid template items", errors)
    return pairs


def assign_item_order(pairs: List[Tuple[int, Optional[int]]]) -> List[Dict]:
    """Recompute canonical order from submission order.

    subjectOrder comes from a running counter bumped the first time a subject is
    seen; subSubjectOrder counts independently inside each subject bucket.
    """
    subject_order: Dict[int, int] = {}
    sub_counters: Dict[int, int] = {}
    next_subject_order = 0

    ordered = []
    for subject_id, sub_subject_id in pairs:
        if subject_id not in subject_order:
            subject_order[subject_id] = next_subject_order
            next_subject_order += 1

        sub_order = 0
        if sub_subject_id is not None:
            sub_order = sub_counters.get(subject_id, 0)
            sub_counters[subject_id] = sub_order + 1

        ordered.append(
            {
                "subjectId": subject_id,
                "subSubjectId": sub_subject_id,
                "subjectOrder": subject_order[subject_id],
                "subSubjectOrder": sub_order,
            }
        )
    return ordered


def group_ordered_items(ordered_items: List[Dict]) -> List[Dict]:
    """Nest ordered items into the template's subjects shape.

    Output: [{subjectId, order, subSubjects: [{subSubjectId, order}]}] sorted by order.
    A main item only registers its subject; it adds no sub-subject entry.
    """
    by_subject: Dict[int, Dict] = {}
    for item in ordered_items:
        entry = by_subject.setdefault(
            item["subjectId"],
            {
                "subjectId": item["subjectId"],
                "order": item["subjectOrder"],
                "subSubjects": [],
            },
        )
        if item["subSubjectId"] is not None:
            entry["subSubjects"].append(
                {
                    "subSubjectId": item["subSubjectId"],
                    "order": item["subSubjectOrder"],
                }
            )

    grouped = sorted(by_subject.values(), key=lambda e: e["order"])
    for entry in grouped:
        entry["subSubjects"].sort(key=lambda s: s["order"])
    return grouped


def template_items(template: Dict) -> List[Dict]:
    """Flatten a template's nested subjects back into an item list.

    Inverse of group_ordered_items.
    """
    items = []
    for subj in sorted(template.get("subjects") or [], key=lambda s: s.get("order") or 0):
        subject_id = subj.get("subjectId")
        subs = sorted(subj.get("subSubjects") or [], key=lambda s: s.get("order") or 0)
        if not subs:
            items.append(
                {
                    "subjectId": subject_id,
                    "subSubjectId": None,
                    "subjectOrder": subj.get("order") or 0,
                    "subSubjectOrder": 0,
                }
            )
            continue
        for sub in subs:
            items.append(
                {
                    "subjectId": subject_id,
                    "subSubjectId": sub.get("subSubjectId"),
                    "subjectOrder": subj.get("order") or 0,
                    "subSubjectOrder": sub.get("order") or 0,
                }
            )
    return items


def flatten_reorder_payload(subjects) -> List[Dict]:
    """Turn a drag-and-drop reorder payload into a plain item list.

    The client's order integers only decide the resubmission sequence; the
    engine assigns the stored orders afterwards via assign_item_order.
    """
    if not isinstance(subjects, list) or not subjects:
        raise ValidationError("subjects must be a non-empty array")

    errors = []
    indexed = []
    for i, subj in enumerate(subjects):
        if not isinstance(subj, dict):
            errors.append(f"subjects[{i}] must be an object")
            continue
        indexed.append((subj.get("order") or 0, i, subj))
    if errors:
        raise ValidationError("invalid reorder payload", errors)

    items = []
    for _, _, subj in sorted(indexed, key=lambda t: (t[0], t[1])):
        subs = subj.get("subSubjects") or []
        if not subs:
            items.append({"subjectId": subj.get("subjectId"), "subSubjectId": None})
            continue
        ordered_subs = sorted(
            enumerate(subs), key=lambda t: ((t[1] or {}).get("order") or 0, t[0])
        )
        for _, sub in ordered_subs:
            items.append(
                {
                    "subjectId": subj.get("subjectId"),
                    "subSubjectId": (sub or {}).get("subSubjectId"),
                }
            )
    return items
