import pytest

from utils.errors import ValidationError
from utils.template_utils import (
    assign_item_order,
    flatten_reorder_payload,
    group_ordered_items,
    normalize_items,
    template_items,
)


def test_subject_order_follows_first_appearance():
    ordered = assign_item_order([(2, None), (1, None), (1, 10)])
    assert [(i["subjectId"], i["subjectOrder"]) for i in ordered] == [(2, 0), (1, 1), (1, 1)]
    assert ordered[2]["subSubjectOrder"] == 0


def test_sub_subject_order_counts_per_subject():
    ordered = assign_item_order([(1, 11), (2, 21), (1, 12), (2, 22), (1, 13)])
    sub_orders = {(i["subjectId"], i["subSubjectId"]): i["subSubjectOrder"] for i in ordered}
    assert sub_orders == {(1, 11): 0, (1, 12): 1, (1, 13): 2, (2, 21): 0, (2, 22): 1}


def test_client_supplied_orders_are_ignored():
    pairs = normalize_items(
        [
            {"subjectId": 3, "subSubjectId": None, "subjectOrder": 9},
            {"subjectId": 1, "subSubjectId": None, "subjectOrder": 0},
        ]
    )
    ordered = assign_item_order(pairs)
    assert [(i["subjectId"], i["subjectOrder"]) for i in ordered] == [(3, 0), (1, 1)]


def test_normalize_rejects_duplicates_and_missing_subject():
    with pytest.raises(ValidationError) as exc:
        normalize_items(
            [
                {"subjectId": 1},
                {"subjectId": 1, "subSubjectId": None},
                {"subSubjectId": 4},
            ]
        )
    details = exc.value.details
    assert any("duplicates" in d for d in details)
    assert any("subjectId is required" in d for d in details)


def test_normalize_rejects_empty_list():
    with pytest.raises(ValidationError):
        normalize_items([])


def test_group_absorbs_main_item_when_subject_has_sub_subjects():
    grouped = group_ordered_items(assign_item_order([(2, None), (1, None), (1, 10)]))
    assert grouped == [
        {"subjectId": 2, "order": 0, "subSubjects": []},
        {"subjectId": 1, "order": 1, "subSubjects": [{"subSubjectId": 10, "order": 0}]},
    ]


def test_reorder_payload_resubmits_in_client_order():
    items = flatten_reorder_payload(
        [
            {"subjectId": 1, "order": 1, "subSubjects": []},
            {
                "subjectId": 2,
                "order": 0,
                "subSubjects": [
                    {"subSubjectId": 22, "order": 1},
                    {"subSubjectId": 21, "order": 0},
                ],
            },
        ]
    )
    assert items == [
        {"subjectId": 2, "subSubjectId": 21},
        {"subjectId": 2, "subSubjectId": 22},
        {"subjectId": 1, "subSubjectId": None},
    ]


def test_template_items_flattens_nested_subjects():
    template = {
        "subjects": [
            {"subjectId": 5, "order": 1, "subSubjects": []},
            {"subjectId": 4, "order": 0, "subSubjects": [{"subSubjectId": 8, "order": 0}]},
        ]
    }
    assert [(i["subjectId"], i["subSubjectId"]) for i in template_items(template)] == [
        (4, 8),
        (5, None),
    ]
