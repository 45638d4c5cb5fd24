"""List exam score templates and summarize a class period.
Run from the repo root:

    python scripts/list_templates.py --teacher 7
    python scripts/list_templates.py --teacher 7 --class 9 --month 3 --year 2025

Uses the same DB configuration as the app (.env / DATABASE_URL).
"""

import argparse
import sys
import traceback

# Ensure we can import app/utils from the repo root
sys.path.insert(0, ".")

try:
    from app import create_app
    from models import SchoolClass
    from utils.score_grid import ScoreGrid
    from utils.template_store import SqlTemplateStore
    from utils.template_utils import template_items
except Exception:
    print("Failed to import the app. Make sure you're running from the repo root.")
    traceback.print_exc()
    sys.exit(1)


def _item_label(item):
    sub = item["subSubjectId"]
    return f"{item['subjectId']}/{sub}" if sub else f"{item['subjectId']}"


def print_templates(templates):
    print(f"Found {len(templates)} templates:\n")
    for t in templates:
        state = "active" if t["isActive"] else "inactive"
        items = template_items(t)
        print(f"  #{t['id']} {t['name']} (grade {t['gradeLevel']}, {state}, {len(items)} columns)")
        print(f"      columns: {', '.join(_item_label(i) for i in items)}")


def print_period(store, teacher_id, class_id, month, year):
    school_class = store.session.get(SchoolClass, class_id)
    if school_class is None:
        print(f"\nClass {class_id} not found.")
        return

    grid = ScoreGrid(
        store,
        teacher_id=teacher_id,
        class_id=class_id,
        month=month,
        year=year,
        students=[s.to_dict() for s in school_class.students],
        grade_level=school_class.grade_level,
    ).load()

    print(f"\nClass {class_id} {month}/{year}: {len(grid.scores)} score rows")
    if grid.template:
        print(f"Confirmed template: #{grid.template['id']} {grid.template['name']}")
    else:
        print("No template confirmed for this period.")
    if grid.is_empty:
        return

    header = "  ".join(f"{g['subjectId']}(x{g['span']})" for g in grid.header_groups())
    print(f"Subjects: {header}\n")
    for row in grid.summaries():
        print(
            f"  student {row['studentId']}: total {row['total']:.2f} "
            f"avg {row['average']:.2f} ({row['count']} scored) grade {row['grade']}"
        )


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--teacher", type=int, required=True)
    parser.add_argument("--class", dest="class_id", type=int)
    parser.add_argument("--month", type=int)
    parser.add_argument("--year", type=int)
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        store = SqlTemplateStore()
        templates = store.list_templates(teacher_id=args.teacher)
        if not templates:
            print("No templates found for this teacher.")
        else:
            print_templates(templates)

        if args.class_id and args.month and args.year:
            print_period(store, args.teacher, args.class_id, args.month, args.year)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception:
        print("Database query failed:")
        traceback.print_exc()
        sys.exit(2)
