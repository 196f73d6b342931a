"""List assessments (with grades and marks decomposition) for an academic year.
Run from the repo root:

    python scripts/list_assessments.py 2025-2026

Uses the same DB configuration as the app (env vars / .env). Without an
argument the current academic year is listed.
"""

import sys
import traceback

# Ensure we can import the app modules from the repo root
sys.path.insert(0, ".")

try:
    from app import app
    from utils.assessment_catalog import list_assessments_by_year
except Exception:
    print("Failed to import the app. Make sure you're running from the repo root.")
    traceback.print_exc()
    sys.exit(1)

year = sys.argv[1] if len(sys.argv) > 1 else None

try:
    with app.app_context():
        rows = list_assessments_by_year(year)
        if not rows:
            print("No assessments found for that academic year.")
        else:
            print(f"Found {len(rows)} assessments:\n")
            for a in rows:
                data = a.to_dict()
                parts = ", ".join(
                    f"{b['title']} {b['marks']:g}"
                    for sm in data["subject_marks"]
                    for b in sm["breakdowns"]
                )
                print(
                    f"#{data['id']} {data['name']} [{data['assessment_type']}] "
                    f"{data['scheduled_date'] or 'unscheduled'} grades={data['class_grades']} "
                    f"total={data['total_marks']:g}" + (f" ({parts})" if parts else "")
                )
except Exception:
    print("Database query failed:")
    traceback.print_exc()
    sys.exit(2)

print("\nDone.")
