import json
from pathlib import Path
from typing import List, Optional

from app.models import TestPlan
from app.services.exporter import PlanExporter
from app.services.reconciler import reconcile, summarize

EXPORT_FORMATS = ["md", "txt", "docx", "json", "report-json", "report-csv"]


def load_plan(path: Path) -> TestPlan:
    """Read a plan file; a `{plan, report}` wrapper as produced by the model is accepted too."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and "plan" in data:
        plan = dict(data["plan"])
        if data.get("report") is not None:
            plan.setdefault("qualityReport", data["report"])
        data = plan
    return TestPlan.model_validate(data)


def diff(original_path: Path, candidate_path: Path, out_path: Optional[Path] = None) -> str:
    merged = reconcile(load_plan(original_path), load_plan(candidate_path))
    content = json.dumps(merged.to_wire(), indent=2, ensure_ascii=False)
    if out_path:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(content, encoding="utf-8")
    return content


def render_diff_table(plan: TestPlan) -> str:
    marks = {"unchanged": " ", "modified": "~", "new": "+", "deleted": "-"}
    lines: List[str] = []
    for tc in plan.test_cases:
        mark = marks.get(tc.change_status.value if tc.change_status else "", "?")
        lines.append(f"{mark} #{tc.sequence_number} {tc.description.strip()} => {tc.expected_result.strip()}")
    return "\n".join(lines)


def export(plan_path: Path, fmt: str, out_dir: Path) -> Path:
    plan = load_plan(plan_path)
    exporter = PlanExporter(plan)
    content = exporter.render(fmt)

    out_dir.mkdir(parents=True, exist_ok=True)
    out_file = out_dir / exporter.filename(fmt)
    if isinstance(content, bytes):
        out_file.write_bytes(content)
    else:
        out_file.write_text(content, encoding="utf-8")
    return out_file


def main(argv: Optional[List[str]] = None) -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Diff and export test plan JSON files.")
    sub = parser.add_subparsers(dest="command", required=True)

    diff_cmd = sub.add_parser("diff", help="Reconcile an improved plan against its original.")
    diff_cmd.add_argument("original", help="Path to the original plan JSON.")
    diff_cmd.add_argument("candidate", help="Path to the improved plan JSON.")
    diff_cmd.add_argument("--out", help="Write the reconciled plan JSON here.")

    export_cmd = sub.add_parser("export", help="Render a plan JSON file.")
    export_cmd.add_argument("plan_json", help="Path to the plan JSON.")
    export_cmd.add_argument("--format", choices=EXPORT_FORMATS, default="md")
    export_cmd.add_argument("--out-dir", default="generated", help="Output directory (default: generated)")

    args = parser.parse_args(argv)

    if args.command == "diff":
        out_path = Path(args.out) if args.out else None
        content = diff(Path(args.original), Path(args.candidate), out_path)
        merged = TestPlan.model_validate_json(content)
        print(render_diff_table(merged))
        counts = summarize(merged)
        print(
            f"\nunchanged={counts.unchanged} modified={counts.modified} "
            f"new={counts.new} deleted={counts.deleted}"
        )
        if out_path:
            print(f"Wrote {out_path}")
    else:
        out_file = export(Path(args.plan_json), args.format, Path(args.out_dir))
        print(f"Wrote {out_file}")


if __name__ == "__main__":
    main()
