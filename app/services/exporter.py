import io
import json
from typing import Dict, List

import pandas as pd
from docx import Document
from docx.shared import Pt
from xlsxwriter.utility import xl_range

from app.models import TestPlan
from app.quality import evaluate
from app.services.reconciler import active_cases

MEDIA_TYPES = {
    "txt": "text/plain; charset=utf-8",
    "md": "text/markdown; charset=utf-8",
    "json": "application/json",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "report-json": "application/json",
    "report-csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

STATUS_COLORS = {
    "unchanged": "#D9D9D9",
    "modified": "#FFD966",
    "new": "#93C47D",
}


class PlanExporter:
    """
    Read-only renderings of a test plan. Cases tagged `deleted` never leave the UI.
    """

    def __init__(self, plan: TestPlan):
        self.plan = plan
        self.cases = active_cases(plan)

    def filename(self, fmt: str) -> str:
        ident = self.plan.identifier or "export"
        if fmt.startswith("report-"):
            return f"quality-report-{ident}.{fmt.split('-', 1)[1]}"
        return f"test-plan-{ident}.{fmt}"

    def to_text(self) -> str:
        """Plain dump for the clipboard."""
        p = self.plan
        lines = [
            "TEST PLAN INFORMATION",
            "----------------------------------",
            f"Project: {p.project_name}",
            f"Identifier: {p.identifier}",
            f"Name: {p.name}",
            f"User Story: {p.user_story_ref}",
            f"QA Analyst: {p.qa_analyst_name}",
            f"Test Environment and Data: {p.test_environment_and_data}",
            "",
            "TEST CASES",
            "----------------------------------",
        ]
        for tc in self.cases:
            lines.extend(
                [
                    "",
                    f"#{tc.sequence_number}",
                    f"Description: {tc.description}",
                    f"Expected Result: {tc.expected_result}",
                    "---",
                ]
            )
        return "\n".join(lines).strip()

    def to_markdown(self) -> str:
        p = self.plan
        md = []
        md.append("## TEST CASE INFORMATION\n")
        md.append(f"> **Test plan identifier:** {p.identifier}")
        md.append(f"> **Test plan name:** {p.name}")
        md.append("{.is-info}")
        md.append(f"> **Associated user story:** {p.user_story_ref}")
        md.append(f"> **QA analyst:** {p.qa_analyst_name}")
        md.append("{.is-info}\n")
        md.append("## TEST CASE SPECIFICATION")

        for tc in self.cases:
            # Block quotes break on embedded newlines.
            description = tc.description.replace("\n", " ")
            expected = tc.expected_result.replace("\n", " ")
            md.append("")
            md.append(f"> **Test case number:** {tc.sequence_number}")
            md.append(f"> **Test case:** {description}")
            md.append(f"> **Expected result:** {expected}")

        return "\n".join(md).strip()

    def to_json(self) -> str:
        data = self.plan.model_copy(update={"test_cases": self.cases}).to_wire()
        return json.dumps(data, indent=2, ensure_ascii=False)

    def to_docx(self) -> bytes:
        """Word document with the plan header and a three-column case table."""
        p = self.plan
        doc = Document()
        style = doc.styles["Normal"]
        style.font.name = "Arial"
        style.font.size = Pt(10)

        doc.add_heading(f"Test Plan: {p.name}", level=1)
        doc.add_heading("Test Plan Information", level=2)
        for label, value in (
            ("Project", p.project_name),
            ("Identifier", p.identifier),
            ("Plan Name", p.name),
            ("User Story", p.user_story_ref),
            ("QA Analyst", p.qa_analyst_name),
        ):
            para = doc.add_paragraph()
            para.add_run(f"{label}: ").bold = True
            para.add_run(value)
        para = doc.add_paragraph()
        para.add_run("Test Environment and Data:").bold = True
        doc.add_paragraph(p.test_environment_and_data)

        doc.add_heading("Test Cases", level=2)
        table = doc.add_table(rows=1, cols=3)
        table.style = "Table Grid"
        header = table.rows[0].cells
        for cell, title in zip(header, ("#", "Test Case (Description)", "Expected Result")):
            cell.text = ""
            cell.paragraphs[0].add_run(title).bold = True
        for tc in self.cases:
            row = table.add_row().cells
            row[0].text = str(tc.sequence_number)
            row[1].text = tc.description
            row[2].text = tc.expected_result

        buf = io.BytesIO()
        doc.save(buf)
        return buf.getvalue()

    def report_to_json(self) -> str:
        data = {
            "identifier": self.plan.identifier,
            "name": self.plan.name,
            "qualityReport": self.plan.quality_report.to_wire() if self.plan.quality_report else None,
        }
        return json.dumps(data, indent=2, ensure_ascii=False)

    def report_to_csv(self) -> str:
        rows = [
            {
                "Metrica": m.name,
                "Definicion": m.definition,
                "Puntaje": m.score,
                "Umbral": m.threshold,
                "Estado": "Pasa" if m.passes else "No Pasa",
            }
            for m in evaluate(self.plan.quality_report)
        ]
        df = pd.DataFrame(rows, columns=["Metrica", "Definicion", "Puntaje", "Umbral", "Estado"])
        # BOM so spreadsheet apps pick UTF-8.
        return "\ufeff" + df.to_csv(index=False)

    def render(self, fmt: str):
        renderers = {
            "txt": self.to_text,
            "md": self.to_markdown,
            "json": self.to_json,
            "docx": self.to_docx,
            "report-json": self.report_to_json,
            "report-csv": self.report_to_csv,
        }
        if fmt not in renderers:
            raise ValueError(f"unsupported export format: {fmt}")
        return renderers[fmt]()


def plans_to_xlsx(plans: List[TestPlan], filename: str) -> None:
    """
    Multi-tab workbook: plan overview, test cases with their change status, quality scores.
    """
    plan_rows: List[Dict] = []
    case_rows: List[Dict] = []
    score_rows: List[Dict] = []
    for plan in plans:
        plan_rows.append(
            {
                "Identifier": plan.identifier,
                "Name": plan.name,
                "Project": plan.project_name,
                "User Story": plan.user_story_ref,
                "QA Analyst": plan.qa_analyst_name,
                "Environment and Data": plan.test_environment_and_data,
                "Test Cases": len(active_cases(plan)),
            }
        )
        for tc in active_cases(plan):
            case_rows.append(
                {
                    "Plan": plan.identifier,
                    "#": tc.sequence_number,
                    "Description": tc.description,
                    "Expected Result": tc.expected_result,
                    "Status": tc.change_status.value if tc.change_status else "",
                }
            )
        for m in evaluate(plan.quality_report):
            score_rows.append(
                {
                    "Plan": plan.identifier,
                    "Metric": m.name,
                    "Score": m.score,
                    "Threshold": m.threshold,
                    "Passes": "PASS" if m.passes else "FAIL",
                }
            )

    plans_df = pd.DataFrame(
        plan_rows,
        columns=["Identifier", "Name", "Project", "User Story", "QA Analyst", "Environment and Data", "Test Cases"],
    )
    cases_df = pd.DataFrame(case_rows, columns=["Plan", "#", "Description", "Expected Result", "Status"])
    scores_df = pd.DataFrame(score_rows, columns=["Plan", "Metric", "Score", "Threshold", "Passes"])

    with pd.ExcelWriter(filename, engine="xlsxwriter") as writer:
        plans_df.to_excel(writer, sheet_name="Plans", index=False)
        cases_df.to_excel(writer, sheet_name="Test Cases", index=False)
        scores_df.to_excel(writer, sheet_name="Quality", index=False)

        workbook = writer.book
        header_fmt = workbook.add_format({
            'bold': True,
            'text_wrap': True,
            'valign': 'top',
            'fg_color': '#2563EB',
            'font_color': '#FFFFFF',
            'border': 1
        })
        cell_fmt = workbook.add_format({'text_wrap': True, 'valign': 'top', 'border': 1})

        def format_sheet(sheet_name, df, widths):
            ws = writer.sheets[sheet_name]
            for col_num, value in enumerate(df.columns.values):
                ws.write(0, col_num, value, header_fmt)
            ws.set_column(0, max(len(df.columns) - 1, 0), 20, cell_fmt)
            for cols, width in widths.items():
                ws.set_column(cols, width, cell_fmt)

        format_sheet("Plans", plans_df, {"B:B": 40, "F:F": 50})
        format_sheet("Test Cases", cases_df, {"B:B": 6, "C:D": 50})
        format_sheet("Quality", scores_df, {"B:B": 32})

        def color_column(sheet_name, df, column, colors):
            if df.empty:
                return
            idx = list(df.columns).index(column)
            rng = xl_range(1, idx, len(df), idx)
            ws = writer.sheets[sheet_name]
            for value, color in colors.items():
                ws.conditional_format(rng, {
                    'type': 'cell',
                    'criteria': '==',
                    'value': f'"{value}"',
                    'format': workbook.add_format({'bg_color': color, 'border': 1}),
                })

        color_column("Test Cases", cases_df, "Status", STATUS_COLORS)
        color_column("Quality", scores_df, "Passes", {"PASS": "#93C47D", "FAIL": "#E06666"})
