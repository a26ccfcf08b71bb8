"""Cap table workbook renderer.

One sheet per entity with its holders and share classes, plus an "Ownership
Structure" sheet and an "Audit Trail" sheet. Values come from the
repository's computed views; totals and available shares are Excel formulas
so edited inputs recalculate.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.cell.cell import Cell
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ownership_domain import OwnershipRepository

HOLDER_HEADERS = [
    "Holder",
    "Holder Type",
    "Share Class",
    "Shares",
    "% Issued",
    "% Fully Diluted",
    "Effective Date",
    "Expiry Date",
]

CLASS_HEADERS = [
    "Share Class",
    "Type",
    "Authorized",
    "Issued",
    "Available",
    "Holders",
    "Voting",
]

STRUCTURE_HEADERS = ["Owner", "Owned", "Share Class", "Shares", "% of Owned"]

AUDIT_HEADERS = ["Timestamp (UTC)", "User", "Action", "Record Type", "Record Id", "Related", "Reason"]

AUDIT_SHEET_TITLE = "Audit Trail"
STRUCTURE_SHEET_TITLE = "Ownership Structure"

_INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")


class CapTableWorkbookRenderer:
    """Render cap tables of a repository into an openpyxl Workbook.

    Example:
        renderer = CapTableWorkbookRenderer(repository)
        renderer.render([opco.id], "cap_tables.xlsx")
    """

    def __init__(self, repository: OwnershipRepository, include_audit_trail: bool = True):
        self.repository = repository
        self.include_audit_trail = include_audit_trail

        # Fonts
        self.title_font = Font(size=14, bold=True)
        self.bold_font = Font(bold=True)
        self.label_font = Font(italic=True, color="595959")
        self.empty_font = Font(italic=True, color="808080")

        # Header styling
        self.header_font = Font(bold=True, color="FFFFFF")  # White text on dark blue
        self.header_fill = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")

        # Section header styling
        self.section_header_font = Font(italic=True, bold=True)
        self.section_header_fill = PatternFill(start_color="E7E6E6", end_color="E7E6E6", fill_type="solid")

        self.thin_border = Border(
            left=Side(style="thin"),
            right=Side(style="thin"),
            top=Side(style="thin"),
            bottom=Side(style="thin"),
        )
        self.top_border = Border(top=Side(style="medium"))
        self.center_align = Alignment(horizontal="center", vertical="center", wrap_text=True)

    def render(self, entity_ids: Optional[Sequence[str]], output_path: str) -> str:
        wb = self.build_workbook(entity_ids)
        wb.save(output_path)
        return output_path

    def build_workbook(self, entity_ids: Optional[Sequence[str]] = None) -> Workbook:
        """Build the workbook.

        Args:
            entity_ids: Entities to render, in order (default: every entity)

        Raises:
            NotFoundError: If an id does not name an entity
        """
        if entity_ids is None:
            entity_ids = [entity.id for entity in self.repository.get_all_entities()]

        wb = Workbook()
        wb.remove(wb.active)

        used_titles: List[str] = []
        for entity_id in entity_ids:
            self._render_cap_table_sheet(wb, entity_id, used_titles)

        self._render_structure_sheet(wb)
        if self.include_audit_trail:
            self._render_audit_sheet(wb)

        return wb

    # ------------------------------------------------------------------ #
    # Cap table sheets
    # ------------------------------------------------------------------ #

    def _render_cap_table_sheet(self, wb: Workbook, entity_id: str, used_titles: List[str]) -> Worksheet:
        view = self.repository.get_cap_table_view(entity_id)
        frames = self.repository.cap_table_frames(entity_id)

        sheet = wb.create_sheet(title=self._sheet_title(f"Cap Table - {view.entity_name}", used_titles))
        sheet.sheet_view.showGridLines = False

        sheet["A1"].value = f"Cap Table - {view.entity_name}"
        sheet["A1"].font = self.title_font
        sheet["A2"].value = view.entity_type
        sheet["A2"].font = self.label_font
        sheet["B2"].value = f"Calculated {self._excel_datetime(view.calculated_at):%Y-%m-%d %H:%M}"
        sheet["B2"].font = self.label_font

        header_row = 4
        self._write_headers(sheet, header_row, HOLDER_HEADERS)
        sheet.freeze_panes = f"B{header_row + 1}"

        holders = frames["cap_table_ownership"]
        row = self._write_holder_rows(sheet, header_row + 1, holders)

        class_header_row = row + 2
        section = sheet.cell(row=class_header_row - 1, column=1, value="Share Classes")
        section.font = self.section_header_font
        section.fill = self.section_header_fill
        self._write_headers(sheet, class_header_row, CLASS_HEADERS)
        self._write_class_rows(sheet, class_header_row + 1, frames["cap_table_by_class"], view)

        widths = [28, 14, 22, 14, 11, 14, 14, 14]
        for idx, width in enumerate(widths, start=1):
            sheet.column_dimensions[get_column_letter(idx)].width = width
        return sheet

    def _write_holder_rows(self, sheet: Worksheet, start_row: int, holders: pd.DataFrame) -> int:
        """Write holder lines and the total row; returns the total row index."""
        if holders.empty:
            cell = sheet.cell(row=start_row, column=1, value="No ownership recorded")
            cell.font = self.empty_font
            return start_row

        row = start_row
        for record in holders.to_dict("records"):
            self._text(sheet.cell(row=row, column=1), record["owner_name"])
            self._text(sheet.cell(row=row, column=2), record["owner_type"])
            self._text(sheet.cell(row=row, column=3), record["share_class_name"])

            shares = sheet.cell(row=row, column=4, value=float(record["shares"]))
            shares.number_format = "#,##0"

            pct = sheet.cell(row=row, column=5, value=float(record["percentage"]) / 100)
            pct.number_format = "0.00%"
            fd_pct = sheet.cell(row=row, column=6, value=float(record["fully_diluted_percentage"]) / 100)
            fd_pct.number_format = "0.00%"

            sheet.cell(row=row, column=7, value=record["effective_date"]).number_format = "yyyy-mm-dd"
            expiry = record["expiry_date"]
            if expiry is not None and not pd.isna(expiry):
                sheet.cell(row=row, column=8, value=expiry).number_format = "yyyy-mm-dd"

            for col in range(1, len(HOLDER_HEADERS) + 1):
                sheet.cell(row=row, column=col).border = self.thin_border
            row += 1

        total_row = row
        last = total_row - 1
        label = sheet.cell(row=total_row, column=1, value="Total")
        label.font = self.bold_font
        total_shares = sheet.cell(row=total_row, column=4, value=f"=SUM(D{start_row}:D{last})")
        total_shares.number_format = "#,##0"
        total_pct = sheet.cell(row=total_row, column=5, value=f"=SUM(E{start_row}:E{last})")
        total_pct.number_format = "0.00%"
        for col in range(1, len(HOLDER_HEADERS) + 1):
            sheet.cell(row=total_row, column=col).border = self.top_border
            sheet.cell(row=total_row, column=col).font = self.bold_font
        return total_row

    def _write_class_rows(self, sheet: Worksheet, start_row: int, by_class: pd.DataFrame, view) -> None:
        if by_class.empty:
            cell = sheet.cell(row=start_row, column=1, value="No share classes issued")
            cell.font = self.empty_font
            return

        voting = {sc.id: sc.voting_rights for sc in view.share_classes}
        row = start_row
        for record in by_class.to_dict("records"):
            self._text(sheet.cell(row=row, column=1), record["share_class_name"])
            self._text(sheet.cell(row=row, column=2), record["share_class_type"])
            sheet.cell(row=row, column=3, value=float(record["authorized_shares"])).number_format = "#,##0"
            sheet.cell(row=row, column=4, value=float(record["issued_shares"])).number_format = "#,##0"
            sheet.cell(row=row, column=5, value=f"=C{row}-D{row}").number_format = "#,##0"
            sheet.cell(row=row, column=6, value=int(record["holders_count"]))
            sheet.cell(row=row, column=7, value="Yes" if voting.get(record["share_class_id"]) else "No")
            for col in range(1, len(CLASS_HEADERS) + 1):
                sheet.cell(row=row, column=col).border = self.thin_border
            row += 1

    # ------------------------------------------------------------------ #
    # Structure and audit sheets
    # ------------------------------------------------------------------ #

    def _render_structure_sheet(self, wb: Workbook) -> Worksheet:
        edges = self.repository.hierarchy_frames()["ownership_edges"]
        sheet = wb.create_sheet(title=STRUCTURE_SHEET_TITLE)
        sheet.sheet_view.showGridLines = False
        self._write_headers(sheet, 1, STRUCTURE_HEADERS)
        sheet.freeze_panes = "A2"

        for row, record in enumerate(edges.to_dict("records"), start=2):
            self._text(sheet.cell(row=row, column=1), record["owner_name"] or record["owner_entity_id"])
            self._text(sheet.cell(row=row, column=2), record["owned_name"] or record["owned_entity_id"])
            self._text(sheet.cell(row=row, column=3), record["share_class_name"])
            sheet.cell(row=row, column=4, value=float(record["shares"])).number_format = "#,##0"
            sheet.cell(row=row, column=5, value=float(record["percentage"]) / 100).number_format = "0.00%"

        for idx, width in enumerate([28, 28, 22, 14, 12], start=1):
            sheet.column_dimensions[get_column_letter(idx)].width = width
        return sheet

    def _render_audit_sheet(self, wb: Workbook) -> Worksheet:
        sheet = wb.create_sheet(title=AUDIT_SHEET_TITLE)
        sheet.sheet_view.showGridLines = False
        self._write_headers(sheet, 1, AUDIT_HEADERS)
        sheet.freeze_panes = "A2"

        for row, entry in enumerate(self.repository.get_audit_trail(), start=2):
            stamp = sheet.cell(row=row, column=1, value=self._excel_datetime(entry.timestamp))
            stamp.number_format = "yyyy-mm-dd hh:mm:ss"
            self._text(sheet.cell(row=row, column=2), entry.user_id)
            self._text(sheet.cell(row=row, column=3), entry.action)
            self._text(sheet.cell(row=row, column=4), entry.entity_type)
            self._text(sheet.cell(row=row, column=5), entry.entity_id)
            self._text(sheet.cell(row=row, column=6), ", ".join(entry.related_entity_ids))
            self._text(sheet.cell(row=row, column=7), entry.change_reason)

        for idx, width in enumerate([20, 14, 10, 14, 44, 60, 30], start=1):
            sheet.column_dimensions[get_column_letter(idx)].width = width
        return sheet

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _write_headers(self, sheet: Worksheet, row: int, headers: Iterable[str]) -> None:
        for col, text in enumerate(headers, start=1):
            cell = sheet.cell(row=row, column=col, value=text)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = self.center_align

    @staticmethod
    def _text(cell: Cell, value: Optional[str]) -> Cell:
        """Write user-supplied text; a leading "=" must stay text, never a formula."""
        cell.value = value
        if isinstance(value, str):
            cell.data_type = "s"
        return cell

    @staticmethod
    def _sheet_title(title: str, used_titles: List[str]) -> str:
        """Excel sheet names: max 31 characters, no []:*?/\\ and unique per workbook."""
        base = _INVALID_TITLE_CHARS.sub("-", title)[:31]
        candidate = base
        suffix = 2
        while candidate.lower() in (t.lower() for t in used_titles) or candidate in (
            AUDIT_SHEET_TITLE,
            STRUCTURE_SHEET_TITLE,
        ):
            tag = f" ({suffix})"
            candidate = base[: 31 - len(tag)] + tag
            suffix += 1
        used_titles.append(candidate)
        return candidate

    @staticmethod
    def _excel_datetime(value: datetime) -> datetime:
        """Excel has no time zones: store aware times as naive UTC."""
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
