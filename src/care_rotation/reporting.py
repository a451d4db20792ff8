"""
Reporting and Export Module for Caregiver Rotation Scheduler

Handles PDF, Excel, and CSV export of the monthly rotation calendar with
work periods, coverage checks, and caregiver details.
"""

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, PageBreak
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from openpyxl.styles import PatternFill, Font
from datetime import datetime, date
import calendar
from pathlib import Path
from typing import Dict, List, Any
import logging

from .data_manager import DataManager, ShiftRecord
from .calendar_grid import WEEKDAY_NAMES, month_cells, period_segments, DAYS_PER_WEEK
from .periods import (
    ColoredPeriod,
    build_period_overview,
    caregiver_color,
    coverage_by_date,
    find_conflicts,
    find_gaps,
)

logger = logging.getLogger(__name__)


def month_bounds(year: int, month: int):
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


class ReportGenerator:
    """Main class for generating reports and exports"""

    def __init__(self, data_manager: DataManager):
        self.data_manager = data_manager
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom report styles"""
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Heading1'],
            fontSize=18,
            spaceAfter=30,
            alignment=1  # Center alignment
        ))

        self.styles.add(ParagraphStyle(
            name='CustomHeading',
            parent=self.styles['Heading2'],
            fontSize=14,
            spaceAfter=12
        ))

        self.styles.add(ParagraphStyle(
            name='PeriodBar',
            parent=self.styles['Normal'],
            fontSize=7,
            leading=8
        ))

    def _load_month(self, year: int, month: int) -> Dict[str, Any]:
        """Gather caregivers, records and derived periods for one month"""
        first_day, last_day = month_bounds(year, month)
        caregivers = self.data_manager.get_caregivers()
        records_by_caregiver = self.data_manager.get_shifts_by_caregiver([c.id for c in caregivers])
        overview = build_period_overview(caregivers, records_by_caregiver)

        month_periods = [cp for cp in overview
                         if cp.period.end_date >= first_day and cp.period.start_date <= last_day]
        active_ids = {c.id for c in caregivers if not c.archived}
        active_records = [r for cid, records in records_by_caregiver.items()
                          if cid in active_ids for r in records]
        coverage = coverage_by_date(active_records, first_day, last_day)

        return {
            "caregivers": caregivers,
            "records": records_by_caregiver,
            "periods": month_periods,
            "coverage": coverage,
        }

    def export_calendar_pdf(self, year: int, month: int, output_path: str) -> bool:
        """Export monthly rotation calendar to PDF"""
        try:
            month_data = self._load_month(year, month)

            doc = SimpleDocTemplate(
                output_path,
                pagesize=landscape(A4),
                rightMargin=0.5*inch,
                leftMargin=0.5*inch,
                topMargin=0.5*inch,
                bottomMargin=0.5*inch
            )

            story = []
            title = Paragraph(f"48/48 Rotation - {calendar.month_name[month]} {year}", self.styles['CustomTitle'])
            story.append(title)
            story.append(Spacer(1, 12))

            story.append(self._create_legend(month_data["caregivers"]))
            story.append(Spacer(1, 12))

            story.append(self._create_calendar_table(year, month, month_data["caregivers"], month_data["periods"]))

            story.append(PageBreak())
            story.extend(self._create_period_content(month_data))

            doc.build(story)
            return True

        except Exception as e:
            logger.error(f"Error creating PDF: {e}", exc_info=True)
            return False

    def _create_calendar_table(self, year: int, month: int, caregivers, periods: List[ColoredPeriod]) -> Table:
        """Month grid with one day-number row plus one bar lane per caregiver for every week"""
        lanes = max(len(caregivers), 1)
        rows_per_week = 1 + lanes
        cells = month_cells(year, month)
        weeks = len(cells) // DAYS_PER_WEEK

        data = [list(WEEKDAY_NAMES)]
        for week in range(weeks):
            week_cells = cells[week * DAYS_PER_WEEK:(week + 1) * DAYS_PER_WEEK]
            data.append([str(day.day) if day else '' for day in week_cells])
            for _ in range(lanes):
                data.append([''] * DAYS_PER_WEEK)

        style = [
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('BOX', (0, 0), (-1, -1), 1, colors.black),
            ('INNERGRID', (0, 0), (-1, 0), 0.5, colors.black),
        ]

        for week in range(weeks):
            top = 1 + week * rows_per_week
            bottom = top + rows_per_week - 1
            style.append(('LINEABOVE', (0, top), (-1, top), 0.5, colors.black))
            style.append(('LINEBEFORE', (1, top), (-1, bottom), 0.25, colors.lightgrey))
            style.append(('FONTNAME', (0, top), (-1, top), 'Helvetica-Bold'))
            for column, day in enumerate(cells[week * DAYS_PER_WEEK:(week + 1) * DAYS_PER_WEEK]):
                if day is None:
                    style.append(('BACKGROUND', (column, top), (column, bottom), colors.whitesmoke))

        for colored in periods:
            fill = colors.HexColor(colored.color.background)
            accent = colors.HexColor(colored.color.border)
            for segment in period_segments(colored.period.start_date, colored.period.end_date, year, month):
                row = 1 + segment.row * rows_per_week + 1 + colored.lane
                data[row][segment.start_column] = Paragraph(colored.label, self.styles['PeriodBar'])
                if segment.span > 1:
                    style.append(('SPAN', (segment.start_column, row), (segment.end_column, row)))
                style.append(('BACKGROUND', (segment.start_column, row), (segment.end_column, row), fill))
                if not segment.continues_before:
                    style.append(('LINEBEFORE', (segment.start_column, row), (segment.start_column, row), 3, accent))

        table = Table(data, colWidths=[1.45*inch]*DAYS_PER_WEEK, repeatRows=1)
        table.setStyle(TableStyle(style))
        return table

    def _create_legend(self, caregivers) -> Table:
        """Create caregiver color legend"""
        legend_data = [['Caregiver', 'Color', 'Status']]
        for index, caregiver in enumerate(caregivers):
            legend_data.append([caregiver.name, caregiver_color(index).name,
                                'Archived' if caregiver.archived else 'Active'])

        legend_table = Table(legend_data, colWidths=[2.5*inch, 1*inch, 1*inch])
        style = [
            ('BACKGROUND', (0, 0), (-1, 0), colors.lightgrey),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
        ]
        for index in range(len(caregivers)):
            style.append(('BACKGROUND', (1, index + 1), (1, index + 1),
                          colors.HexColor(caregiver_color(index).background)))
        legend_table.setStyle(TableStyle(style))
        return legend_table

    def _create_period_content(self, month_data: Dict[str, Any]) -> List:
        """Work period listing and coverage checks"""
        content = [Paragraph("Work Periods", self.styles['CustomTitle']), Spacer(1, 12)]

        period_data = [['Caregiver', 'Start', 'End', 'Days', 'Hours']]
        for colored in month_data["periods"]:
            period = colored.period
            period_data.append([
                colored.caregiver_name,
                f"{period.start_date:%d/%m/%Y} {colored.start_time}",
                f"{period.end_date:%d/%m/%Y}",
                str(period.length_days),
                str(period.duration_hours),
            ])

        period_table = Table(period_data, colWidths=[2.5*inch, 1.6*inch, 1.2*inch, 0.7*inch, 0.7*inch])
        period_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
        ]))
        content.append(period_table)
        content.append(Spacer(1, 20))

        content.append(Paragraph("Coverage", self.styles['CustomHeading']))
        conflicts = find_conflicts(month_data["coverage"])
        gaps = find_gaps(month_data["coverage"])
        coverage_data = [
            ['Check', 'Days', 'Dates'],
            ['More than one caregiver on duty', str(len(conflicts)),
             ', '.join(f"{day:%d/%m}" for day, _ in conflicts[:15])],
            ['Nobody on duty', str(len(gaps)), ', '.join(f"{day:%d/%m}" for day in gaps[:15])],
        ]
        coverage_table = Table(coverage_data, colWidths=[2.5*inch, 0.7*inch, 5*inch])
        coverage_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
        ]))
        if conflicts:
            coverage_table.setStyle(TableStyle([('BACKGROUND', (0, 1), (-1, 1), colors.lightcoral)]))
        if gaps:
            coverage_table.setStyle(TableStyle([('BACKGROUND', (0, 2), (-1, 2), colors.lightyellow)]))
        content.append(coverage_table)

        return content

    def export_schedule_excel(self, year: int, month: int, output_path: str) -> bool:
        """Export month shifts, periods, coverage and caregivers to Excel"""
        try:
            month_data = self._load_month(year, month)

            with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
                self._create_shift_dataframe(year, month, month_data).to_excel(writer, sheet_name='Shifts', index=False)
                self._create_period_dataframe(month_data).to_excel(writer, sheet_name='Periods', index=False)
                self._create_coverage_dataframe(month_data).to_excel(writer, sheet_name='Coverage', index=False)
                self._create_caregiver_dataframe().to_excel(writer, sheet_name='Caregivers', index=False)
                self._format_excel_worksheets(writer)

            return True

        except Exception as e:
            logger.error(f"Error exporting to Excel: {e}", exc_info=True)
            return False

    def _create_shift_dataframe(self, year: int, month: int, month_data: Dict[str, Any]) -> pd.DataFrame:
        """One row per shift record inside the month"""
        first_day, last_day = month_bounds(year, month)
        names = {c.id: c.name for c in month_data["caregivers"]}

        rows = []
        for caregiver_id, records in month_data["records"].items():
            for record in records:
                if first_day <= record.date <= last_day:
                    rows.append(self._shift_row(record, names.get(caregiver_id, caregiver_id)))

        columns = ['Date', 'Weekday', 'Caregiver', 'Kind', 'Start', 'End', 'Note']
        df = pd.DataFrame(rows, columns=columns)
        if not df.empty:
            df = df.sort_values(['Date', 'Caregiver']).reset_index(drop=True)
        return df

    def _shift_row(self, record: ShiftRecord, caregiver_name: str) -> Dict[str, Any]:
        return {
            'Date': record.date.isoformat(),
            'Weekday': WEEKDAY_NAMES[(record.date.weekday() + 1) % DAYS_PER_WEEK],
            'Caregiver': caregiver_name,
            'Kind': 'Work' if record.is_work else 'Off',
            'Start': record.start_time,
            'End': record.end_time,
            'Note': record.note or '',
        }

    def _create_period_dataframe(self, month_data: Dict[str, Any]) -> pd.DataFrame:
        rows = []
        for colored in month_data["periods"]:
            rows.append({
                'Caregiver': colored.caregiver_name,
                'Color': colored.color.name,
                'Start_Date': colored.period.start_date.isoformat(),
                'End_Date': colored.period.end_date.isoformat(),
                'Start_Time': colored.start_time,
                'Days': colored.period.length_days,
                'Hours': colored.period.duration_hours,
            })
        return pd.DataFrame(rows, columns=['Caregiver', 'Color', 'Start_Date', 'End_Date', 'Start_Time', 'Days', 'Hours'])

    def _create_coverage_dataframe(self, month_data: Dict[str, Any]) -> pd.DataFrame:
        names = {c.id: c.name for c in month_data["caregivers"]}
        rows = []
        for day, caregiver_ids in sorted(month_data["coverage"].items()):
            if not caregiver_ids:
                status = 'Gap'
            elif len(caregiver_ids) > 1:
                status = 'Conflict'
            else:
                status = 'OK'
            rows.append({
                'Date': day.isoformat(),
                'On_Duty': ', '.join(names.get(cid, cid) for cid in caregiver_ids),
                'Count': len(caregiver_ids),
                'Status': status,
            })
        return pd.DataFrame(rows, columns=['Date', 'On_Duty', 'Count', 'Status'])

    def _create_caregiver_dataframe(self) -> pd.DataFrame:
        """Create caregiver DataFrame for Excel export"""
        rows = []
        for index, caregiver in enumerate(self.data_manager.get_caregivers()):
            config = self.data_manager.get_config(caregiver.id)
            rows.append({
                'ID': caregiver.id,
                'Name': caregiver.name,
                'Phone': caregiver.phone,
                'Start_Of_Work': caregiver.start_of_work.isoformat() if caregiver.start_of_work else '',
                'Archived': caregiver.archived,
                'Color': caregiver_color(index).name,
                'Start_Time': config.start_time if config else '',
                'End_Time': config.end_time if config else '',
                'Weekly_Hours': config.weekly_hours if config else '',
                'Pattern_48_48': config.padrao48h if config else '',
            })
        return pd.DataFrame(rows, columns=['ID', 'Name', 'Phone', 'Start_Of_Work', 'Archived', 'Color',
                                           'Start_Time', 'End_Time', 'Weekly_Hours', 'Pattern_48_48'])

    def _format_excel_worksheets(self, writer):
        """Header styling and column widths for every sheet"""
        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        header_font = Font(color="FFFFFF", bold=True)

        for worksheet in writer.sheets.values():
            for cell in worksheet[1]:
                cell.fill = header_fill
                cell.font = header_font

            for column in worksheet.columns:
                max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
                worksheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)

    def export_schedule_csv(self, year: int, month: int, output_path: str) -> bool:
        """Export the month's shift records to CSV"""
        try:
            month_data = self._load_month(year, month)
            self._create_shift_dataframe(year, month, month_data).to_csv(output_path, index=False)
            return True

        except Exception as e:
            logger.error(f"Error exporting to CSV: {e}", exc_info=True)
            return False

    def create_dashboard_summary(self, year: int, month: int) -> str:
        """Create text summary of the month for the command line"""
        month_data = self._load_month(year, month)
        caregivers = month_data["caregivers"]
        active = [c for c in caregivers if not c.archived]
        conflicts = find_conflicts(month_data["coverage"])
        gaps = find_gaps(month_data["coverage"])

        lines = [
            f"ROTATION SUMMARY - {calendar.month_name[month]} {year}",
            "",
            "Caregivers:",
            f"• Active: {len(active)}",
            f"• Archived: {len(caregivers) - len(active)}",
            "",
            "Work Periods:",
        ]
        for caregiver in caregivers:
            periods = [cp for cp in month_data["periods"] if cp.period.caregiver_id == caregiver.id]
            hours = sum(cp.period.duration_hours for cp in periods)
            lines.append(f"• {caregiver.name}: {len(periods)} period(s), {hours}h")

        lines.extend([
            "",
            "Coverage:",
            f"• Days with more than one caregiver: {len(conflicts)}",
            f"• Days with nobody on duty: {len(gaps)}",
        ])
        if len(active) != 2:
            lines.append(f"• Warning: 48/48 coverage expects exactly 2 active caregivers, found {len(active)}")

        return "\n".join(lines)


class ExportManager:
    """Manager class for handling all export operations"""

    def __init__(self, data_manager: DataManager):
        self.data_manager = data_manager
        self.report_generator = ReportGenerator(data_manager)

    def export_calendar(self, year: int, month: int, format_type: str, output_path: str) -> bool:
        """Export calendar in specified format"""
        if format_type.lower() == 'pdf':
            return self.report_generator.export_calendar_pdf(year, month, output_path)
        elif format_type.lower() == 'excel':
            return self.report_generator.export_schedule_excel(year, month, output_path)
        elif format_type.lower() == 'csv':
            return self.report_generator.export_schedule_csv(year, month, output_path)
        else:
            raise ValueError(f"Unsupported format: {format_type}")

    def get_default_filename(self, year: int, month: int, format_type: str) -> str:
        """Generate default filename for export"""
        month_name = calendar.month_name[month].lower()
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        extension = 'xlsx' if format_type.lower() == 'excel' else format_type.lower()

        return f"rotation_{month_name}_{year}_{timestamp}.{extension}"

    def batch_export(self, year: int, month: int, output_dir: str,
                     formats: List[str] = None) -> Dict[str, bool]:
        """Export schedule in multiple formats"""
        if formats is None:
            formats = ['pdf', 'excel', 'csv']

        results = {}
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        for format_type in formats:
            file_path = output_path / self.get_default_filename(year, month, format_type)
            try:
                results[format_type] = self.export_calendar(year, month, format_type, str(file_path))
            except ValueError as e:
                logger.error(f"Error exporting {format_type}: {e}", exc_info=True)
                results[format_type] = False

        return results
