import logging
import pandas as pd
from typing import List, Dict, Any, Optional
from datetime import datetime, time
from pathlib import Path

from sqlalchemy.orm import Session

from spaced_review.crud import schedule_initial_review
from spaced_review.schemas import ConceptSheetRow, ReviewRecordResponse

logger = logging.getLogger(__name__)

DATE_FORMATS = ["%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%d-%m-%Y", "%Y/%m/%d", "%d/%m/%y", "%m/%d/%y", "%d-%m-%y"]

class ConceptSheetParser:
    """
    Parse concept sheets listing what a student has just learned.
    Expected columns: Subject, Concept, and optionally Learned On (or Date) and Quality.
    """

    @staticmethod
    def parse_frame(df: pd.DataFrame) -> List[Dict[str, Any]]:
        """Turn a sheet into row dicts, skipping rows without subject or concept"""
        # Normalize column names
        df.columns = df.columns.str.strip().str.lower().str.replace(" ", "_")

        rows = []
        for _, row in df.iterrows():
            subject = ConceptSheetParser._clean(row.get("subject"))
            concept = ConceptSheetParser._clean(row.get("concept"))
            if not subject or not concept:
                continue

            learned_on = ConceptSheetParser._parse_date(row.get("learned_on", row.get("date")))
            item = {"subject": subject, "concept": concept, "learned_on": learned_on}

            # Raw cell value; ConceptSheetRow rejects fractions and text per row
            quality = row.get("quality")
            if quality is not None and not pd.isna(quality):
                item["quality"] = quality.item() if hasattr(quality, "item") else quality

            rows.append(item)

        return rows

    @staticmethod
    def parse_csv_table(file_path: str) -> List[Dict[str, Any]]:
        """Parse CSV format concept sheet"""
        return ConceptSheetParser.parse_frame(pd.read_csv(file_path))

    @staticmethod
    def parse_excel_table(file_path: str) -> List[Dict[str, Any]]:
        """Parse Excel format concept sheet"""
        return ConceptSheetParser.parse_frame(pd.read_excel(file_path))

    @staticmethod
    def auto_parse(file_path: str) -> List[Dict[str, Any]]:
        """
        Automatically detect file type and parse accordingly.
        Supports: CSV, Excel (xlsx, xls)
        """
        file_ext = Path(file_path).suffix.lower()

        if file_ext == ".csv":
            return ConceptSheetParser.parse_csv_table(file_path)
        elif file_ext in [".xlsx", ".xls"]:
            return ConceptSheetParser.parse_excel_table(file_path)
        else:
            raise ValueError(f"Unsupported file format: {file_ext}. Use .csv or .xlsx")

    @staticmethod
    def _clean(value: Any) -> str:
        if value is None or pd.isna(value):
            return ""
        text = str(value).strip()
        return "" if text.lower() == "nan" else text

    @staticmethod
    def _parse_date(date_value: Any) -> Optional[str]:
        """Parse date from various formats to YYYY-MM-DD string"""
        if date_value is None or pd.isna(date_value):
            return None

        if isinstance(date_value, (datetime, pd.Timestamp)):
            return date_value.strftime("%Y-%m-%d")

        date_str = str(date_value).strip()
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(date_str, fmt).strftime("%Y-%m-%d")
            except ValueError:
                continue

        return None


def concept_id_for(subject: str, concept: str) -> str:
    """Stable concept id derived from subject and concept name"""
    return f"{subject.strip().lower()}:{concept.strip().lower()}"


def import_concepts(
    db: Session,
    student_id: int,
    rows: List[Dict[str, Any]],
    now: Optional[datetime] = None
) -> List[ReviewRecordResponse]:
    """
    Schedule a first review for every valid row.

    Rows carrying a learned_on date are scheduled from midnight of that day;
    invalid rows are logged and skipped.
    """
    scheduled = []
    for raw in rows:
        try:
            row = ConceptSheetRow(**raw)
        except ValueError as e:
            logger.warning("Skipping concept row %r: %s", raw, e)
            continue

        reference = datetime.combine(row.learned_on, time.min) if row.learned_on else now
        scheduled.append(schedule_initial_review(
            db,
            student_id,
            concept_id_for(row.subject, row.concept),
            subject_id=row.subject,
            initial_quality=row.quality,
            now=reference
        ))

    logger.info("Imported %d of %d concept rows for student %s", len(scheduled), len(rows), student_id)
    return scheduled
