"""Default artifact producer generating synthetic analytics rows.

Stands in for a real analytics query until one is plugged in. It honors the
row cap, yields to the event loop between chunks so a cancelled export stops
promptly, and serializes to CSV, JSON, XLSX or PDF.
"""

import asyncio
import csv
import io
import json
from datetime import date, timedelta
from typing import Any, Dict, List

import structlog
from openpyxl import Workbook
from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, letter
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle

from export_service.models.export_job import ExportFormat
from export_service.producers.base import ArtifactProducer, ProducedArtifact
from export_service.producers.exceptions import InvalidParametersError, UnsupportedFormatError

logger = structlog.get_logger(__name__)

DEFAULT_ROW_LIMIT = 1000
CHUNK_SIZE = 500
COLUMNS = ["date", "entity", "dimension", "value"]

# A PDF table is laid out in memory in one go
PDF_MAX_ROWS = 10000

PDF_TABLE_STYLE = TableStyle(
    [
        ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 10),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 12),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
    ]
)


class SampleRowProducer(ArtifactProducer):
    """Produces deterministic analytics rows for an entity.

    Recognized parameters:
    - entity: name of the exported entity (default "pageviews")
    - limit: requested number of rows (default 1000, capped by max_rows)
    - start_date: ISO date of the first row (default 2024-01-01)
    """

    name = "sample"

    SUPPORTED_FORMATS = (ExportFormat.CSV, ExportFormat.JSON, ExportFormat.XLSX, ExportFormat.PDF)

    async def produce(
        self,
        export_format: ExportFormat,
        parameters: Dict[str, Any],
        max_rows: int,
    ) -> ProducedArtifact:
        if export_format not in self.SUPPORTED_FORMATS:
            raise UnsupportedFormatError(
                f"Format '{export_format.value}' is not supported by the {self.name} producer"
            )

        row_count = min(self._requested_rows(parameters), max_rows)
        if export_format == ExportFormat.PDF and row_count > PDF_MAX_ROWS:
            logger.warning("pdf_rows_limited", requested=row_count, limit=PDF_MAX_ROWS)
            row_count = PDF_MAX_ROWS

        rows = await self._generate_rows(parameters, row_count)
        # Spreadsheet and PDF rendering are CPU bound
        content = await asyncio.to_thread(self._render, export_format, rows)

        logger.debug(
            "sample_artifact_produced",
            format=export_format.value,
            rows=len(rows),
            size_bytes=len(content),
        )

        return ProducedArtifact(rows=len(rows), content=content)

    @staticmethod
    def _requested_rows(parameters: Dict[str, Any]) -> int:
        limit = parameters.get("limit", DEFAULT_ROW_LIMIT)
        try:
            limit = int(limit)
        except (TypeError, ValueError) as e:
            raise InvalidParametersError(f"Invalid row limit: {limit!r}") from e
        if limit < 0:
            raise InvalidParametersError(f"Row limit must be positive, got {limit}")
        return limit

    async def _generate_rows(
        self, parameters: Dict[str, Any], row_count: int
    ) -> List[Dict[str, Any]]:
        entity = str(parameters.get("entity", "pageviews"))
        try:
            start = date.fromisoformat(str(parameters.get("start_date", "2024-01-01")))
        except ValueError as e:
            raise InvalidParametersError(f"Invalid start_date: {e}") from e

        rows: List[Dict[str, Any]] = []
        for index in range(row_count):
            rows.append(
                {
                    "date": (start + timedelta(days=index // 24)).isoformat(),
                    "entity": entity,
                    "dimension": f"segment_{index % 24}",
                    "value": (index * 37 + len(entity)) % 1000,
                }
            )
            if (index + 1) % CHUNK_SIZE == 0:
                await asyncio.sleep(0)
        return rows

    def _render(self, export_format: ExportFormat, rows: List[Dict[str, Any]]) -> bytes:
        if export_format == ExportFormat.CSV:
            return self._to_csv(rows)
        if export_format == ExportFormat.XLSX:
            return self._to_xlsx(rows)
        if export_format == ExportFormat.PDF:
            return self._to_pdf(rows)
        return json.dumps(rows, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def _to_csv(rows: List[Dict[str, Any]]) -> bytes:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue().encode("utf-8")

    @staticmethod
    def _to_xlsx(rows: List[Dict[str, Any]]) -> bytes:
        """Write rows to a write-only workbook, one sheet with a header row."""
        workbook = Workbook(write_only=True)
        sheet = workbook.create_sheet(title="Export")
        sheet.append(COLUMNS)
        for row in rows:
            sheet.append([row[column] for column in COLUMNS])

        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    @staticmethod
    def _to_pdf(rows: List[Dict[str, Any]]) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=landscape(letter))

        table_data = [COLUMNS] + [[str(row[column]) for column in COLUMNS] for row in rows]
        table = Table(table_data, repeatRows=1)
        table.setStyle(PDF_TABLE_STYLE)
        doc.build([table])

        return buffer.getvalue()
