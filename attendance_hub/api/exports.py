"""Download responses shared by the roster and attendance routers."""
import io
from typing import Literal

import pandas as pd
from fastapi.responses import StreamingResponse

from attendance_hub.services.spreadsheet import to_csv_text, to_excel_bytes

ExportFormat = Literal["csv", "excel"]


def download(frame: pd.DataFrame, basename: str, format: ExportFormat, sheet_name: str) -> StreamingResponse:
    if format == "csv":
        return StreamingResponse(
            iter([to_csv_text(frame)]),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={basename}.csv"},
        )
    return StreamingResponse(
        io.BytesIO(to_excel_bytes(frame, sheet_name)),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={basename}.xlsx"},
    )
