import csv
from io import StringIO
from typing import Iterable, Sequence

from fastapi.responses import Response

UTF8_BOM = "\ufeff"


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence[object]], bom: bool = False) -> str:
    buffer = StringIO()
    if bom:
        buffer.write(UTF8_BOM)
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()


def csv_response(filename: str, content: str) -> Response:
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-store",
    }
    return Response(content=content.encode("utf-8"), media_type="text/csv; charset=utf-8", headers=headers)
