"""
CSV uploads and file download responses (CSV / JSON attachments).
"""
from fastapi import HTTPException, UploadFile, status
from fastapi.responses import Response

from inventrack.config import settings


def attachment(content: str, filename: str, media_type: str = "text/csv") -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def read_csv_upload(file: UploadFile) -> bytes:
    """Read an uploaded .csv file. 400 for other extensions or oversized files."""
    if not (file.filename or "").lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only .csv files are supported",
        )
    contents = await file.read()
    if len(contents) > settings.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large (max {settings.MAX_UPLOAD_MB} MB)",
        )
    return contents
