"""
LIGHT MANAGEMENT - Import / export XML partagés par les routes
Upload: un seul champ "file", fichier .xml (ou type MIME XML) uniquement.
"""

from pathlib import Path

from fastapi import HTTPException, Response, UploadFile

from services.export_assembler import ExportValidationError, export_document
from services.import_engine import ImportEnvelopeError, import_batch

XML_MIME_TYPES = ("text/xml", "application/xml")


async def read_xml_upload(file: UploadFile) -> bytes:
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    ext = Path(file.filename or "").suffix.lower()
    if file.content_type not in XML_MIME_TYPES and ext != ".xml":
        raise HTTPException(status_code=400, detail="Only XML files are allowed!")

    return await file.read()


async def run_import(entity: str, file: UploadFile, user: dict) -> dict:
    """Import d'un lot; enveloppe invalide = 400, sinon rapport complet"""
    content = await read_xml_upload(file)
    try:
        return await import_batch(entity, content, user=user.get("username", "system"))
    except ImportEnvelopeError as e:
        raise HTTPException(status_code=400, detail=e.message)


async def xml_download(entity: str, filename: str, user: dict) -> Response:
    """Export complet en pièce jointe; document invalide = 500"""
    try:
        xml = await export_document(entity, user=user.get("username", "system"))
    except ExportValidationError as e:
        raise HTTPException(
            status_code=500,
            detail={
                "message": "XML validation failed",
                "errors": e.errors,
                "details": e.message
            }
        )

    return Response(
        content=xml.encode("utf-8"),
        media_type="application/xml",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        }
    )
