"""
Scan routes

- analyze a plant photo (free tier limited, unlimited with a subscription)
- scan history (subscribers only)
- single scan, favorite toggle
- PDF report export (subscribers only)
"""
import base64
import logging

from fastapi import APIRouter, Request, Response, UploadFile

from plantscan import crud
from plantscan.api.deps import CurrentUser, PlantAIDep, SessionDep
from plantscan.api.errors import AppError, not_found
from plantscan.api.schemas import (
    FavoriteResponse,
    ScanAnalyzeResponse,
    ScanItem,
    ScanListResponse,
)
from plantscan.models import Scan
from plantscan.services.entitlement import require_access, require_free_scan_quota
from plantscan.services.report_pdf import render_scan_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scans", tags=["scans"])

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "heic"}
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
SCAN_NOT_FOUND = "Скан не найден"


def _to_item(scan: Scan) -> ScanItem:
    return ScanItem(
        id=scan.id,  # type: ignore[arg-type]
        imageUrl=scan.image_url,
        result=scan.result or {},
        plantFound=scan.plant_found,
        isFavorite=scan.is_favorite,
        createdAt=scan.created_at,
    )


@router.post("/analyze", response_model=ScanAnalyzeResponse)
def analyze(
    request: Request,
    session: SessionDep,
    current_user: CurrentUser,
    plant_ai: PlantAIDep,
    file: UploadFile | None = None,
) -> ScanAnalyzeResponse:
    """
    Identify the plant on an uploaded photo

    Request: POST /api/v1/scans/analyze
    Content-Type: multipart/form-data, field ``file``

    Only scans where a plant was recognized count against the free tier,
    so the limit is checked after the model has answered.

    Raises:
        AppError: 400 invalid upload, 402 free scans used up,
            500/502 model failures
    """
    if "multipart/form-data" not in request.headers.get("content-type", ""):
        raise AppError(
            code=400401,
            message="Неверный формат запроса. Ожидается multipart/form-data.",
            status_code=400,
        )
    if file is None or not file.filename:
        raise AppError(code=400402, message="Файл не найден или имеет неверный формат", status_code=400)
    ext = file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
    if ext not in ALLOWED_EXTENSIONS:
        raise AppError(code=400403, message="Недопустимый тип файла", status_code=400)

    content = file.file.read()
    if not content:
        raise AppError(code=400402, message="Файл не найден или имеет неверный формат", status_code=400)
    if len(content) > MAX_FILE_SIZE:
        raise AppError(code=400404, message="Файл слишком большой", status_code=400)

    mime = file.content_type or "image/jpeg"
    data_url = f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"

    analysis = plant_ai.analyze(image_data_url=data_url)
    if analysis.plant_found:
        require_free_scan_quota(session=session, user_id=current_user.id)  # type: ignore[arg-type]

    scan = crud.create_scan(
        session=session,
        user_id=current_user.id,  # type: ignore[arg-type]
        image_url=data_url,
        result=analysis.result,
        plant_found=analysis.plant_found,
    )
    logger.info(
        "Scan %s stored: user_id=%s plant_found=%s model=%s",
        scan.id,
        current_user.id,
        scan.plant_found,
        analysis.model,
    )
    return ScanAnalyzeResponse(
        id=scan.id,  # type: ignore[arg-type]
        plantFound=scan.plant_found,
        result=scan.result,
    )


@router.get("", response_model=ScanListResponse)
def list_scans(session: SessionDep, current_user: CurrentUser) -> ScanListResponse:
    """
    Scan history, newest first

    Request: GET /api/v1/scans
    """
    require_access(session=session, user_id=current_user.id)  # type: ignore[arg-type]
    scans = crud.list_plant_found_scans(session=session, user_id=current_user.id)  # type: ignore[arg-type]
    return ScanListResponse(scans=[_to_item(s) for s in scans])


@router.get("/{scan_id}", response_model=ScanItem)
def get_scan(scan_id: int, session: SessionDep, current_user: CurrentUser) -> ScanItem:
    scan = crud.get_owned_scan(session=session, scan_id=scan_id, user_id=current_user.id)  # type: ignore[arg-type]
    if scan is None:
        raise not_found(SCAN_NOT_FOUND)
    return _to_item(scan)


@router.post("/{scan_id}/favorite", response_model=FavoriteResponse)
def toggle_favorite(scan_id: int, session: SessionDep, current_user: CurrentUser) -> FavoriteResponse:
    scan = crud.get_owned_scan(session=session, scan_id=scan_id, user_id=current_user.id)  # type: ignore[arg-type]
    if scan is None:
        raise not_found(SCAN_NOT_FOUND)
    scan = crud.toggle_scan_favorite(session=session, scan=scan)
    return FavoriteResponse(id=scan.id, isFavorite=scan.is_favorite)  # type: ignore[arg-type]


@router.get("/{scan_id}/pdf")
def export_pdf(scan_id: int, session: SessionDep, current_user: CurrentUser) -> Response:
    """
    Download the scan report as PDF

    Request: GET /api/v1/scans/{scan_id}/pdf
    """
    scan = crud.get_owned_scan(session=session, scan_id=scan_id, user_id=current_user.id)  # type: ignore[arg-type]
    if scan is None:
        raise not_found(SCAN_NOT_FOUND)
    require_access(session=session, user_id=current_user.id)  # type: ignore[arg-type]

    pdf = render_scan_report(scan)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="scan-{scan.id}.pdf"',
            "Cache-Control": "private, no-store, max-age=0",
        },
    )
