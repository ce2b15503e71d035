import logging

from fastapi import APIRouter, Header, HTTPException, Request, status

from jobmatch.ai.errors import CompletionConfigError
from jobmatch.core.rate_limit import rate_limit
from jobmatch.core.security import check_api_key
from jobmatch.extraction.pipeline import extract_skills_visualization
from jobmatch.schemas.background import StructuredRecord
from jobmatch.schemas.background_api import BackgroundExtractRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/background/extract", response_model=StructuredRecord)
@rate_limit()
async def background_extract(
    request: Request,
    payload: BackgroundExtractRequest,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
):
    _ = request
    check_api_key(x_api_key)
    try:
        return await extract_skills_visualization(
            payload.resume_text,
            payload.documents,
            payload.project_links,
            previous_skills=payload.previous_skills,
        )
    except CompletionConfigError as exc:
        logger.warning("background_extract_unavailable code=%s: %s", exc.code, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
