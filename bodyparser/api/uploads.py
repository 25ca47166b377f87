"""Upload endpoint echoing what the parse engine decoded."""

from bodyparser.core.logger import LogIcon, logger
from bodyparser.core.router import Router
from bodyparser.models.core import ParsedRequest

router = Router(__file__, prefix="/files")


@router.post("/upload")
async def upload(parsed: ParsedRequest) -> ParsedRequest:
    """Store uploaded files and return the normalized request."""
    files = parsed.body.files if parsed.body else None
    logger.info("Upload handled", icon=LogIcon.UPLOAD, files=len(files or {}))
    return parsed
