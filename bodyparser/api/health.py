"""Health check endpoint."""

from pydantic import BaseModel

from bodyparser.core.logger import LogIcon, logger
from bodyparser.core.router import Router
from bodyparser.core.settings import settings as st

router = Router(__file__, prefix="/")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
    upload_root: str


@router.get("/health")
async def health_check(global_dependencies) -> HealthResponse:
    logger.info("Health check requested", icon=LogIcon.HEALTHCHECK)
    state = global_dependencies.get("state") if global_dependencies else None
    parser = state.get("body_parser") if state is not None else None
    upload_root = parser.tmp_dir if parser is not None else str(st.UPLOAD_TMP_DIR)
    return HealthResponse(status="healthy", service=st.API_NAME, version=st.API_VERSION, upload_root=upload_root)
