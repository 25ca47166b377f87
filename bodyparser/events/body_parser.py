"""Parse engine lifespan event."""

import aiofiles.os

from bodyparser.core.lifespan import BaseEvent
from bodyparser.core.logger import LogIcon, logger
from bodyparser.core.settings import settings as st
from bodyparser.engine import BodyParser


class BodyParserEvent(BaseEvent[BodyParser]):
    """Builds one ``BodyParser`` with the configured upload root."""

    name = "body_parser"

    async def startup(self) -> BodyParser:
        await aiofiles.os.makedirs(st.UPLOAD_TMP_DIR, exist_ok=True)
        parser = BodyParser(tmp_dir=st.UPLOAD_TMP_DIR, namespace=st.UPLOAD_NAMESPACE)
        logger.info("Upload root ready", icon=LogIcon.FILE, tmp_dir=parser.tmp_dir, namespace=parser.namespace)
        return parser
