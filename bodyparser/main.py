"""bodyparser demo service - streaming uploads powered by Robyn."""

from robyn import Robyn

from bodyparser.api.health import router as health_router
from bodyparser.api.uploads import router as uploads_router
from bodyparser.core.lifespan import create_lifespan
from bodyparser.core.logger import logger
from bodyparser.core.settings import settings as st
from bodyparser.events.body_parser import BodyParserEvent

app = Robyn(__file__)

# Lifespan events
lifespan = create_lifespan(app)
lifespan.register(BodyParserEvent)

app.startup_handler(lifespan.startup)
app.shutdown_handler(lifespan.shutdown)

# Routers
app.include_router(health_router)
app.include_router(uploads_router)


def main() -> None:
    logger.info("🚀 STARTING %s | HOST=%s | PORT=%s", st.API_NAME, st.API_HOST, st.API_PORT)
    app.start(host=st.API_HOST, port=st.API_PORT)


if __name__ == "__main__":
    main()
