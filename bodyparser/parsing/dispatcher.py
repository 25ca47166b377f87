"""Pick a body decoding strategy from the declared content type."""

from beartype import beartype

from bodyparser.models.core import BodyStrategy

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_PREFIX = "multipart/form-data;"
JSON = "application/json"


@beartype
def resolve_content_type(value: str | list[str] | None) -> str:
    """Normalize a content-type header value, defaulting to urlencoded."""
    if isinstance(value, list):
        value = value[0] if value else None
    return (value or FORM_URLENCODED).strip()


@beartype
def select_strategy(content_type: str | list[str] | None) -> BodyStrategy:
    content_type = resolve_content_type(content_type)

    if content_type == FORM_URLENCODED or content_type.startswith(MULTIPART_PREFIX):
        return BodyStrategy.FORM
    if content_type == JSON:
        return BodyStrategy.JSON
    return BodyStrategy.NONE
