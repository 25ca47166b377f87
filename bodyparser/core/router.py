"""Router that hands ``ParsedRequest`` parameters to handlers."""

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any

import orjson
from pydantic import BaseModel
from robyn import Request, Response, SubRouter, status_codes
from robyn.robyn import HttpMethod

from bodyparser.core.errors import BodyParserError, ErrorKind
from bodyparser.engine import BodyParser, default_parser
from bodyparser.models.core import ParsedRequest, ParseOptions
from bodyparser.transport.robyn import adapt

DEFAULT_PARSE_OPTIONS = ParseOptions(headers=True, body=True, query=True, path=True, method=True)

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.MAX_SIZE_EXCEEDED: 413,
    ErrorKind.PARTS_LIMIT: 413,
    ErrorKind.FIELDS_LIMIT: 413,
    ErrorKind.FILES_LIMIT: 413,
    ErrorKind.STREAM_ERROR: status_codes.HTTP_400_BAD_REQUEST,
    ErrorKind.TOKENIZER_ERROR: status_codes.HTTP_400_BAD_REQUEST,
}


def parse_endpoint_signature(sig: inspect.Signature) -> set[str]:
    """Names of the parameters annotated with ``ParsedRequest``."""
    return {name for name, param in sig.parameters.items() if param.annotation is ParsedRequest}


def resolve_parser(global_dependencies: dict | None) -> BodyParser:
    """Engine built by the lifespan, or the module default before startup."""
    state = (global_dependencies or {}).get("state")
    parser = state.get("body_parser") if state is not None else None
    return parser or default_parser


def json_response(payload: Any, status_code: int = status_codes.HTTP_200_OK) -> Response:
    return Response(
        status_code=status_code,
        headers={"content-type": "application/json"},
        description=orjson.dumps(payload).decode(),
    )


def parse_error_response(error: BodyParserError) -> Response:
    """Convert a parse rejection to an error Response."""
    status_code = ERROR_STATUS.get(error.kind, status_codes.HTTP_400_BAD_REQUEST)
    return json_response({"error": error.kind.value, "detail": str(error)}, status_code=status_code)


def parse_response(result: Any) -> Response:
    """Convert handler result to Response."""
    match result:
        case Response():
            return result
        case BaseModel():
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={"content-type": "application/json"},
                description=result.model_dump_json(exclude_none=True),
            )
        case dict():
            return json_response(result)
        case _:
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={},
                description=str(result),
            )


HTTP_METHODS = (
    HttpMethod.GET,
    HttpMethod.POST,
    HttpMethod.PUT,
    HttpMethod.DELETE,
    HttpMethod.PATCH,
    HttpMethod.HEAD,
    HttpMethod.OPTIONS,
    HttpMethod.TRACE,
    HttpMethod.CONNECT,
)

INJECTED = ("request", "global_dependencies")


def _create_method_wrapper(original_method: Callable) -> Callable:
    @wraps(original_method)
    def method_wrapper(*args, parse_options: ParseOptions | None = None, **kwargs) -> Callable:
        decorator = original_method(*args, **kwargs)
        options = parse_options or DEFAULT_PARSE_OPTIONS

        def handler_decorator(handler: Callable) -> Callable:
            sig = inspect.signature(handler)
            parsed_params = parse_endpoint_signature(sig)

            @wraps(handler)
            async def wrapped_handler(request: Request, global_dependencies=None, **h_kwargs):
                if parsed_params:
                    parser = resolve_parser(global_dependencies)
                    try:
                        parsed = await parser.parse(*adapt(request), options)
                    except BodyParserError as ex:
                        return parse_error_response(ex)
                    for name in parsed_params:
                        h_kwargs[name] = parsed

                # Pass injected values only to handlers that declared them
                if "request" in sig.parameters:
                    h_kwargs["request"] = request
                if "global_dependencies" in sig.parameters:
                    h_kwargs["global_dependencies"] = global_dependencies

                result = await handler(**h_kwargs)
                return parse_response(result)

            # Always expose request and global_dependencies for Robyn injection
            new_params = [
                inspect.Parameter("request", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=Request),
                inspect.Parameter("global_dependencies", inspect.Parameter.POSITIONAL_OR_KEYWORD),
            ]
            new_params += [
                param for name, param in sig.parameters.items() if name not in INJECTED and name not in parsed_params
            ]

            wrapped_handler.__signature__ = sig.replace(parameters=new_params)  # type: ignore[attr-defined]
            return decorator(wrapped_handler)

        return handler_decorator

    return method_wrapper


class Router(SubRouter):
    """SubRouter whose handlers may declare a ``ParsedRequest`` parameter."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._wrap_methods()

    def _wrap_methods(self) -> None:
        for method in HTTP_METHODS:
            method_name = str(method).split(".")[-1].lower()
            if hasattr(self, method_name):
                setattr(self, method_name, _create_method_wrapper(getattr(self, method_name)))
