"""Non-body parts of a parsed request: headers, query, method and path."""

from urllib.parse import parse_qsl

from bodyparser.transport.base import TransportRequest

MultiValueMap = dict[str, str | list[str]]


def _collect(target: MultiValueMap, key: str, value: str) -> None:
    """Store value under key, promoting to a list on the second occurrence."""
    if key not in target:
        target[key] = value
        return
    current = target[key]
    if isinstance(current, list):
        current.append(value)
    else:
        target[key] = [current, value]


def extract_headers(request: TransportRequest) -> MultiValueMap:
    """Lowercased header mapping; repeated names keep every value in arrival order."""
    headers: MultiValueMap = {}
    request.for_each_header(lambda name, value: _collect(headers, name.lower(), value))
    return headers


def parse_query(query_string: str | None) -> MultiValueMap:
    """Parse a raw query string.

    Keys are kept literally: ``a[b]=1`` yields the key ``"a[b]"``, never a
    nested structure. Repeated keys collect into a list.
    """
    query: MultiValueMap = {}
    if not query_string:
        return query
    for key, value in parse_qsl(query_string.removeprefix("?"), keep_blank_values=True):
        _collect(query, key, value)
    return query


def extract_method(request: TransportRequest) -> str:
    return request.get_method()


def extract_path(request: TransportRequest) -> str:
    return request.get_url()
