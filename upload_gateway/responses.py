# upload_gateway/responses.py
"""
Integration and method responses for the upload routes.

Every tier is built on the same CORS header block, so the tiers cannot
drift apart when a header value changes.
"""

import re

from upload_gateway.config import CORS_CONFIG

CORS_HEADERS = (
    "Access-Control-Allow-Headers",
    "Access-Control-Allow-Methods",
    "Access-Control-Allow-Origin"
)

# method response header <- integration response header
SUCCESS_HEADER_MAPPING = {
    "Timestamp": "Date",
    "Content-Length": "Content-Length",
    "Content-Type": "Content-Type"
}

CLIENT_ERROR_PATTERN = r"4\d{2}"
SERVER_ERROR_PATTERN = r"5\d{2}"

# Error bodies from S3 are replaced by an empty document
EMPTY_BODY_TEMPLATE = {"application/json": "{}"}


def _quote(values):
    # Static values in response parameters are single-quoted literals
    return f"'{','.join(values) if isinstance(values, (list, tuple)) else values}'"


def _cors_block(allow_headers, allow_methods, allow_origin):
    values = (allow_headers, allow_methods, allow_origin)
    return {
        f"method.response.header.{header}": _quote(value)
        for header, value in zip(CORS_HEADERS, values)
    }


def cors_response_parameters(cors=None):
    """The shared CORS block: all three headers, always together."""
    cors = cors or CORS_CONFIG
    return _cors_block(cors["allow_headers"], cors["allow_methods"], cors["allow_origin"])


def build_response_mapping(cors=None):
    """
    Integration responses, in evaluation order.

    200 is the default tier and has no selection pattern. Upstream 4xx
    collapse into 400 and 5xx into 500; error bodies are not passed on.
    """
    cors_parameters = cors_response_parameters(cors)
    return [
        {
            "status_code": "200",
            "selection_pattern": None,
            "response_parameters": {
                **{
                    f"method.response.header.{target}": f"integration.response.header.{source}"
                    for target, source in SUCCESS_HEADER_MAPPING.items()
                },
                **cors_parameters
            }
        },
        {
            "status_code": "400",
            "selection_pattern": CLIENT_ERROR_PATTERN,
            "response_parameters": dict(cors_parameters),
            "response_templates": dict(EMPTY_BODY_TEMPLATE)
        },
        {
            "status_code": "500",
            "selection_pattern": SERVER_ERROR_PATTERN,
            "response_parameters": dict(cors_parameters),
            "response_templates": dict(EMPTY_BODY_TEMPLATE)
        }
    ]


def build_method_contract(route, require_api_key, cors=None):
    """
    Method request/response declaration for a route.

    The method responses mirror the integration response tiers, so
    200, 400 and 500 are the only statuses a client can see.
    """
    declared = {
        parameter: True
        for parameter in build_response_mapping(cors)[0]["response_parameters"]
    }
    error_declared = {
        parameter: True for parameter in cors_response_parameters(cors)
    }
    return {
        "http_method": route["http_method"],
        "authorization": "NONE",
        "api_key_required": bool(require_api_key),
        "request_parameters": dict(route["required_parameters"]),
        "method_responses": [
            {"status_code": "200", "response_parameters": declared},
            {"status_code": "400", "response_parameters": dict(error_declared)},
            {"status_code": "500", "response_parameters": dict(error_declared)}
        ]
    }


def select_integration_response(mapping, upstream_status):
    """
    Pick the response tier for an upstream status the way API Gateway does:
    the first selection pattern matching the whole status wins, otherwise
    the default (pattern-less) tier applies.
    """
    status = str(upstream_status)
    default = None
    for response in mapping:
        pattern = response.get("selection_pattern")
        if pattern is None:
            default = default or response
        elif re.fullmatch(pattern, status):
            return response
    return default


def build_preflight_response(cors=None):
    """Integration response parameters of the OPTIONS mock."""
    cors = cors or CORS_CONFIG
    preflight = cors["preflight"]
    return {
        "status_code": preflight["status_code"],
        "response_parameters": _cors_block(
            preflight["allow_headers"], preflight["allow_methods"], cors["allow_origin"]
        )
    }
