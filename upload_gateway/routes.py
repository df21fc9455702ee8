# upload_gateway/routes.py
"""
Route building for the upload gateway.

A route binds one PUT path template to an S3 object key template. Path
parameters of the incoming request (e.g. {userId}) are remapped onto
placeholders of the key template (e.g. {folder}) by the integration.
"""

import mimetypes
import re

from upload_gateway.errors import ConfigurationError

HTTP_METHOD = "PUT"

PASSTHROUGH_TEMPLATE = "$input.body"

DEFAULT_BINDINGS = {
    "folder": "userId",
    "object": "fileName"
}

_PARAMETER_SEGMENT = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")
_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")


def _parameter_name(segment):
    match = _PARAMETER_SEGMENT.match(segment)
    return match.group(1) if match else None


def split_path(path):
    """Split a path template or request path into its segments."""
    return path.strip("/").split("/")


def build_route(path_segments, storage_path, bindings=None, forward_content_type=False, content_types=None):
    """
    Build a PUT route that writes straight to the bucket.

    Args:
        path_segments: Ordered path template segments, e.g.
            ["users", "{userId}", "files", "{fileName}"]
        storage_path: Key template relative to the bucket, e.g.
            "data/background-images/{folder}/{object}"
        bindings: Key template placeholder -> incoming path parameter.
            Defaults to {folder: userId, object: fileName}.
        forward_content_type: Require the Content-Type header and pass it
            on to S3.
        content_types: Media types accepted by the route
            (e.g. ["image/png"]). None accepts anything. The gateway
            answers other media types with 415 Unsupported Media Type.

    Returns:
        Route dictionary

    Raises:
        ConfigurationError: if the templates do not line up.
    """
    bindings = dict(DEFAULT_BINDINGS if bindings is None else bindings)
    segments = list(path_segments)

    if not segments:
        raise ConfigurationError("A route needs at least one path segment")

    path_parameters = []
    for segment in segments:
        if not segment or "/" in segment:
            raise ConfigurationError(f"Invalid path segment {segment!r}")
        name = _parameter_name(segment)
        if name is None:
            if "{" in segment or "}" in segment:
                raise ConfigurationError(f"Malformed path parameter segment {segment!r}")
            continue
        if name in path_parameters:
            raise ConfigurationError(f"Path parameter '{name}' declared twice")
        path_parameters.append(name)

    placeholders = _PLACEHOLDER.findall(storage_path)
    for placeholder in placeholders:
        if placeholder not in bindings:
            raise ConfigurationError(
                f"Storage path placeholder '{{{placeholder}}}' in '{storage_path}' has no path parameter binding"
            )
    for target, source in bindings.items():
        if source not in path_parameters:
            raise ConfigurationError(
                f"Binding '{target}' refers to unknown path parameter '{source}'"
            )
        if target not in placeholders:
            raise ConfigurationError(
                f"Binding '{target}' is not used by storage path '{storage_path}'"
            )
    # Unbound parameters would let distinct requests collide on one key
    unbound = [name for name in path_parameters if name not in bindings.values()]
    if unbound:
        raise ConfigurationError(
            f"Path parameters {', '.join(unbound)} are not mapped into storage path '{storage_path}'"
        )

    required_parameters = {
        f"method.request.path.{name}": True for name in path_parameters
    }
    request_parameters = {
        f"integration.request.path.{target}": f"method.request.path.{source}"
        for target, source in bindings.items()
    }
    if forward_content_type:
        required_parameters["method.request.header.Content-Type"] = True
        request_parameters["integration.request.header.Content-Type"] = "method.request.header.Content-Type"

    # With NEVER passthrough, media types without a template are refused;
    # binary bodies bypass the template and reach S3 unchanged
    request_templates = None
    passthrough_behavior = "WHEN_NO_MATCH"
    if content_types:
        request_templates = {media_type: PASSTHROUGH_TEMPLATE for media_type in content_types}
        passthrough_behavior = "NEVER"

    return {
        "http_method": HTTP_METHOD,
        "path": "/" + "/".join(segments),
        "path_segments": segments,
        "path_parameters": path_parameters,
        "storage_path": storage_path,
        "bindings": bindings,
        "content_types": list(content_types) if content_types else None,
        "required_parameters": required_parameters,
        "request_parameters": request_parameters,
        "request_templates": request_templates,
        "passthrough_behavior": passthrough_behavior
    }


def build_routes(settings):
    """Build every route of a resolved preset (see config.get_gateway_settings)."""
    routes = []
    for route_config in settings["routes"]:
        storage_path = "/".join([
            settings["key_prefix"],
            route_config["category"],
            "{folder}",
            "{object}"
        ])
        routes.append(build_route(
            split_path(route_config["path"]),
            storage_path,
            bindings=route_config.get("bindings"),
            forward_content_type=settings.get("forward_content_type", False),
            content_types=route_config.get("content_types")
        ))

    paths = [route["path"] for route in routes]
    duplicates = sorted({path for path in paths if paths.count(path) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate routes: {', '.join(duplicates)}")
    return routes


def integration_uri(region, bucket_name, route):
    """API Gateway service integration URI for the route's S3 target."""
    return f"arn:aws:apigateway:{region}:s3:path/{bucket_name}/{route['storage_path']}"


def resolve_storage_key(route, path_params):
    """
    Object key the integration writes for concrete path parameters.
    """
    values = {}
    for target, source in route["bindings"].items():
        value = path_params.get(source)
        if not value or "/" in value:
            raise ValueError(f"Path parameter '{source}' must be a single non-empty segment")
        values[target] = value
    return _PLACEHOLDER.sub(lambda match: values[match.group(1)], route["storage_path"])


def accepts_content_type(route, content_type):
    """Whether the route accepts a media type. Unknown types are only accepted by unrestricted routes."""
    if not route["content_types"]:
        return True
    if not content_type:
        return False
    media_type = content_type.split(";")[0].strip().lower()
    return media_type in route["content_types"]


def match_route(routes, method, path, content_type=None):
    """
    Resolve a request against the declared routes, as the deployed gateway
    selects them: path template first, then the route's media types
    (the gateway refuses other media types with 415).

    The content type defaults to a guess from the last path segment.

    Returns:
        (route, path_params) or None when nothing matches
    """
    request_segments = split_path(path)
    for route in routes:
        if route["http_method"] != method.upper():
            continue
        if len(route["path_segments"]) != len(request_segments):
            continue

        params = {}
        for template, value in zip(route["path_segments"], request_segments):
            name = _parameter_name(template)
            if name is None:
                if template != value:
                    break
            elif not value:
                break
            else:
                params[name] = value
        else:
            media_type = content_type or mimetypes.guess_type(request_segments[-1])[0]
            if accepts_content_type(route, media_type):
                return route, params
    return None


def binary_media_types(routes):
    """Media types the REST API must treat as binary so uploads reach S3 untouched."""
    media_types = []
    for route in routes:
        for media_type in route["content_types"] or []:
            if media_type not in media_types:
                media_types.append(media_type)
    return media_types
