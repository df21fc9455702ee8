# upload_gateway/config.py
"""
Configuration for the upload gateway.
Values here are defaults; the deployment environment can override the
most common ones (see get_gateway_settings).
"""

import copy
import os

from upload_gateway.errors import ConfigurationError

# API Configuration
API_CONFIG = {
    "name": "aws-whitemap-api",
    "description": "Direct-to-S3 upload API",
    "stage_name": "v1",
    "region": "ap-northeast-1",
    "endpoint_type": "REGIONAL",
    "aws_plugin_version": "v6.0.0"
}

# S3 Bucket Configuration
STORAGE_CONFIG = {
    # Existing bucket owned by the client stack (CloudFront origin)
    "bucket_name": "aws-whitemap-cloudfront",
    "key_prefix": "data"
}

# CORS headers returned by the upload routes and by the preflight
CORS_CONFIG = {
    "allow_origin": "*",
    "allow_methods": ["OPTIONS", "POST", "PUT", "GET", "DELETE"],
    "allow_headers": ["Content-Type", "Authorization"],
    "preflight": {
        "allow_methods": ["POST", "OPTIONS", "PUT", "DELETE"],
        "allow_headers": [
            "Content-Type",
            "X-Amz-Date",
            "Authorization",
            "X-Api-Key",
            "X-Amz-Security-Token",
            "X-Amz-User-Agent"
        ],
        "status_code": "200"
    }
}

# Media types accepted per upload category. API Gateway keys mapping
# templates by exact media type, so these are listed one by one.
IMAGE_MEDIA_TYPES = ["image/png", "image/jpeg", "image/gif", "image/webp"]
AUDIO_MEDIA_TYPES = ["audio/mpeg", "audio/mp4", "audio/ogg", "audio/wav", "audio/x-wav"]

# Gateway presets. "simple" is a single route without key or quota,
# "extended" adds a route per category, Content-Type forwarding and a usage plan.
GATEWAY_PRESETS = {
    "simple": {
        "routes": [
            {
                # PUT /users/{userId}/files/{fileName}
                "path": "users/{userId}/files/{fileName}",
                "category": "background-images"
            }
        ],
        "forward_content_type": False,
        "require_api_key": False,
        "rate_limit": None
    },
    "extended": {
        "routes": [
            {
                "path": "users/{userId}/files/background-images/{fileName}",
                "category": "background-images",
                "content_types": IMAGE_MEDIA_TYPES
            },
            {
                "path": "users/{userId}/files/bgms/{fileName}",
                "category": "bgms",
                "content_types": AUDIO_MEDIA_TYPES
            }
        ],
        "forward_content_type": True,
        "require_api_key": True,
        "rate_limit": {
            "daily_quota": 1000,
            "burst": 10,
            "sustained_rate": 5
        }
    }
}

DEFAULT_PRESET = "extended"


def get_gateway_settings(preset=None):
    """
    Resolve the settings used to build the gateway.

    The preset is taken from the argument, then the GATEWAY_PRESET
    environment variable, then DEFAULT_PRESET. AWS_REGION, API_NAME,
    STAGE_NAME and BUCKET_NAME override the matching defaults.

    Returns:
        A new dictionary; callers may mutate it freely.
    """
    preset_name = preset or os.getenv("GATEWAY_PRESET", DEFAULT_PRESET)
    if preset_name not in GATEWAY_PRESETS:
        raise ConfigurationError(
            f"Unknown gateway preset '{preset_name}', expected one of: {', '.join(sorted(GATEWAY_PRESETS))}"
        )

    return {
        "preset": preset_name,
        "api_name": os.getenv("API_NAME", API_CONFIG["name"]),
        "description": API_CONFIG["description"],
        "stage_name": os.getenv("STAGE_NAME", API_CONFIG["stage_name"]),
        "region": os.getenv("AWS_REGION", API_CONFIG["region"]),
        "endpoint_type": API_CONFIG["endpoint_type"],
        "bucket_name": os.getenv("BUCKET_NAME", STORAGE_CONFIG["bucket_name"]),
        "key_prefix": STORAGE_CONFIG["key_prefix"],
        "cors": copy.deepcopy(CORS_CONFIG),
        **copy.deepcopy(GATEWAY_PRESETS[preset_name])
    }
