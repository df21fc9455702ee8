# upload_gateway/policies.py

from upload_gateway.errors import ConfigurationError

QUOTA_PERIOD = "DAY"

# Same action set CDK grants with bucket.grantReadWrite()
BUCKET_READ_WRITE_ACTIONS = [
    "s3:GetObject*",
    "s3:GetBucket*",
    "s3:List*",
    "s3:DeleteObject*",
    "s3:PutObject",
    "s3:PutObjectLegalHold",
    "s3:PutObjectRetention",
    "s3:PutObjectTagging",
    "s3:PutObjectVersionTagging",
    "s3:Abort*"
]


def build_trust_policy():
    """Assume-role policy letting API Gateway act as the integration role."""
    return {
        "Version": "2012-10-17",
        "Statement": [{
            "Action": "sts:AssumeRole",
            "Principal": {
                "Service": "apigateway.amazonaws.com"
            },
            "Effect": "Allow",
            "Sid": ""
        }]
    }


def build_bucket_access_policy(bucket_name):
    """Read/write access to the upload bucket and every object in it."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": BUCKET_READ_WRITE_ACTIONS,
                "Resource": [
                    f"arn:aws:s3:::{bucket_name}",
                    f"arn:aws:s3:::{bucket_name}/*"
                ]
            }
        ]
    }


def build_rate_limit_policy(daily_quota, burst, sustained_rate):
    """
    Usage plan limits for the upload API key.

    Args:
        daily_quota: Requests allowed per key per day
        burst: Throttling burst limit
        sustained_rate: Steady-state requests per second

    Returns:
        Dictionary with quota_settings and throttle_settings, shaped like
        the aws.apigateway.UsagePlan arguments
    """
    if not isinstance(daily_quota, int) or isinstance(daily_quota, bool) or daily_quota <= 0:
        raise ConfigurationError(f"Daily quota must be a positive integer, got {daily_quota!r}")
    if not isinstance(burst, int) or isinstance(burst, bool) or burst < 0:
        raise ConfigurationError(f"Burst limit must be a non-negative integer, got {burst!r}")
    if isinstance(sustained_rate, bool) or not isinstance(sustained_rate, (int, float)) or sustained_rate <= 0:
        raise ConfigurationError(f"Sustained rate must be positive, got {sustained_rate!r}")

    return {
        "quota_settings": {
            "limit": daily_quota,
            "period": QUOTA_PERIOD
        },
        "throttle_settings": {
            "burst_limit": burst,
            "rate_limit": float(sustained_rate)
        }
    }
