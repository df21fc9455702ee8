"""Pulumi program for an API Gateway that proxies uploads straight into S3."""
