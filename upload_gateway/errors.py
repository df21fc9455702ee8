# upload_gateway/errors.py


class ConfigurationError(ValueError):
    """
    Raised when the gateway configuration cannot be turned into a valid
    resource graph. Raised before any resource is declared, so a failed
    deployment never leaves a partial gateway behind.
    """
