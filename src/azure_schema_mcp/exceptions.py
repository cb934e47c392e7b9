"""Error taxonomy for the schema discovery server."""


class AzureSchemaError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AzureSchemaError):
    """A required setting is missing. Raised once, at startup."""


class AuthenticationError(AzureSchemaError):
    """The credential chain could not produce an access token."""


class DiscoveryError(AzureSchemaError):
    """A remote schema lookup failed or came back empty."""


class QueryError(AzureSchemaError):
    """An ad-hoc KQL test query failed or returned no tables."""


class CacheCorruptionError(AzureSchemaError):
    """A persisted cache file could not be parsed.

    Only raised internally; the caches treat it as a miss.
    """
