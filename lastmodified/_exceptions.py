__all__ = ("LastModifiedError", "ConfigurationError", "StorageError")


class LastModifiedError(Exception): ...


class ConfigurationError(LastModifiedError): ...


class StorageError(LastModifiedError): ...
