class ServiceError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class DuplicateName(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(409, message)


class NoPortAvailable(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(409, message)


class InvalidVersion(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(400, message)


class BrokerUnavailable(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(502, message)


class NoInputProvided(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(408, message)


class StorageFailure(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(500, message)


class ConfigurationError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(500, message)
