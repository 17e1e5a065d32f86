class WarpackError(Exception):
    exit_code: int = 1

    def __init__(self, message: str):
        super().__init__(message)

class ConfigError(WarpackError):
    exit_code = 2


class ParamConflictError(ConfigError):
    exit_code = 3


class PathmapError(ConfigError):
    exit_code = 4

class DetectionError(WarpackError):
    exit_code = 10

class DependencyError(WarpackError):
    exit_code = 20
