class AutoscalerError(Exception):
    pass


class ConfigError(AutoscalerError):
    pass


class TelemetryError(AutoscalerError):
    pass


class ThunderError(TelemetryError):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class WorkloadError(AutoscalerError):
    pass
