class KanbanError(Exception):
    pass
class ValidationError(KanbanError):
    pass
class ConfigurationError(KanbanError):
    pass
class StoreError(KanbanError):
    pass
class ConnectivityError(StoreError):
    pass
class SettingNotFound(StoreError):
    def __init__(self, name):
        super().__init__(f"Configuration setting '{name}' does not exist")
        self.name = name
class SettingOutOfRange(StoreError):
    def __init__(self, name, value, minimum, maximum):
        super().__init__(f"Value {value} out of range for setting '{name}' ({minimum}..{maximum})")
        self.name = name
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
class UnknownWorkerType(StoreError):
    pass
class StationNotLeased(StoreError):
    pass
class PartsShortage(StoreError):
    def __init__(self, station_id, parts):
        super().__init__(f"Station {station_id} has empty bins: {', '.join(parts)}")
        self.station_id = station_id
        self.parts = list(parts)
