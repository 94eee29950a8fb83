class LoadsketchError(Exception):
    pass


class ConfigurationError(LoadsketchError, ValueError):
    pass


class TopologyError(LoadsketchError, ValueError):
    pass
