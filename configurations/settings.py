import os

from importer_utils import statics
from importer_utils.errors import ConfigurationError

ENV_PREFIX = "STACK_IMPORTER_"


class Settings(object):

    def __init__(self,
                 region: str = statics.DEFAULT_REGION,
                 profile: str = None,
                 call_as: str = "SELF",
                 change_set_timeout: int = 300,
                 import_timeout: int = 900,
                 update_timeout: int = 1800,
                 waiter_delay: int = 15,
                 operation_poll_interval: int = 10,
                 request_poll_interval: int = 5,
                 resolver_workers: int = 4,
                 session_duration: int = statics.DEFAULT_SESSION_DURATION):
        self.region = region
        self.profile = profile
        self.call_as = call_as
        self.change_set_timeout = change_set_timeout
        self.import_timeout = import_timeout
        self.update_timeout = update_timeout
        self.waiter_delay = waiter_delay
        self.operation_poll_interval = operation_poll_interval
        self.request_poll_interval = request_poll_interval
        self.resolver_workers = resolver_workers
        self.session_duration = session_duration
        self.validate()

    def validate(self):
        if self.call_as not in statics.CALL_AS_VALUES:
            raise ConfigurationError("call_as must be one of {}, got '{}'".format(statics.CALL_AS_VALUES, self.call_as))
        for name in ("change_set_timeout", "import_timeout", "update_timeout", "waiter_delay",
                     "operation_poll_interval", "request_poll_interval", "resolver_workers", "session_duration"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigurationError("{} must be a positive integer, got '{}'".format(name, value))
        if not self.region:
            raise ConfigurationError("region is not set")

    def max_attempts(self, timeout: int):
        """
        Number of waiter polls that fit in timeout seconds, at least one.
        """
        return max(1, timeout // self.waiter_delay)


def _int_from_env(name: str, default: int):
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError("{}{} must be an integer, got '{}'".format(ENV_PREFIX, name, raw))


def load_settings(**overrides):
    """
    Build Settings from the environment; keyword arguments that are not None win over the environment.
    """
    values = dict(
        region=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or statics.DEFAULT_REGION,
        profile=os.getenv("AWS_PROFILE") or None,
        call_as=os.getenv(ENV_PREFIX + "CALL_AS") or "SELF",
        change_set_timeout=_int_from_env("CHANGE_SET_TIMEOUT", 300),
        import_timeout=_int_from_env("IMPORT_TIMEOUT", 900),
        update_timeout=_int_from_env("UPDATE_TIMEOUT", 1800),
        waiter_delay=_int_from_env("WAITER_DELAY", 15),
        operation_poll_interval=_int_from_env("OPERATION_POLL", 10),
        request_poll_interval=_int_from_env("REQUEST_POLL", 5),
        resolver_workers=_int_from_env("RESOLVER_WORKERS", 4),
        session_duration=_int_from_env("SESSION_DURATION", statics.DEFAULT_SESSION_DURATION),
    )
    for key, value in overrides.items():
        if key not in values:
            raise ConfigurationError("unknown setting '{}'".format(key))
        if value is not None:
            values[key] = value
    return Settings(**values)
