import os


_TRUE_VALUES = ('1', 'true', 'yes', 'on')


def parse_bool_env(name, default='0'):
    """Return True when the environment variable holds a truthy flag, ignoring trailing semicolons."""
    value = os.environ.get(name, default)
    if value is None:
        value = default
    value = value.strip().lower()
    if value.endswith(';'):
        value = value[:-1].rstrip()
    return value in _TRUE_VALUES


def env_path(name, default=None):
    """Return the environment variable as a stripped string, or default when unset or blank."""
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()
