from django.core.exceptions import ImproperlyConfigured


class ConfigError(ImproperlyConfigured):
    """Raised when the bot redirect is constructed with unusable settings."""
