from django.apps import AppConfig


class NoAIConfig(AppConfig):
    name = "noai"
    verbose_name = "AI crawler redirect"

    def ready(self):
        # Connects the setting_changed receiver that resets cached signatures.
        from noai import signatures  # noqa: F401
