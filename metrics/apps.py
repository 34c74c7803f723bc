from django.apps import AppConfig


class MetricsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "metrics"

    def ready(self):
        from metrics.registry import build_default_registry

        from . import signals  # noqa: F401

        self.registry = build_default_registry()
