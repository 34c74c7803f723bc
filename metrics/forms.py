from __future__ import annotations

from collections.abc import Mapping

from django import forms

from metrics.calculators.base import MAX_ROUND_PLACES
from metrics.models import StrategyMetric
from metrics.services import default_registry


class StrategyMetricForm(forms.ModelForm):
    metric_key = forms.ChoiceField()

    class Meta:
        model = StrategyMetric
        fields = ("metric_key", "is_enabled", "order", "custom_config")

    def __init__(self, *args, registry=None, **kwargs):
        super().__init__(*args, **kwargs)
        registry = registry or default_registry()
        choices = [(key, f"{key}: {desc}") for key, desc in registry.options().items()]

        # Rows may reference keys that are no longer registered; keep them editable.
        current = self.instance.metric_key if self.instance and self.instance.pk else None
        if current and not registry.has(current):
            choices.append((current, f"{current} (not registered)"))
        self.fields["metric_key"].choices = choices

    def clean_custom_config(self):
        value = self.cleaned_data.get("custom_config")
        if value in (None, ""):
            return {}
        if not isinstance(value, Mapping):
            raise forms.ValidationError("Custom configuration must be a JSON object.")
        round_places = value.get("round")
        if round_places is not None:
            if isinstance(round_places, bool) or not isinstance(round_places, int):
                raise forms.ValidationError("'round' must be a whole number of decimal places.")
            if not 0 <= round_places <= MAX_ROUND_PLACES:
                raise forms.ValidationError(f"'round' must be between 0 and {MAX_ROUND_PLACES}.")
        return dict(value)
