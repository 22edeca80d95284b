from __future__ import annotations

from bookflow.features.events.service import EventTracker


class FormTracker:
    """
    Field-level tracking for one form instance.

    start fires once, on the first focus, right before that focus event.
    Blur is tracked only for fields left with a value.
    """

    def __init__(self, *, form_name: str, tracker: EventTracker, enabled: bool = True) -> None:
        self.form_name = form_name
        self.tracker = tracker
        self.enabled = enabled
        self.has_started = False

    def on_field_focus(self, field_name: str) -> None:
        if not self.enabled:
            return
        if not self.has_started:
            self.has_started = True
            self.tracker.track_form_interaction(form_name=self.form_name, interaction_type="start")
        self.tracker.track_form_interaction(
            form_name=self.form_name, field_name=field_name, interaction_type="focus"
        )

    def on_field_blur(self, field_name: str, has_value: bool) -> None:
        if not self.enabled or not has_value:
            return
        self.tracker.track_form_interaction(
            form_name=self.form_name, field_name=field_name, interaction_type="blur"
        )

    def on_field_error(self, field_name: str, error_message: str) -> None:
        if not self.enabled:
            return
        self.tracker.track_form_interaction(
            form_name=self.form_name,
            field_name=field_name,
            interaction_type="error",
            error_message=error_message,
        )

    def on_form_submit(self) -> None:
        if not self.enabled:
            return
        self.tracker.track_form_interaction(form_name=self.form_name, interaction_type="submit")
