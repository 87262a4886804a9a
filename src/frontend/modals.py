"""Modal dialogs for the Textual config panel."""

from __future__ import annotations

from typing import Iterable, Optional

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Static


class ChoiceScreen(ModalScreen[str]):
    """Modal with a title, body lines and one button per choice.

    Dismisses with the value of the pressed choice; ``cancel`` is implied.
    """

    TITLE_TEXT = ""
    BODY: tuple[str, ...] = ()
    # (label, value, variant)
    CHOICES: tuple[tuple[str, str, str], ...] = ()

    def __init__(self, body: Optional[Iterable[str]] = None) -> None:
        super().__init__()
        self._body = tuple(body) if body is not None else self.BODY

    def compose(self) -> ComposeResult:
        buttons = [
            Button(label, id=f"choice-{value}", variant=variant)
            for label, value, variant in self.CHOICES
        ]
        buttons.append(Button("Cancel", id="choice-cancel"))
        yield Container(
            Static(self.TITLE_TEXT, classes="modal-title"),
            *[Static(line, classes="modal-body") for line in self._body],
            Horizontal(*buttons, classes="modal-actions"),
            classes="modal-dialog modal-dialog--confirm",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss((event.button.id or "choice-cancel").removeprefix("choice-"))


class UnsavedChangesScreen(ChoiceScreen):
    TITLE_TEXT = "Unsaved changes"
    BODY = ("Save campaign changes before exit?",)
    CHOICES = (("Save", "save", "success"), ("Discard", "discard", "error"))


class ReloadConfirmScreen(ChoiceScreen):
    TITLE_TEXT = "Reload config?"
    BODY = ("Unsaved campaign edits will be lost.",)
    CHOICES = (("Save", "save", "default"), ("Reload", "reload", "warning"))


class InvalidCampaignsScreen(ChoiceScreen):
    """Shown when saving campaigns that cannot work as configured."""

    TITLE_TEXT = "Campaigns have problems"
    CHOICES = (("Save anyway", "save", "warning"),)


class DeleteCampaignScreen(ChoiceScreen):
    TITLE_TEXT = "Delete campaign?"
    CHOICES = (("Delete", "delete", "error"),)

    def __init__(self, campaign_name: str) -> None:
        super().__init__(
            [campaign_name or "(unnamed campaign)", "Existing conversations keep their history."]
        )
