"""Main Textual app for the telecampaign config panel."""

from __future__ import annotations

import json
from typing import Any, Optional

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Center, Container, Horizontal, Vertical
from textual.widgets import Button, ContentSwitcher, Footer, Static, Tab, Tabs

from .constants import CONFIG_PATH, TELEGRAM_BLUE
from .modals import InvalidCampaignsScreen, ReloadConfirmScreen, UnsavedChangesScreen
from .state import ConfigState
from .tabs.campaigns import CampaignsTab
from .tabs.conversations import ConversationsTab
from .validators import validate_campaign

TAB_IDS = ("campaigns", "conversations")


def _read_config() -> tuple[Optional[dict[str, Any]], Optional[str]]:
    """Return (data, error) for config.json."""

    try:
        loaded = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None, "config.json missing (copy config.example.json)"
    except json.JSONDecodeError as exc:
        return None, f"config.json error: {exc.msg} (line {exc.lineno})"
    if not isinstance(loaded, dict):
        return None, "config root must be an object"
    return loaded, None


def campaign_problems(campaigns: Any) -> list[str]:
    """Validation errors of every campaign, prefixed with its position."""

    if not isinstance(campaigns, list):
        return []
    problems = []
    for index, campaign in enumerate(campaigns):
        if not isinstance(campaign, dict):
            problems.append(f"#{index + 1}: not an object")
            continue
        other_ids = [c.get("id") for i, c in enumerate(campaigns) if i != index and isinstance(c, dict)]
        label = campaign.get("name") or f"#{index + 1}"
        problems.extend(f"{label}: {error}" for error in validate_campaign(campaign, other_ids))
    return problems


class ConfigPanelApp(App):
    """Campaign editor and conversation browser."""

    BINDINGS = [
        ("ctrl+s", "save_config", "Save"),
        ("ctrl+r", "reload_config", "Reload"),
        ("f5", "refresh_conversations", "Refresh conversations"),
        ("q", "request_quit", "Quit"),
        ("ctrl+c", "request_quit", "Quit"),
    ]

    CSS_PATH = "app.tcss"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.config_state = ConfigState()

    def compose(self) -> ComposeResult:
        with Container(id="header"):
            with Horizontal(id="header-row"):
                with Vertical(id="header-left"):
                    yield Static(self._title_text(), id="title")
                    yield Static("", id="header-campaigns", classes="subtle")
                with Vertical(id="header-right"):
                    yield Static("", id="header-db", classes="subtle")
                    yield Static("", id="header-status")
                    yield Horizontal(
                        Button("Save", id="save-btn"),
                        Button("Reload", id="reload-btn"),
                        id="header-actions",
                    )

        with Container(id="tabs-bar"):
            with Center(id="tabs-center"):
                yield Tabs(
                    Tab("Campaigns", id="campaigns"),
                    Tab("Conversations", id="conversations"),
                    id="tabs",
                )

        with ContentSwitcher(id="content", initial="campaigns"):
            yield CampaignsTab(id="campaigns")
            yield ConversationsTab(id="conversations")
        yield Footer()

    def on_mount(self) -> None:
        self._load_config()

    def on_tabs_tab_activated(self, event: Tabs.TabActivated) -> None:
        tab_id = event.tab.id or ""
        if tab_id not in TAB_IDS:
            return
        self.query_one("#content", ContentSwitcher).current = tab_id
        if tab_id == "conversations":
            self.action_refresh_conversations()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-btn":
            self.action_save_config()
        elif event.button.id == "reload-btn":
            self.action_reload_config()

    def action_refresh_conversations(self) -> None:
        self.query_one(ConversationsTab).load_conversations()

    def action_save_config(self) -> None:
        if self.config_state.data is None:
            return
        problems = campaign_problems(self.config_state.data.get("campaigns"))
        if problems:
            self.push_screen(InvalidCampaignsScreen(problems), self._handle_invalid_choice)
            return
        self._write_config()

    def action_reload_config(self) -> None:
        if self.config_state.dirty:
            self.push_screen(ReloadConfirmScreen(), self._handle_reload_choice)
        else:
            self._load_config()

    def action_request_quit(self) -> None:
        if self.config_state.dirty:
            self.push_screen(UnsavedChangesScreen(), self._handle_exit_choice)
        else:
            self.exit()

    def _handle_invalid_choice(self, choice: str | None) -> None:
        if choice == "save":
            self._write_config()

    def _handle_exit_choice(self, choice: str | None) -> None:
        if choice == "discard" or (choice == "save" and self._write_config()):
            self.exit()

    def _handle_reload_choice(self, choice: str | None) -> None:
        if choice == "reload" or (choice == "save" and self._write_config()):
            self._load_config()

    def _load_config(self) -> None:
        data, error = _read_config()
        self.config_state.data = data
        self.config_state.error = error
        self.config_state.dirty = False
        self._refresh_header()
        self.query_one(CampaignsTab).reload_from_config()

    def _write_config(self) -> bool:
        if self.config_state.data is None:
            self.config_state.error = "Nothing to save"
            self._refresh_header()
            return False
        payload = json.dumps(self.config_state.data, indent=2, ensure_ascii=False) + "\n"
        try:
            CONFIG_PATH.write_text(payload, encoding="utf-8")
        except OSError as exc:
            self.config_state.error = f"save failed: {exc.strerror or exc}"
            self._refresh_header()
            return False
        self.config_state.dirty = False
        self.config_state.error = None
        self._refresh_header()
        return True

    def mark_dirty(self) -> None:
        self.config_state.dirty = True
        self._refresh_header()

    def update_config_section(self, section: str, value: Any) -> None:
        """Replace a top-level config section in memory and mark dirty."""

        if self.config_state.data is None:
            self.config_state.data = {}
        self.config_state.data[section] = value
        self.mark_dirty()

    def _refresh_header(self) -> None:
        state = self.config_state
        self.query_one("#header-db", Static).update(f"db: {state.db_path.name}")
        self.query_one("#header-campaigns", Static).update(self._campaign_summary())

        status = self.query_one("#header-status", Static)
        status.remove_class("status-loaded", "status-modified", "status-error")
        if state.error:
            status.update(f"config: {state.error}")
            status.add_class("status-error")
        elif state.dirty:
            status.update("config: modified *")
            status.add_class("status-modified")
        else:
            status.update("config: loaded")
            status.add_class("status-loaded")

        self.query_one("#save-btn", Button).disabled = state.data is None or not state.dirty

    def _campaign_summary(self) -> str:
        campaigns = (self.config_state.data or {}).get("campaigns")
        if not isinstance(campaigns, list):
            return "no campaigns"
        enabled = sum(1 for c in campaigns if isinstance(c, dict) and c.get("enabled", True))
        return f"campaigns: {enabled} enabled / {len(campaigns)} total"

    @staticmethod
    def _title_text() -> Text:
        return Text.assemble(
            ("TELE", TELEGRAM_BLUE),
            ("CAMPAIGN > Config Panel", "bold"),
        )
