"""Campaigns tab implementation."""

from __future__ import annotations

import copy
from typing import Any, Callable, Iterable, Optional

from textual import on
from textual.containers import Container, Horizontal, ScrollableContainer, Vertical
from textual.widgets import Button, DataTable, Input, Static, Switch, TextArea

from core.campaigns import CampaignCatalog, build_campaigns
from ..modals import DeleteCampaignScreen
from ..validators import (
    format_messages,
    format_synonyms,
    parse_lines,
    parse_messages,
    parse_synonyms,
    validate_campaign,
)

# TextArea id -> (trigger tier, parser, formatter)
_TRIGGER_FIELDS: dict[str, tuple[str, Callable[[str], Any], Callable[[Any], str]]] = {
    "campaign-exact": ("exact_matches", parse_lines, lambda v: "\n".join(v or [])),
    "campaign-keywords": ("keywords", parse_lines, lambda v: "\n".join(v or [])),
    "campaign-synonyms": ("synonyms", parse_synonyms, format_synonyms),
    "campaign-excluded": ("excluded_words", parse_lines, lambda v: "\n".join(v or [])),
}


class CampaignsTab(Container):
    """Campaigns tab for editing config.campaigns and testing triggers."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._loading_form = False
        self._current_row_key: Optional[str] = None
        self._table_ready = False

    def compose(self):
        with Vertical(id="campaigns-panel"):
            with Horizontal(id="campaigns-body"):
                with Container(id="campaigns-left"):
                    yield DataTable(id="campaigns-table", cursor_type="row")
                with ScrollableContainer(id="campaigns-right"):
                    yield Static("Campaign editor", id="campaigns-title")
                    yield Static("", id="campaign-errors", classes="form-error")
                    with Horizontal(classes="form-row"):
                        with Container(classes="form-block form-block--narrow"):
                            yield Static("id", classes="form-label")
                            yield Input(placeholder="1", id="campaign-id", type="integer")
                        with Container(classes="form-block"):
                            yield Static("name", classes="form-label")
                            yield Input(placeholder="Campaign name", id="campaign-name")
                        with Container(classes="form-block form-block--narrow"):
                            yield Static("priority", classes="form-label")
                            yield Input(placeholder="0", id="campaign-priority", type="integer")
                    yield Static("enabled", classes="form-label")
                    yield Switch(value=True, id="campaign-enabled")
                    with Horizontal(classes="form-row form-row--tall"):
                        with Container(classes="form-block"):
                            yield Static("exact matches (one per line)", classes="form-label")
                            yield TextArea(id="campaign-exact")
                        with Container(classes="form-block"):
                            yield Static("keywords (one per line)", classes="form-label")
                            yield TextArea(id="campaign-keywords")
                    with Horizontal(classes="form-row form-row--tall"):
                        with Container(classes="form-block"):
                            yield Static("synonyms (canonical: word, word)", classes="form-label")
                            yield TextArea(id="campaign-synonyms")
                        with Container(classes="form-block"):
                            yield Static("excluded phrases (one per line)", classes="form-label")
                            yield TextArea(id="campaign-excluded")
                    yield Static(
                        "messages (split with a line containing ---, {{name}} {{user_id}} {{nombre}} {{telefono}})",
                        classes="form-label",
                    )
                    yield TextArea(id="campaign-messages")
                    yield Static("Campaign tester", id="campaigns-test-title")
                    yield TextArea(id="campaign-test-text")
                    with Horizontal(id="campaigns-test-actions"):
                        yield Button("Test", id="campaign-test", variant="primary")
                    yield Static("", id="campaign-test-result")
            with Horizontal(id="campaigns-actions"):
                yield Button("Add campaign", id="add-campaign", variant="success")
                yield Button("Duplicate campaign", id="duplicate-campaign")
                yield Button("Delete campaign", id="delete-campaign", variant="error")

    def on_mount(self) -> None:
        table = self.query_one("#campaigns-table", DataTable)
        table.add_column("on", key="enabled", width=4)
        table.add_column("id", key="id", width=5)
        table.add_column("prio", key="priority", width=5)
        table.add_column("name", key="name", width=30)
        table.add_column("badges", key="badges", width=28)
        table.zebra_stripes = True
        self.query_one("#campaigns-test-actions").styles.height = 3
        self._table_ready = True
        self.reload_from_config()
        self._set_form_state(None)

    def reload_from_config(self) -> None:
        if not self._table_ready:
            return
        table = self.query_one("#campaigns-table", DataTable)
        table.clear()
        for index, campaign, badges in self._iter_campaigns():
            table.add_row(
                "yes" if campaign.get("enabled", True) else "no",
                str(campaign.get("id", "")),
                str(campaign.get("priority", 0)),
                campaign.get("name", ""),
                badges,
                key=str(index),
            )
        self._update_action_state()

    def _iter_campaigns(self) -> Iterable[tuple[int, dict[str, Any], str]]:
        for index, campaign in enumerate(self._get_campaigns()):
            yield index, campaign, self._badge_for_campaign(campaign)

    @staticmethod
    def _badge_for_campaign(campaign: dict[str, Any]) -> str:
        triggers = campaign.get("trigger_keywords") or {}
        phrases = len(triggers.get("exact_matches") or []) + len(triggers.get("keywords") or [])
        messages = campaign.get("messages") or []
        return f"triggers: {phrases} messages: {len(messages)}"

    def _get_campaigns(self) -> list[dict[str, Any]]:
        data = self.app.config_state.data or {}
        campaigns = data.get("campaigns")
        if isinstance(campaigns, list):
            return campaigns
        return []

    def _set_campaigns(self, campaigns: list[dict[str, Any]]) -> None:
        self.app.update_config_section("campaigns", campaigns)

    def _current_campaign(self) -> Optional[tuple[int, list[dict[str, Any]]]]:
        index = self._current_index()
        if index is None:
            return None
        campaigns = self._get_campaigns()
        if index >= len(campaigns):
            return None
        return index, campaigns

    def _update_action_state(self) -> None:
        has_selection = self._current_row_key is not None
        self.query_one("#delete-campaign", Button).disabled = not has_selection
        self.query_one("#duplicate-campaign", Button).disabled = not has_selection

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self._current_row_key = self._coerce_row_key(event.row_key)
        self._set_form_state(self._current_row_key)
        self._update_action_state()

    @on(Input.Changed, "#campaign-name")
    def _on_name_changed(self, event: Input.Changed) -> None:
        self._update_field("name", event.value, column="name")

    @on(Input.Changed, "#campaign-id")
    def _on_id_changed(self, event: Input.Changed) -> None:
        value = self._parse_int(event.value)
        self._update_field("id", value, column="id")

    @on(Input.Changed, "#campaign-priority")
    def _on_priority_changed(self, event: Input.Changed) -> None:
        value = self._parse_int(event.value) or 0
        self._update_field("priority", value, column="priority")

    @on(Switch.Changed, "#campaign-enabled")
    def _on_enabled_changed(self, event: Switch.Changed) -> None:
        self._update_field("enabled", bool(event.value), column="enabled")

    def on_text_area_changed(self, event: TextArea.Changed) -> None:
        if self._loading_form:
            return
        area_id = event.text_area.id or ""
        if area_id in _TRIGGER_FIELDS:
            tier, parser, _ = _TRIGGER_FIELDS[area_id]
            selected = self._current_campaign()
            if selected is None:
                return
            index, campaigns = selected
            triggers = campaigns[index].setdefault("trigger_keywords", {})
            triggers[tier] = parser(event.text_area.text)
            self._commit(index, campaigns)
        elif area_id == "campaign-messages":
            selected = self._current_campaign()
            if selected is None:
                return
            index, campaigns = selected
            previous = campaigns[index].get("messages")
            campaigns[index]["messages"] = parse_messages(
                event.text_area.text, previous if isinstance(previous, list) else None
            )
            self._commit(index, campaigns)

    def _update_field(self, field: str, value: Any, column: str) -> None:
        if self._loading_form:
            return
        selected = self._current_campaign()
        if selected is None:
            return
        index, campaigns = selected
        campaigns[index][field] = value
        self._commit(index, campaigns)
        display = value
        if field == "enabled":
            display = "yes" if value else "no"
        self._update_table_cell(index, column, "" if display is None else str(display))

    def _commit(self, index: int, campaigns: list[dict[str, Any]]) -> None:
        self._set_campaigns(campaigns)
        self._update_table_cell(index, "badges", self._badge_for_campaign(campaigns[index]))
        self._show_errors(index, campaigns)

    def _show_errors(self, index: int, campaigns: list[dict[str, Any]]) -> None:
        other_ids = [c.get("id") for i, c in enumerate(campaigns) if i != index]
        errors = validate_campaign(campaigns[index], other_ids)
        self.query_one("#campaign-errors", Static).update("\n".join(f"! {e}" for e in errors))

    @on(Button.Pressed, "#add-campaign")
    def _on_add_campaign(self) -> None:
        campaigns = self._get_campaigns()
        campaigns.append(self._new_campaign(self._next_id(campaigns)))
        self._set_campaigns(campaigns)
        self.reload_from_config()
        self._select_row(len(campaigns) - 1)

    @on(Button.Pressed, "#duplicate-campaign")
    def _on_duplicate_campaign(self) -> None:
        selected = self._current_campaign()
        if selected is None:
            return
        index, campaigns = selected
        campaign = copy.deepcopy(campaigns[index])
        campaign["name"] = f"{campaign.get('name') or 'Campaign'} (copy)"
        campaign["id"] = self._next_id(campaigns)
        campaigns.append(campaign)
        self._set_campaigns(campaigns)
        self.reload_from_config()
        self._select_row(len(campaigns) - 1)

    @on(Button.Pressed, "#delete-campaign")
    def _on_delete_campaign(self) -> None:
        selected = self._current_campaign()
        if selected is None:
            return
        index, campaigns = selected
        self.app.push_screen(
            DeleteCampaignScreen(campaigns[index].get("name", "")), self._handle_delete_campaign
        )

    def _handle_delete_campaign(self, choice: str | None) -> None:
        if choice != "delete":
            return
        selected = self._current_campaign()
        if selected is None:
            return
        index, campaigns = selected
        campaigns.pop(index)
        self._set_campaigns(campaigns)
        self._current_row_key = None
        self.reload_from_config()
        self._set_form_state(None)

    @on(Button.Pressed, "#campaign-test")
    def _on_test_campaign(self) -> None:
        test_text = self.query_one("#campaign-test-text", TextArea).text
        result = self.query_one("#campaign-test-result", Static)
        campaigns = self._get_campaigns()
        if not test_text.strip():
            result.update("Add test text to run.")
            return
        if not campaigns:
            result.update("No campaigns configured.")
            return
        catalog = CampaignCatalog(build_campaigns(campaigns))
        match = catalog.resolve(test_text)
        if match is None:
            result.update("Not matched")
            return
        result.update(
            f"Matched campaign {match.campaign_name} (id {match.campaign_id})\n"
            f"- {match.match_type.value}: {match.matched_keyword}"
        )

    def _set_form_state(self, row_key: Optional[str]) -> None:
        self._loading_form = True
        inputs = {
            "id": self.query_one("#campaign-id", Input),
            "name": self.query_one("#campaign-name", Input),
            "priority": self.query_one("#campaign-priority", Input),
        }
        enabled_toggle = self.query_one("#campaign-enabled", Switch)
        messages_area = self.query_one("#campaign-messages", TextArea)
        trigger_areas = {
            area_id: self.query_one(f"#{area_id}", TextArea) for area_id in _TRIGGER_FIELDS
        }
        errors = self.query_one("#campaign-errors", Static)

        campaign: Optional[dict[str, Any]] = None
        if row_key is not None:
            index = int(row_key)
            campaigns = self._get_campaigns()
            if index < len(campaigns):
                campaign = campaigns[index]

        disabled = campaign is None
        campaign = campaign or {}
        for field, widget in inputs.items():
            value = campaign.get(field)
            widget.value = "" if value is None else str(value)
            widget.disabled = disabled
        enabled_toggle.value = bool(campaign.get("enabled", True)) and not disabled
        enabled_toggle.disabled = disabled
        triggers = campaign.get("trigger_keywords") or {}
        for area_id, area in trigger_areas.items():
            tier, _, formatter = _TRIGGER_FIELDS[area_id]
            area.text = formatter(triggers.get(tier))
            area.disabled = disabled
        messages_area.text = format_messages(campaign.get("messages"))
        messages_area.disabled = disabled
        errors.update("")
        self._loading_form = False

        if not disabled and row_key is not None:
            self._show_errors(int(row_key), self._get_campaigns())

    def _select_row(self, index: int) -> None:
        table = self.query_one("#campaigns-table", DataTable)
        try:
            table.move_cursor(row=index)
        except Exception:
            return
        self._current_row_key = str(index)
        self._set_form_state(self._current_row_key)
        self._update_action_state()

    def _update_table_cell(self, index: int, column_key: str, value: Any) -> None:
        table = self.query_one("#campaigns-table", DataTable)
        row_key = str(index)
        try:
            table.get_row(row_key)
        except Exception:
            self.reload_from_config()
            return
        table.update_cell(row_key, column_key, value)

    def _current_index(self) -> Optional[int]:
        if self._current_row_key is None:
            return None
        try:
            return int(self._current_row_key)
        except ValueError:
            return None

    @staticmethod
    def _parse_int(value: str) -> Optional[int]:
        try:
            return int(value.strip())
        except ValueError:
            return None

    @staticmethod
    def _next_id(campaigns: list[dict[str, Any]]) -> int:
        ids = [c.get("id") for c in campaigns if isinstance(c.get("id"), int)]
        return max(ids, default=0) + 1

    @staticmethod
    def _coerce_row_key(value: Any) -> str:
        if hasattr(value, "value"):
            return str(value.value)
        return str(value)

    @staticmethod
    def _new_campaign(campaign_id: int) -> dict[str, Any]:
        return {
            "id": campaign_id,
            "name": "New campaign",
            "enabled": True,
            "priority": 0,
            "trigger_keywords": {
                "exact_matches": [],
                "keywords": [],
                "synonyms": {},
                "excluded_words": [],
            },
            "messages": [],
        }
