"""Conversations tab for browsing and exporting conversation history."""

from __future__ import annotations

import csv
import json
import sqlite3
from dataclasses import asdict
from datetime import datetime
from typing import Any

from textual import on
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, DataTable, Static

from adapters.sqlite_storage import SQLiteStorage
from ..constants import PROJECT_ROOT


class ConversationsTab(Container):
    """Conversations tab to browse lifecycle records and export to JSON/CSV."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._rows: list[dict[str, Any]] = []
        self._table_ready = False

    def compose(self):
        with Vertical(id="conversations-panel"):
            yield Static("Conversations", id="conversations-title")
            yield DataTable(id="conversations-table", cursor_type="row")
            with Horizontal(id="conversations-actions"):
                yield Button("Refresh", id="conversations-refresh", variant="primary")
                yield Button("Export JSON", id="export-json", variant="success")
                yield Button("Export CSV", id="export-csv")
            yield Static("", id="conversations-output")

    def on_mount(self) -> None:
        table = self.query_one("#conversations-table", DataTable)
        table.add_column("started", key="started_at", width=18)
        table.add_column("user", key="user", width=22)
        table.add_column("campaign", key="campaign", width=20)
        table.add_column("match", key="match", width=24)
        table.add_column("status", key="status", width=12)
        table.add_column("sent", key="messages_sent", width=5)
        table.add_column("failure", key="failure", width=24)
        table.zebra_stripes = True
        table.styles.height = "1fr"
        self.query_one("#conversations-actions").styles.height = 3
        self._table_ready = True
        self.load_conversations()

    @on(Button.Pressed, "#conversations-refresh")
    def _on_refresh(self) -> None:
        self.load_conversations()

    @on(Button.Pressed, "#export-json")
    def _on_export_json(self) -> None:
        self._export_rows("json")

    @on(Button.Pressed, "#export-csv")
    def _on_export_csv(self) -> None:
        self._export_rows("csv")

    def load_conversations(self) -> None:
        if not self._table_ready:
            return
        table = self.query_one("#conversations-table", DataTable)
        table.clear()
        db_path = self.app.config_state.db_path
        if not db_path.exists():
            self._rows = []
            self._set_output(f"db not found: {db_path}")
            return
        try:
            conversations = SQLiteStorage(str(db_path)).list_conversations()
        except sqlite3.Error as exc:
            self._rows = []
            self._set_output(f"db error: {exc}")
            return

        self._rows = []
        for conversation in conversations:
            row = asdict(conversation)
            row["match_type"] = conversation.match_type.value
            row["status"] = conversation.status.value
            row["metadata"] = json.dumps(conversation.metadata, ensure_ascii=True)
            self._rows.append(row)
            table.add_row(
                self._format_date_display(conversation.started_at),
                self._clip_text(f"{conversation.user_name} ({conversation.user_id})", 22),
                self._clip_text(conversation.campaign_name or str(conversation.campaign_id), 20),
                self._clip_text(
                    f"{conversation.match_type.value}: {conversation.matched_keyword}", 24
                ),
                conversation.status.value,
                str(conversation.messages_sent),
                self._clip_text(str(conversation.metadata.get("failure_reason") or ""), 24),
                key=str(conversation.id),
            )
        self._set_output(f"loaded {len(conversations)} conversations from {db_path}")

    def _export_rows(self, fmt: str) -> None:
        if not self._rows:
            self._set_output("No conversations to export.")
            return
        exports_dir = PROJECT_ROOT / "exports"
        exports_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        path = exports_dir / f"conversations-{timestamp}.{fmt}"
        try:
            if fmt == "json":
                path.write_text(json.dumps(self._rows, indent=2, ensure_ascii=True), encoding="utf-8")
            else:
                fieldnames = list(self._rows[0].keys())
                with path.open("w", encoding="utf-8", newline="") as handle:
                    writer = csv.DictWriter(handle, fieldnames=fieldnames)
                    writer.writeheader()
                    writer.writerows(self._rows)
            self._set_output(f"exported {len(self._rows)} conversations to {path}")
        except OSError as exc:
            self._set_output(f"export failed: {exc.strerror or exc}")

    def _set_output(self, message: str) -> None:
        self.query_one("#conversations-output", Static).update(message)

    @staticmethod
    def _clip_text(value: str, limit: int = 64) -> str:
        if len(value) <= limit:
            return value
        return value[: limit - 3] + "..."

    @staticmethod
    def _format_date_display(value: str) -> str:
        if not value:
            return ""
        display = value.replace("T", " ")
        return display[:19]
