from __future__ import annotations

from frontend.validators import (
    format_messages,
    format_synonyms,
    parse_lines,
    parse_messages,
    parse_synonyms,
    validate_campaign,
)


def test_parse_lines_drops_blanks() -> None:
    assert parse_lines(" alquiler \n\n renta\n") == ["alquiler", "renta"]


def test_synonyms_text_roundtrip_shape() -> None:
    parsed = parse_synonyms("departamento: depa, apartamento\nbad line\n: orphan\ncasa: ")
    assert parsed == {"departamento": ["depa", "apartamento"]}
    assert format_synonyms(parsed) == "departamento: depa, apartamento"
    assert format_synonyms(None) == ""


def test_messages_split_on_separator_and_keep_delays() -> None:
    previous = ["Hola", {"content": "Viejo", "delay_seconds": 3}]
    parsed = parse_messages("Hola {{name}}\n---\nSegundo\nlínea dos\n---\n\n---\nTercero", previous)
    assert parsed == [
        "Hola {{name}}",
        {"content": "Segundo\nlínea dos", "delay_seconds": 3},
        "Tercero",
    ]
    assert format_messages(parsed) == "Hola {{name}}\n---\nSegundo\nlínea dos\n---\nTercero"


def test_validate_campaign_ok() -> None:
    campaign = {
        "id": 1,
        "name": "Alquiler",
        "trigger_keywords": {"keywords": ["alquiler"]},
        "messages": ["Hola"],
    }
    assert validate_campaign(campaign, other_ids=[2, 3]) == []


def test_validate_campaign_reports_every_problem() -> None:
    errors = validate_campaign(
        {"id": 2, "name": " ", "trigger_keywords": {"excluded_words": ["spam"]}, "messages": []},
        other_ids=[2],
    )
    assert errors == [
        "id 2 is already used",
        "name is required",
        "no trigger phrases: the campaign can never match",
        "no messages: matched conversations will fail",
    ]
    assert validate_campaign({"id": "1", "name": "x"})[0] == "id must be an integer"
    assert validate_campaign({"id": True, "name": "x"})[0] == "id must be an integer"


def test_campaign_problems_labels_each_campaign() -> None:
    from frontend.app import campaign_problems

    campaigns = [
        {"id": 1, "name": "Alquiler", "trigger_keywords": {"keywords": ["a"]}, "messages": ["Hola"]},
        {"id": 1, "name": "Venta", "trigger_keywords": {"keywords": ["v"]}, "messages": ["Hola"]},
        "broken",
    ]
    assert campaign_problems(campaigns) == [
        "Alquiler: id 1 is already used",
        "Venta: id 1 is already used",
        "#3: not an object",
    ]
    assert campaign_problems(None) == []
