import json

from gpibmeter import AppSettings, DEFAULT_RESOURCE


def test_load_missing_file_returns_defaults(tmp_path):
    settings = AppSettings.load(tmp_path / "settings.json")
    assert settings.gpib_resource_name == DEFAULT_RESOURCE == "GPIB0::1::INSTR"


def test_save_then_load_round_trip(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    settings = AppSettings.load(path)
    settings.gpib_resource_name = "GPIB0::14::INSTR"

    settings.save()

    assert json.loads(path.read_text()) == {"gpib_resource_name": "GPIB0::14::INSTR"}
    assert AppSettings.load(path).gpib_resource_name == "GPIB0::14::INSTR"


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")
    assert AppSettings.load(path).gpib_resource_name == DEFAULT_RESOURCE

    path.write_text("[1, 2, 3]")
    assert AppSettings.load(path).gpib_resource_name == DEFAULT_RESOURCE


def test_blank_resource_is_ignored(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"gpib_resource_name": "   ", "unknown": 1}))
    assert AppSettings.load(path).gpib_resource_name == DEFAULT_RESOURCE
