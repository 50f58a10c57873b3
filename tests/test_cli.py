import json
from pathlib import Path

import pytest

import checklist_cli
import sources
from checklist import storage
from checklist.store import ItemStore
from sources.gemini import RecognitionError


@pytest.fixture(autouse=True)
def _isolated_db(db_path: Path) -> Path:
    return db_path


def _stored() -> ItemStore:
    return ItemStore(storage).load()


def _load(monkeypatch: pytest.MonkeyPatch, names) -> None:
    monkeypatch.setattr(sources, "NAME_LIST", lambda: list(names))
    assert checklist_cli.main(["load"]) == 0


def test_load_adds_names(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _load(monkeypatch, ["Wendy", "Cam"])

    assert "2 total names, 2 new items added" in capsys.readouterr().out
    assert _stored().names() == ["Wendy", "Cam"]


def test_load_failure_exits_one(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    def broken():
        raise sources.fandom.FetchError("Bad status code 503")

    monkeypatch.setattr(sources, "NAME_LIST", broken)

    assert checklist_cli.main(["load"]) == 1
    assert "Failed to load master list" in capsys.readouterr().out
    assert len(_stored()) == 0


def test_enrich_uses_lookup(monkeypatch: pytest.MonkeyPatch, capsys, make_lookup) -> None:
    _load(monkeypatch, ["Wendy", "Cam"])
    lookup = make_lookup(known=["Wendy"])
    monkeypatch.setattr(sources, "LOOKUP", lookup)

    assert checklist_cli.main(["enrich"]) == 0

    assert "Auto-identification complete." in capsys.readouterr().out
    assert _stored().find_by_name("Wendy").identified is True
    assert _stored().find_by_name("Cam").identified is False


def test_mark_and_mark_visible(monkeypatch: pytest.MonkeyPatch) -> None:
    _load(monkeypatch, ["Wendy", "Wanda", "Cam"])

    assert checklist_cli.main(["mark", "Cam", "arriving"]) == 0
    assert checklist_cli.main(["mark-visible", "there", "--filter", "wa"]) == 0
    assert checklist_cli.main(["mark", "Nobody", "there"]) == 1

    statuses = {it.name: it.status.value for it in _stored().all()}
    assert statuses == {"Wendy": "untracked", "Wanda": "there", "Cam": "arriving"}


def test_set_image(monkeypatch: pytest.MonkeyPatch) -> None:
    _load(monkeypatch, ["Wendy"])

    assert checklist_cli.main(["set-image", "Wendy", "https://img.example/w.png"]) == 0
    assert _stored().find_by_name("Wendy").image == "https://img.example/w.png"


def test_identify(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    _load(monkeypatch, ["Wendy", "Cam"])
    photo = tmp_path / "photo.png"
    photo.write_bytes(b"\x89PNG fake")
    seen = {}

    def recognizer(image_bytes, names, mime_type):
        seen.update(names=list(names), mime=mime_type)
        return "Wendy"

    monkeypatch.setattr(sources, "RECOGNIZER", recognizer)

    assert checklist_cli.main(["identify", str(photo)]) == 0
    assert seen == {"names": ["Wendy", "Cam"], "mime": "image/png"}
    assert "Identified: Wendy" in capsys.readouterr().out
    assert _stored().find_by_name("Wendy").status.value == "there"


def test_identify_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    _load(monkeypatch, ["Wendy"])
    photo = tmp_path / "photo.jpg"
    photo.write_bytes(b"jpeg")

    def recognizer(image_bytes, names, mime_type):
        raise RecognitionError("Gemini API key is not configured (GEMINI_API_KEY).")

    monkeypatch.setattr(sources, "RECOGNIZER", recognizer)

    assert checklist_cli.main(["identify", str(photo)]) == 1
    assert "Identification failed" in capsys.readouterr().out
    assert _stored().find_by_name("Wendy").status.value == "untracked"


def test_export_json_and_html(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _load(monkeypatch, ["Wendy", "Cam"])
    json_path = tmp_path / "checklist.json"
    html_path = tmp_path / "checklist.html"

    assert checklist_cli.main(["export", str(json_path)]) == 0
    assert checklist_cli.main(["export", str(html_path), "--html"]) == 0

    data = json.loads(json_path.read_text(encoding="utf-8"))
    assert [d["name"] for d in data] == ["Wendy", "Cam"]
    assert "Wendy" in html_path.read_text(encoding="utf-8")


def test_list_filters(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _load(monkeypatch, ["Wendy", "Cam"])
    capsys.readouterr()

    assert checklist_cli.main(["list", "--filter", "cam"]) == 0

    out = capsys.readouterr().out
    assert "[Untracked] Cam" in out
    assert "Wendy" not in out
