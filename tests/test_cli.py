from __future__ import annotations

import importlib.util
import json
import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
SCRIPT = REPO_ROOT / "scripts" / "generate_grip_plate.py"


def _project(tmp_path: Path) -> Path:
    payload = {
        "settings": {
            "outline": {"size": 120, "thickness": 2},
            "pattern": {"distribution": "grid", "spacing": 3, "margin": 2},
            "debug": {"showPatternCutter": True},
        },
        "pattern": {"shapes": [[[-4, -4], [4, -4], [4, 4], [-4, 4]]]},
        "inlays": [{"name": "logo", "shapes": [[[0, 0], [20, 0], [20, 10], [0, 10]]]}],
    }
    path = tmp_path / "plate.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_cli_composes_and_exports(tmp_path: Path):
    out_dir = tmp_path / "out"
    cmd = [
        sys.executable,
        str(SCRIPT),
        "--project",
        str(_project(tmp_path)),
        "--out-dir",
        str(out_dir),
        "--include-debug",
    ]
    proc = subprocess.run(cmd, capture_output=True, text=True)
    assert proc.returncode == 0, proc.stderr
    assert "Solids:" in proc.stdout

    assert (out_dir / "Base.stl").exists()
    assert (out_dir / "Pattern.stl").exists()
    assert (out_dir / "Inlay_0.stl").exists()
    assert (out_dir / "Waste_pattern_clip_0.stl").exists()
    manifest = json.loads((out_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["include_debug"] is True


def test_cli_reports_bad_project(tmp_path: Path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"settings": {"pattern": {"distribution": "spiral"}}}), encoding="utf-8")
    proc = subprocess.run(
        [sys.executable, str(SCRIPT), "--project", str(bad), "--out-dir", str(tmp_path / "out")],
        capture_output=True,
        text=True,
    )
    assert proc.returncode == 1
    assert "Error:" in proc.stdout


def _load_script():
    module_spec = importlib.util.spec_from_file_location("generate_grip_plate", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


class _StuckController:
    def __init__(self, **kwargs):
        self.shutdown_wait = None

    def submit(self, request):
        return None

    def wait_idle(self, timeout=None):
        return False

    def shutdown(self, wait=True):
        self.shutdown_wait = wait


def test_cli_gives_up_after_timeout(tmp_path: Path, monkeypatch, capsys):
    script = _load_script()
    monkeypatch.setattr(script, "CompositionController", _StuckController)
    code = script.main([
        "--project", str(_project(tmp_path)),
        "--out-dir", str(tmp_path / "out"),
        "--timeout", "0.5",
    ])
    assert code == 1
    assert "did not finish within 0.5s" in capsys.readouterr().out
    assert not (tmp_path / "out").exists()
