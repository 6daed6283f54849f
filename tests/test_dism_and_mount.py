from pathlib import Path

import pytest

from image_servicing.errors import ApplyError, MountPreconditionError
from image_servicing.lib import dism
from image_servicing.lib.command import CmdResult
from image_servicing.lib.mount import check_mount


def fake_run(returncode, stderr="", seen=None):
    def run(argv, **kw):
        if seen is not None:
            seen.append(list(argv))
        return CmdResult(list(argv), returncode, "", stderr)

    return run


class TestAddPackage:
    def test_renders_argv(self, monkeypatch):
        seen = []
        monkeypatch.setattr(dism, "run_cmd", fake_run(0, seen=seen))
        dism.add_package("C:\\mount", Path("C:\\cache\\ssu.msu"))
        assert seen[0][1] == "/Image:C:\\mount"
        assert seen[0][3] == "/PackagePath:C:\\cache\\ssu.msu"

    def test_restart_required_is_success(self, monkeypatch):
        monkeypatch.setattr(dism, "run_cmd", fake_run(3010))
        assert dism.add_package("/mnt/image", Path("lcu.msu")).returncode == 3010

    def test_failure_raises(self, monkeypatch):
        monkeypatch.setattr(dism, "run_cmd", fake_run(0x800F081E, stderr="Error: 0x800f081e\nThe package is not applicable"))
        with pytest.raises(ApplyError, match="not applicable"):
            dism.add_package("/mnt/image", Path("lcu.msu"))

    def test_missing_tool_raises(self, monkeypatch):
        def missing(argv, **kw):
            raise FileNotFoundError(argv[0])

        monkeypatch.setattr(dism, "run_cmd", missing)
        with pytest.raises(ApplyError, match="could not run"):
            dism.add_package("/mnt/image", Path("lcu.msu"))

    def test_custom_template(self, monkeypatch):
        seen = []
        monkeypatch.setattr(dism, "run_cmd", fake_run(0, seen=seen))
        dism.add_package("/mnt/image", Path("a.cab"), argv_template=["wimtool", "add", "{mount}", "{package}"])
        assert seen == [["wimtool", "add", "/mnt/image", "a.cab"]]


class TestCheckMount:
    def test_usable_directory(self, mount_dir):
        assert check_mount(str(mount_dir)) == mount_dir

    @pytest.mark.parametrize("target", ["", "missing"])
    def test_unusable_targets(self, tmp_path, target):
        with pytest.raises(MountPreconditionError):
            check_mount(str(tmp_path / target) if target else "")

    def test_file_is_not_a_mount(self, tmp_path):
        f = tmp_path / "image.wim"
        f.write_bytes(b"MSWIM")
        with pytest.raises(MountPreconditionError):
            check_mount(str(f))
