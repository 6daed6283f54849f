"""Tests for the ordered apply engine."""

import shutil

import pytest

from conftest import FakeApplier
from image_servicing.errors import MountPreconditionError
from image_servicing.models import ApplyStatus, Classification, ContainerFormat, LocalArtifact, ValidationState
from image_servicing.servicing.apply_engine import ApplyEngine, ArtifactFile, FileState, order_artifacts


def artifact(tmp_path, filename, classification=Classification.CUMULATIVE_UPDATE, on_disk=None):
    p = tmp_path / "cache" / classification.folder / filename.split(".")[0] / (on_disk or filename)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(b"MSCF")
    return LocalArtifact(
        classification=classification,
        descriptor_name=filename.split(".")[0],
        filename=filename,
        update_id=filename.split(".")[0],
        path=str(p),
        state=ValidationState.VALID,
    )


class TestRelabelPlatform:
    def test_cab_relabeled_and_applied(self, tmp_path, mount_dir):
        art = artifact(tmp_path, "c1.cab")
        applier = FakeApplier()
        report = ApplyEngine(applier=applier, relabel=True).apply_batch(str(mount_dir), [art])

        [outcome] = report.outcomes
        assert outcome.status == ApplyStatus.SUCCESS
        assert outcome.container_format == ContainerFormat.MSU
        assert applier.calls == ["c1.msu"]
        assert outcome.artifact_path.endswith("c1.msu")
        assert (tmp_path / "cache" / "LCU" / "c1" / "c1.msu").exists()
        assert art.path == outcome.artifact_path

    def test_fallback_to_cab(self, tmp_path, mount_dir):
        art = artifact(tmp_path, "c3.cab")
        applier = FakeApplier(fail=["c3.msu"])
        report = ApplyEngine(applier=applier, relabel=True).apply_batch(str(mount_dir), [art])

        [outcome] = report.outcomes
        assert outcome.status == ApplyStatus.FALLBACK_SUCCESS
        assert outcome.container_format == ContainerFormat.CAB
        assert applier.calls == ["c3.msu", "c3.cab"]
        assert (tmp_path / "cache" / "LCU" / "c3" / "c3.cab").exists()
        assert not (tmp_path / "cache" / "LCU" / "c3" / "c3.msu").exists()
        assert len(outcome.errors) == 1

    def test_both_formats_fail(self, tmp_path, mount_dir, caplog):
        art = artifact(tmp_path, "c4.cab")
        applier = FakeApplier(fail=["c4.msu", "c4.cab"])
        report = ApplyEngine(applier=applier, relabel=True).apply_batch(str(mount_dir), [art])

        [outcome] = report.outcomes
        assert outcome.status == ApplyStatus.FAILURE
        assert outcome.container_format == ContainerFormat.CAB
        assert len(outcome.errors) == 2
        assert "both formats" in caplog.text

    def test_native_msu_has_no_fallback(self, tmp_path, mount_dir):
        art = artifact(tmp_path, "m1.msu")
        applier = FakeApplier(fail=["m1.msu"])
        report = ApplyEngine(applier=applier, relabel=True).apply_batch(str(mount_dir), [art])

        assert report.outcomes[0].status == ApplyStatus.FAILURE
        assert applier.calls == ["m1.msu"]

    def test_previously_relabeled_cab_applies_as_msu(self, tmp_path, mount_dir):
        art = artifact(tmp_path, "c1.cab", on_disk="c1.msu")
        applier = FakeApplier()
        report = ApplyEngine(applier=applier, relabel=True).apply_batch(str(mount_dir), [art])
        assert applier.calls == ["c1.msu"]
        assert report.outcomes[0].status == ApplyStatus.SUCCESS

    def test_failure_does_not_abort_batch(self, tmp_path, mount_dir):
        arts = [artifact(tmp_path, "bad.cab"), artifact(tmp_path, "good.cab")]
        applier = FakeApplier(fail=["bad.msu", "bad.cab"])
        report = ApplyEngine(applier=applier, relabel=True).apply_batch(str(mount_dir), arts)
        assert [o.status for o in report.outcomes] == [ApplyStatus.FAILURE, ApplyStatus.SUCCESS]

    def test_relabel_conflict_applies_cabinet_once(self, tmp_path, mount_dir):
        art = artifact(tmp_path, "c1.cab")
        (tmp_path / "cache" / "LCU" / "c1" / "c1.msu").write_bytes(b"stale")
        applier = FakeApplier()
        report = ApplyEngine(applier=applier, relabel=True).apply_batch(str(mount_dir), [art])

        [outcome] = report.outcomes
        assert applier.calls == ["c1.cab"]
        assert outcome.status == ApplyStatus.SUCCESS
        assert outcome.container_format == ContainerFormat.CAB
        assert outcome.errors[0].startswith("relabel failed")


class TestDirectPlatform:
    def test_cab_applied_as_is(self, tmp_path, mount_dir):
        art = artifact(tmp_path, "c1.cab")
        applier = FakeApplier()
        report = ApplyEngine(applier=applier, relabel=False).apply_batch(str(mount_dir), [art])
        assert applier.calls == ["c1.cab"]
        assert report.outcomes[0].status == ApplyStatus.SUCCESS
        assert report.outcomes[0].container_format == ContainerFormat.CAB

    def test_no_fallback_on_failure(self, tmp_path, mount_dir):
        art = artifact(tmp_path, "c1.cab")
        applier = FakeApplier(fail=["c1.cab"])
        report = ApplyEngine(applier=applier, relabel=False).apply_batch(str(mount_dir), [art])
        assert applier.calls == ["c1.cab"]
        assert report.outcomes[0].status == ApplyStatus.FAILURE

    def test_restores_relabeled_leftover(self, tmp_path, mount_dir):
        art = artifact(tmp_path, "c1.cab", on_disk="c1.msu")
        applier = FakeApplier()
        ApplyEngine(applier=applier, relabel=False).apply_batch(str(mount_dir), [art])
        assert applier.calls == ["c1.cab"]
        assert art.path.endswith("c1.cab")


class TestOrdering:
    def test_servicing_stack_before_cumulative(self, tmp_path, mount_dir):
        arts = [
            artifact(tmp_path, "net.cab", Classification.RUNTIME_COMPONENT_CUMULATIVE),
            artifact(tmp_path, "lcu.cab", Classification.CUMULATIVE_UPDATE),
            artifact(tmp_path, "opt.cab", Classification.OPTIONAL),
            artifact(tmp_path, "ssu.cab", Classification.SERVICING_STACK),
        ]
        applier = FakeApplier()
        seen = []

        def on_outcome(o):
            seen.append((o.classification, list(applier.calls)))

        ApplyEngine(applier=applier, relabel=False).apply_batch(str(mount_dir), arts, on_outcome=on_outcome)

        assert applier.calls == ["ssu.cab", "lcu.cab", "net.cab", "opt.cab"]
        # The SSU outcome is recorded before the LCU attempt starts.
        assert seen[0] == (Classification.SERVICING_STACK, ["ssu.cab"])

    def test_order_is_stable_within_groups(self, tmp_path):
        arts = [
            artifact(tmp_path, "lcu2.cab"),
            artifact(tmp_path, "ssu.cab", Classification.SERVICING_STACK),
            artifact(tmp_path, "lcu1.cab"),
        ]
        assert [a.filename for a in order_artifacts(arts)] == ["ssu.cab", "lcu2.cab", "lcu1.cab"]


class TestPreconditionsAndCancellation:
    def test_missing_mount_aborts_before_any_attempt(self, tmp_path):
        applier = FakeApplier()
        with pytest.raises(MountPreconditionError):
            ApplyEngine(applier=applier, relabel=True).apply_batch(str(tmp_path / "nope"), [artifact(tmp_path, "c1.cab")])
        assert applier.calls == []
        assert (tmp_path / "cache" / "LCU" / "c1" / "c1.cab").exists()

    def test_mount_lost_mid_batch(self, tmp_path, mount_dir):
        arts = [artifact(tmp_path, "a.cab"), artifact(tmp_path, "b.cab")]
        recorded = []

        def applier(mount, package):
            shutil.rmtree(mount)

        with pytest.raises(MountPreconditionError):
            ApplyEngine(applier=applier, relabel=False).apply_batch(str(mount_dir), arts, on_outcome=recorded.append)
        assert len(recorded) == 1

    def test_cancel_between_artifacts(self, tmp_path, mount_dir):
        arts = [artifact(tmp_path, f"c{i}.cab") for i in range(3)]
        applier = FakeApplier()
        report = ApplyEngine(applier=applier, relabel=False).apply_batch(
            str(mount_dir), arts, cancel=lambda: len(applier.calls) >= 1
        )
        assert report.cancelled is True
        assert report.not_started == 2
        assert len(report.outcomes) == 1


class TestArtifactFile:
    def test_transitions(self, tmp_path):
        p = tmp_path / "c1.cab"
        p.write_bytes(b"MSCF")
        f = ArtifactFile(p, ContainerFormat.CAB)
        f.relabel()
        assert f.state == FileState.RELABELED and f.path.name == "c1.msu"
        f.restore()
        assert f.state == FileState.CAB and f.path.name == "c1.cab"

    def test_native_msu_cannot_be_restored(self, tmp_path):
        p = tmp_path / "m1.msu"
        p.write_bytes(b"MSCF")
        with pytest.raises(ValueError):
            ArtifactFile(p, ContainerFormat.MSU).restore()

    def test_relabel_refuses_to_clobber(self, tmp_path):
        (tmp_path / "c1.cab").write_bytes(b"a")
        (tmp_path / "c1.msu").write_bytes(b"b")
        with pytest.raises(FileExistsError):
            ArtifactFile(tmp_path / "c1.cab", ContainerFormat.CAB).relabel()
