import asyncio
import os

from chunk_uploader.cleanup import CleanupScheduler, cleanup_stale, remove_tree

T0 = 1_700_000_000


def age(path, ts=T0):
    os.utime(path, (ts, ts))


def test_age_boundary(tmp_path):
    part = tmp_path / "a.txt.part"
    part.write_bytes(b"partial")
    age(part)

    res = cleanup_stale(tmp_path, 100, now=T0 + 99.5)
    assert res.deleted == 0
    assert part.exists()

    res = cleanup_stale(tmp_path, 100, now=T0 + 100)
    assert res.deleted == 1
    assert not part.exists()


def test_removes_stale_chunk_dirs_and_keeps_final_files(tmp_path):
    chunk_dir = tmp_path / "video.mp4_d.part"
    chunk_dir.mkdir()
    (chunk_dir / "0").write_bytes(b"a")
    (chunk_dir / "1").write_bytes(b"b")
    age(chunk_dir)

    final = tmp_path / "done.txt"
    final.write_bytes(b"final")
    age(final)

    fresh = tmp_path / "fresh.bin.part"
    fresh.write_bytes(b"x")
    age(fresh, T0 + 3600)

    res = cleanup_stale(tmp_path, 5 * 3600, now=T0 + 5 * 3600)
    assert res.scanned == 2
    assert res.deleted == 1
    assert not chunk_dir.exists()
    assert final.exists()
    assert fresh.exists()
    assert res.to_dict()["deleted_paths"] == [str(chunk_dir)]


def test_missing_target_dir_is_noop(tmp_path):
    res = cleanup_stale(tmp_path / "nothing-here", 10)
    assert res.scanned == 0


def test_remove_tree_nested_and_idempotent(tmp_path):
    root = tmp_path / "tree_d.part"
    (root / "sub" / "deeper").mkdir(parents=True)
    (root / "0").write_bytes(b"0")
    (root / "sub" / "1").write_bytes(b"1")
    (root / "sub" / "deeper" / "2").write_bytes(b"2")
    # partially removed already
    (root / "sub" / "1").unlink()

    assert remove_tree(root)
    assert not root.exists()
    assert remove_tree(root)


def test_scheduler_runs_pass(tmp_path):
    part = tmp_path / "old.part"
    part.write_bytes(b"x")
    age(part)

    async def scenario():
        scheduler = CleanupScheduler(tmp_path, 1, interval=3600)
        scheduler.start()
        assert scheduler.running
        for _ in range(100):
            if not part.exists():
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())
    assert not part.exists()
    assert not scheduler.running


def test_scheduler_survives_failures(tmp_path, monkeypatch):
    import chunk_uploader.cleanup as cleanup_mod

    def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(cleanup_mod, "cleanup_stale", boom)
    scheduler = CleanupScheduler(tmp_path, 1, interval=3600)
    assert asyncio.run(scheduler.run_once()) is None
