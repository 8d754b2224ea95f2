import asyncio
import itertools

from chunk_uploader.errors import UploadErrorCode
from chunk_uploader.reassembler import write_chunks_to_file


def make_chunks(chunk_dir, payloads, order):
    chunk_dir.mkdir()
    for i in order:
        (chunk_dir / str(i)).write_bytes(payloads[i])


def test_order_independent(tmp_path):
    payloads = [b"A" * 4096, b"B" * 4096, b"C" * 1000, b"D"]
    expected = b"".join(payloads)
    for n, order in enumerate(itertools.permutations(range(4))):
        chunk_dir = tmp_path / f"upload{n}_d.part"
        dest = tmp_path / f"upload{n}.part"
        make_chunks(chunk_dir, payloads, order)
        res = asyncio.run(write_chunks_to_file(chunk_dir, dest, len(payloads)))
        assert res
        assert dest.read_bytes() == expected
        assert not chunk_dir.exists()


def test_single_chunk(tmp_path):
    chunk_dir = tmp_path / "one_d.part"
    make_chunks(chunk_dir, [b"only"], [0])
    res = asyncio.run(write_chunks_to_file(chunk_dir, tmp_path / "one.part", 1))
    assert res
    assert (tmp_path / "one.part").read_bytes() == b"only"


def test_missing_chunk_leaves_no_artifact(tmp_path):
    chunk_dir = tmp_path / "video.mp4_d.part"
    make_chunks(chunk_dir, [b"a", b"b", b"c"], [0, 2])
    dest = tmp_path / "video.mp4.part"
    res = asyncio.run(write_chunks_to_file(chunk_dir, dest, 3))
    assert res.code == UploadErrorCode.MOVE_ERR
    assert not dest.exists()
    # chunks are kept so a later attempt can still complete
    assert sorted(p.name for p in chunk_dir.iterdir()) == ["0", "2"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["video.mp4_d.part"]


def test_missing_chunk_does_not_touch_existing_dest(tmp_path):
    dest = tmp_path / "video.mp4.part"
    dest.write_bytes(b"previous")
    chunk_dir = tmp_path / "video.mp4_d.part"
    make_chunks(chunk_dir, [b"a", b"b"], [1])
    res = asyncio.run(write_chunks_to_file(chunk_dir, dest, 2))
    assert res.code == UploadErrorCode.MOVE_ERR
    assert dest.read_bytes() == b"previous"


def test_deleted_chunk_dir_fails_cleanly(tmp_path):
    res = asyncio.run(write_chunks_to_file(tmp_path / "gone_d.part", tmp_path / "gone.part", 2))
    assert res.code == UploadErrorCode.MOVE_ERR
    assert list(tmp_path.iterdir()) == []


def test_unopenable_output(tmp_path):
    chunk_dir = tmp_path / "x_d.part"
    make_chunks(chunk_dir, [b"a"], [0])
    res = asyncio.run(write_chunks_to_file(chunk_dir, tmp_path / "nope" / "x.part", 1))
    assert res.code == UploadErrorCode.OUTPUT_ERR
    assert chunk_dir.exists()


def test_unreadable_chunk_is_input_error(tmp_path):
    chunk_dir = tmp_path / "doc.pdf_d.part"
    make_chunks(chunk_dir, [b"a", b"b", b"c"], [0, 2])
    # present but cannot be opened as a file
    (chunk_dir / "1").mkdir()
    dest = tmp_path / "doc.pdf.part"
    res = asyncio.run(write_chunks_to_file(chunk_dir, dest, 3))
    assert res.code == UploadErrorCode.INPUT_ERR
    assert not dest.exists()
    assert sorted(p.name for p in chunk_dir.iterdir()) == ["0", "1", "2"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["doc.pdf_d.part"]


class FailingChunk:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def read(self, size=-1):
        raise OSError("Input/output error")


def test_chunk_read_failure_is_input_error(tmp_path, monkeypatch):
    import aiofiles

    real_open = aiofiles.open

    def fake_open(path, mode="r", *args, **kwargs):
        if mode == "rb":
            return FailingChunk()
        return real_open(path, mode, *args, **kwargs)

    chunk_dir = tmp_path / "doc.pdf_d.part"
    make_chunks(chunk_dir, [b"a", b"b"], [0, 1])
    monkeypatch.setattr(aiofiles, "open", fake_open)
    dest = tmp_path / "doc.pdf.part"
    res = asyncio.run(write_chunks_to_file(chunk_dir, dest, 2))
    assert res.code == UploadErrorCode.INPUT_ERR
    assert not dest.exists()
    assert chunk_dir.exists()
