from __future__ import annotations

import io
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from typing import List, Tuple

from dbpf.cli import main
from dbpf.constants import COMPRESSION_DEFLATE, KIND_THUMBNAIL
from dbpf.reader import ArchiveReader
from dbpf.tgi import ResourceKey
from dbpf.writer import ResourceData, write_archive


KIND_TUNING = 0x545AC67A
KIND_STBL = 0x220557AA


def _run(argv: List[str]) -> Tuple[int, str, str]:
    out, err = io.StringIO(), io.StringIO()
    code = 0
    with redirect_stdout(out), redirect_stderr(err):
        try:
            main(argv)
        except SystemExit as exc:
            code = exc.code if isinstance(exc.code, int) else 1
    return code, out.getvalue(), err.getvalue()


def _build_mods(root: Path):
    root.mkdir(parents=True, exist_ok=True)
    write_archive(
        str(root / "hair.package"),
        {
            ResourceKey(KIND_TUNING, 0, 1): ResourceData.from_bytes(b"<I n='hair'/>" * 30, COMPRESSION_DEFLATE),
            ResourceKey(KIND_THUMBNAIL, 0, 0xA): ResourceData.from_bytes(b"\xff\xd8hair-thumb"),
        },
    )
    write_archive(
        str(root / "shoes.package"),
        {ResourceKey(KIND_TUNING, 0, 2): ResourceData.from_bytes(b"<I n='shoes'/>")},
    )


class CliWorkflowTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_merge_unmerge_cycle(self):
        def scenario(tmp_path: Path):
            mods = tmp_path / "Mods"
            _build_mods(mods)
            code, out, _err = _run(["merge", str(mods), "--jobs", "2"])
            self.assertEqual(0, code)
            merged = mods / "merged" / "merged.package"
            self.assertTrue(merged.is_file())
            self.assertIn("2 package(s) merged", out)

            split = tmp_path / "split"
            code, out, _err = _run(["unmerge", str(merged), "--outdir", str(split)])
            self.assertEqual(0, code)
            self.assertIn("2 package(s) written", out)
            with ArchiveReader(str(split / "hair.package")) as r:
                self.assertEqual(
                    [ResourceKey(KIND_THUMBNAIL, 0, 0xA), ResourceKey(KIND_TUNING, 0, 1)],
                    [e.key for e in r.list()],
                )
                self.assertEqual(b"<I n='hair'/>" * 30, r.read_raw(r.list()[1]))

        self.run_with_tmpdir(scenario)

    def test_merge_custom_output_quiet(self):
        def scenario(tmp_path: Path):
            mods = tmp_path / "Mods"
            _build_mods(mods)
            target = tmp_path / "out" / "all.package"
            code, out, _err = _run(["merge", str(mods), "-o", str(target), "--quiet"])
            self.assertEqual(0, code)
            self.assertTrue(target.is_file())
            self.assertNotIn("MERGED", out)

        self.run_with_tmpdir(scenario)

    def test_extract_thumbnails(self):
        def scenario(tmp_path: Path):
            mods = tmp_path / "Mods"
            _build_mods(mods)
            out_dir = tmp_path / "jpgs"
            code, out, _err = _run(["extract", "thumbnails", str(mods / "hair.package"), "--outdir", str(out_dir)])
            self.assertEqual(0, code)
            self.assertIn("Extracted 1 thumbnail(s)", out)
            self.assertEqual(b"\xff\xd8hair-thumb", (out_dir / "hair_000000000000000A.jpg").read_bytes())

        self.run_with_tmpdir(scenario)

    def test_list_and_info(self):
        def scenario(tmp_path: Path):
            mods = tmp_path / "Mods"
            _build_mods(mods)
            code, out, _err = _run(["list", str(mods / "hair.package")])
            self.assertEqual(0, code)
            self.assertIn(str(ResourceKey(KIND_TUNING, 0, 1)), out)
            self.assertIn("comp=0x5A42", out)

            code, out, _err = _run(["info", str(mods / "hair.package")])
            self.assertEqual(0, code)
            self.assertIn("Version: 2.1", out)
            self.assertIn("Index count: 2", out)
            self.assertIn("Compressed: 1 (50.00%)", out)
            self.assertIn("Manifest: none", out)

        self.run_with_tmpdir(scenario)

    def test_info_entry_details(self):
        def scenario(tmp_path: Path):
            mods = tmp_path / "Mods"
            _build_mods(mods)
            code, out, _err = _run(["info", str(mods / "hair.package")])
            self.assertEqual(0, code)
            thumb = ResourceKey(KIND_THUMBNAIL, 0, 0xA)
            self.assertIn(f"Entry 0: {thumb}", out)
            self.assertIn("Data head: FF D8 68 61 69 72 2D 74", out)
            self.assertIn("Uncompressed samples (up to 10):", out)
            self.assertIn(f"Entry 0: {thumb} size=12", out)
            self.assertIn("Compression: 0x5A42", out)

        self.run_with_tmpdir(scenario)

    def test_merge_nothing_left_exits_zero(self):
        def scenario(tmp_path: Path):
            mods = tmp_path / "Mods"
            mods.mkdir()
            (mods / "broken.package").write_bytes(b"\x00" * 128)
            code, out, err = _run(["merge", str(mods)])
            self.assertEqual(0, code)
            self.assertIn("Nothing to merge", out)
            self.assertIn("broken.package", err)
            self.assertFalse((mods / "merged" / "merged.package").exists())

        self.run_with_tmpdir(scenario)

    def test_investigate(self):
        def scenario(tmp_path: Path):
            mods = tmp_path / "Mods"
            _build_mods(mods)
            _run(["merge", str(mods)])
            code, out, _err = _run(["investigate", str(mods / "merged" / "merged.package")])
            self.assertEqual(0, code)
            self.assertIn("2 package(s)", out)
            self.assertIn(f"0x{KIND_TUNING:08X}", out)
            self.assertIn("KNOWN", out)

            broken = tmp_path / "broken_stbl.package"
            write_archive(str(broken), {ResourceKey(KIND_STBL, 0, 1): ResourceData.from_bytes(b"NOPE" + b"\x00" * 20)})
            code, out, err = _run(["investigate", str(broken)])
            self.assertEqual(1, code)
            self.assertIn("FAILED", out)
            self.assertIn("STBL", err)

        self.run_with_tmpdir(scenario)

    def test_errors_exit_two(self):
        def scenario(tmp_path: Path):
            mods = tmp_path / "Mods"
            _build_mods(mods)
            code, _out, err = _run(["unmerge", str(mods / "shoes.package")])
            self.assertEqual(2, code)
            self.assertIn("No manifest found", err)

            junk = tmp_path / "junk.package"
            junk.write_bytes(b"\x00" * 128)
            code, _out, err = _run(["list", str(junk)])
            self.assertEqual(2, code)
            self.assertIn("not a readable DBPF package", err)

            code, _out, err = _run(["merge", str(tmp_path / "empty_dir_missing")])
            self.assertEqual(2, code)
            self.assertIn("Error:", err)

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()
