import os
import tempfile
import unittest

from services.errors import InvalidPathError, PathOutsideRootError, ValidationError
from services.paths import (
    PathResolver,
    TransferItem,
    combine_relative_path,
    ensure_valid_name,
    normalize_relative_path,
    parent_of,
    resolve_volume_path,
    split_name,
    volume_of,
)


ADVERSARIAL = [
    "../../etc/passwd",
    "a/../../b",
    "....//....",
    "..\\..\\windows",
    "/etc/passwd",
    "vol/./../../x",
    "vol/\x00/x",
    "vol//nested///deep/",
    "./.",
    "vol/..",
]


class TestNormalizeRelativePath(unittest.TestCase):
    def test_root_forms(self) -> None:
        for value in (None, "", "/", ".", "./", "//"):
            self.assertEqual(normalize_relative_path(value), "")

    def test_collapses_separators_and_dots(self) -> None:
        self.assertEqual(normalize_relative_path("/vol//docs/./a.txt"), "vol/docs/a.txt")
        self.assertEqual(normalize_relative_path("vol\\docs\\a.txt"), "vol/docs/a.txt")
        self.assertEqual(normalize_relative_path("vol/docs/../a.txt"), "vol/a.txt")

    def test_traversal_rejected(self) -> None:
        for value in ("..", "a/../../b", "../../etc/passwd", "..\\x"):
            with self.assertRaises(InvalidPathError):
                normalize_relative_path(value)

    def test_nul_rejected(self) -> None:
        with self.assertRaises(InvalidPathError):
            normalize_relative_path("vol/\x00bad")

    def test_non_string_rejected(self) -> None:
        with self.assertRaises(InvalidPathError):
            normalize_relative_path(["vol"])  # type: ignore[arg-type]

    def test_idempotent(self) -> None:
        samples = ["", "vol", "/vol/", "a/b/../c", "....//....", "x/./y//z", "a\\b", " spaced /name "]
        for s in samples:
            once = normalize_relative_path(s)
            self.assertEqual(normalize_relative_path(once), once, s)

    def test_dots_that_are_names(self) -> None:
        self.assertEqual(normalize_relative_path("....//...."), "..../....")


class TestResolveVolumePath(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = os.path.realpath(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_root_itself(self) -> None:
        self.assertEqual(resolve_volume_path("", self.root), self.root)

    def test_join(self) -> None:
        self.assertEqual(
            resolve_volume_path("vol/docs", self.root),
            os.path.join(self.root, "vol", "docs"),
        )

    def test_adversarial_inputs_stay_inside(self) -> None:
        prefix = self.root + os.sep
        for value in ADVERSARIAL:
            try:
                resolved = resolve_volume_path(value, self.root)
            except (InvalidPathError, PathOutsideRootError):
                continue
            self.assertTrue(resolved == self.root or resolved.startswith(prefix), (value, resolved))

    def test_sibling_with_common_prefix_is_not_inside(self) -> None:
        # "/tmp/root-evil" must not pass as a child of "/tmp/root".
        resolver = PathResolver(self.root)
        with self.assertRaises(PathOutsideRootError):
            resolver.relative_of(self.root + "-evil")


class TestNames(unittest.TestCase):
    def test_ensure_valid_name_trims(self) -> None:
        self.assertEqual(ensure_valid_name("  report.txt "), "report.txt")

    def test_ensure_valid_name_rejects(self) -> None:
        for bad in ("", "   ", "a/b", "a\\b", ".", "..", "a\x00b", None, 5):
            with self.assertRaises(ValidationError):
                ensure_valid_name(bad)

    def test_split_name(self) -> None:
        self.assertEqual(split_name("archive.tar.gz"), ("archive.tar", ".gz"))
        self.assertEqual(split_name("README"), ("README", ""))
        self.assertEqual(split_name(".bashrc"), (".bashrc", ""))
        self.assertEqual(split_name("photo.JPG"), ("photo", ".JPG"))

    def test_combine_volume_and_parent(self) -> None:
        self.assertEqual(combine_relative_path("", "vol"), "vol")
        self.assertEqual(combine_relative_path("vol/docs/", "a.txt"), "vol/docs/a.txt")
        self.assertEqual(volume_of("vol/docs/a.txt"), "vol")
        self.assertIsNone(volume_of(""))
        self.assertEqual(parent_of("vol/docs/a.txt"), "vol/docs")
        self.assertEqual(parent_of("vol"), "")


class TestTransferItem(unittest.TestCase):
    def test_name_and_parent(self) -> None:
        item = TransferItem.from_payload({"name": "report.txt", "path": "docs"})
        self.assertEqual(item.name, "report.txt")
        self.assertEqual(item.path, "docs")
        self.assertEqual(item.relative_path, "docs/report.txt")

    def test_full_path_shapes(self) -> None:
        for payload in (
            {"relativePath": "docs/report.txt"},
            {"path": "docs/report.txt"},
            "docs/report.txt",
            {"relativePath": "/docs//report.txt", "name": "ignored.txt"},
        ):
            item = TransferItem.from_payload(payload)
            self.assertEqual(item.relative_path, "docs/report.txt", payload)
            self.assertEqual(item.name, "report.txt")

    def test_kind_is_kept(self) -> None:
        item = TransferItem.from_payload({"name": "x", "path": "vol", "kind": "directory"})
        self.assertEqual(item.kind, "directory")

    def test_rejects_bad_shapes(self) -> None:
        for payload in (42, None, {"name": "../x", "path": "vol"}, {"path": ""}, {"name": "", "path": "vol"}):
            with self.assertRaises((ValidationError, InvalidPathError)):
                TransferItem.from_payload(payload)

    def test_parent_traversal_rejected(self) -> None:
        with self.assertRaises(InvalidPathError):
            TransferItem.from_payload({"name": "x", "path": "../../etc"})


class TestPathResolver(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = os.path.realpath(self._tmp.name)
        self.root = os.path.join(self.base, "root")
        self.outside = os.path.join(self.base, "outside")
        os.makedirs(os.path.join(self.root, "vol"))
        os.makedirs(self.outside)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_requires_absolute_root(self) -> None:
        with self.assertRaises(ValueError):
            PathResolver("relative/root")

    def test_resolve_and_item(self) -> None:
        resolver = PathResolver(self.root)
        self.assertEqual(resolver.resolve("vol"), os.path.join(self.root, "vol"))
        rel, absolute = resolver.resolve_item({"name": "a.txt", "path": "vol"})
        self.assertEqual(rel, "vol/a.txt")
        self.assertEqual(absolute, os.path.join(self.root, "vol", "a.txt"))
        self.assertEqual(resolver.relative_of(absolute), "vol/a.txt")
        self.assertEqual(resolver.volume_of(rel), "vol")
        self.assertEqual(resolver.parent_of(rel), "vol")

    def test_symlinked_parent_outside_root_is_refused(self) -> None:
        os.symlink(self.outside, os.path.join(self.root, "vol", "escape"))
        resolver = PathResolver(self.root)
        # The link itself can be addressed (it is never followed)...
        resolver.resolve("vol/escape")
        # ...but nothing below it.
        with self.assertRaises(PathOutsideRootError):
            resolver.resolve("vol/escape/secret.txt")

    def test_symlink_check_can_be_disabled(self) -> None:
        os.symlink(self.outside, os.path.join(self.root, "vol", "escape"))
        resolver = PathResolver(self.root, strict_symlinks=False)
        self.assertEqual(
            resolver.resolve("vol/escape/secret.txt"),
            os.path.join(self.root, "vol", "escape", "secret.txt"),
        )
        self.assertEqual(resolver.resolve_dir("vol/escape"), os.path.join(self.root, "vol", "escape"))

    def test_resolve_dir_follows_the_directory_itself(self) -> None:
        os.symlink(self.outside, os.path.join(self.root, "vol", "escape"))
        os.makedirs(os.path.join(self.root, "vol", "real"))
        os.symlink(os.path.join(self.root, "vol", "real"), os.path.join(self.root, "vol", "alias"))
        resolver = PathResolver(self.root)
        with self.assertRaises(PathOutsideRootError):
            resolver.resolve_dir("vol/escape")
        self.assertEqual(resolver.resolve_dir("vol/alias"), os.path.join(self.root, "vol", "alias"))
        self.assertEqual(resolver.resolve_dir("vol/not-yet"), os.path.join(self.root, "vol", "not-yet"))
        self.assertEqual(resolver.resolve_dir(""), self.root)


if __name__ == "__main__":
    unittest.main()
