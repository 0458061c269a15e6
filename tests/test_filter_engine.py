"""Tests for filter evaluation: FilterEngine and PredicateEvaluator."""

import re
from datetime import datetime
from pathlib import Path, PurePosixPath

import pytest

from conftest import make_entry, write_jpeg, write_png
from sortnbackup.config import parse_filter
from sortnbackup.exceptions import MetadataError
from sortnbackup.matching import FilterEngine, PredicateEvaluator
from sortnbackup.models.filters import (
    AllOf,
    AnyOf,
    CatchAll,
    Not,
    Predicate,
    PredicateKind,
    SizeBounds,
)
from sortnbackup.scanning import MetadataCache


def _engine(cache: MetadataCache = None) -> FilterEngine:
    return FilterEngine(PredicateEvaluator(cache or MetadataCache()))


@pytest.mark.unit
class TestCombinators:
    """Tests for all / any / not / catch_all semantics."""

    def test_empty_all_is_true(self) -> None:
        """An empty 'all' matches everything."""
        entry = make_entry(Path("/nowhere"), "a.txt")
        assert _engine().matches(AllOf(()), entry) is True

    def test_empty_any_is_false(self) -> None:
        """An empty 'any' matches nothing."""
        entry = make_entry(Path("/nowhere"), "a.txt")
        assert _engine().matches(AnyOf(()), entry) is False

    def test_catch_all_and_not(self) -> None:
        entry = make_entry(Path("/nowhere"), "a.txt")
        engine = _engine()
        assert engine.matches(CatchAll(), entry) is True
        assert engine.matches(Not(CatchAll()), entry) is False
        assert engine.matches(Not(Not(CatchAll())), entry) is True

    def test_nested_combinators(self) -> None:
        """Verify a mixed tree evaluates like the equivalent boolean expression."""
        expr = parse_filter({"all": [
            {"has_extension": ["jpg", "png"]},
            {"any": [
                {"in_folder": "DCIM"},
                {"not": {"file_name_matches_regex": "^IMG_"}},
            ]},
        ]})
        engine = _engine()
        root = Path("/nowhere")

        assert engine.matches(expr, make_entry(root, "DCIM/IMG_1.jpg")) is True
        assert engine.matches(expr, make_entry(root, "other/IMG_1.jpg")) is False
        assert engine.matches(expr, make_entry(root, "other/holiday.png")) is True
        assert engine.matches(expr, make_entry(root, "DCIM/notes.txt")) is False

    def test_all_short_circuits_on_first_false(self, temp_dir: Path) -> None:
        """Children after the first False of an 'all' are never evaluated."""
        cache = MetadataCache()
        predicates = PredicateEvaluator(cache)
        engine = FilterEngine(predicates)
        write_jpeg(temp_dir / "photo.jpg")
        entry = make_entry(temp_dir, "photo.jpg")

        expr = AllOf((Predicate(PredicateKind.IS_DIR), Predicate(PredicateKind.HAS_IMG_METADATA)))

        assert engine.matches(expr, entry) is False
        assert predicates.evaluation_count == 1
        assert cache.get_stats()["decode_attempts"] == 0

    def test_any_short_circuits_on_first_true(self) -> None:
        """Children after the first True of an 'any' are never evaluated."""
        predicates = PredicateEvaluator(MetadataCache())
        engine = FilterEngine(predicates)
        entry = make_entry(Path("/nowhere"), "a.txt")

        expr = AnyOf((
            Predicate(PredicateKind.HAS_EXTENSION, frozenset({"txt"})),
            Predicate(PredicateKind.IS_FILE),
        ))

        assert engine.matches(expr, entry) is True
        # IS_FILE would have failed to stat the missing file.
        assert predicates.evaluation_count == 1

    def test_children_evaluated_in_declaration_order(self) -> None:
        """The cheap predicate written first decides before the costly one."""
        predicates = PredicateEvaluator(MetadataCache())
        engine = FilterEngine(predicates)
        entry = make_entry(Path("/nowhere"), "a.txt")

        expr = AllOf((
            Predicate(PredicateKind.FILE_NAME, "b.txt"),
            Predicate(PredicateKind.IS_FILE),
        ))

        assert engine.matches(expr, entry) is False
        assert predicates.evaluation_count == 1

    def test_deeply_nested_not_does_not_overflow(self) -> None:
        """Nesting far beyond the recursion limit still evaluates."""
        expr = CatchAll()
        for _ in range(5001):
            expr = Not(expr)

        entry = make_entry(Path("/nowhere"), "a.txt")
        assert _engine().matches(expr, entry) is False

    def test_deeply_nested_all_does_not_overflow(self) -> None:
        expr = Predicate(PredicateKind.FILE_NAME, "a.txt")
        for _ in range(5000):
            expr = AllOf((CatchAll(), expr))

        engine = _engine()
        assert engine.matches(expr, make_entry(Path("/nowhere"), "a.txt")) is True
        assert engine.matches(expr, make_entry(Path("/nowhere"), "b.txt")) is False


@pytest.mark.unit
class TestMetadataDiagnostics:
    """Tests for predicates failing with MetadataError."""

    @staticmethod
    def _failing_reader(path: Path):
        raise MetadataError("corrupt image data")

    def test_failing_predicate_is_false_with_diagnostic(self) -> None:
        """A MetadataError counts as False and yields one diagnostic line."""
        engine = _engine(MetadataCache(image_reader=self._failing_reader))
        entry = make_entry(Path("/nowhere"), "DCIM/broken.jpg")
        diagnostics = []

        assert engine.matches(Predicate(PredicateKind.HAS_IMG_METADATA), entry, diagnostics) is False
        assert len(diagnostics) == 1
        assert "[src] DCIM/broken.jpg" in diagnostics[0]
        assert "corrupt image data" in diagnostics[0]
        assert "has_img_metadata treated as false" in diagnostics[0]

    def test_not_of_failing_predicate_is_true(self) -> None:
        """The failing leaf is False, so its negation is True."""
        engine = _engine(MetadataCache(image_reader=self._failing_reader))
        entry = make_entry(Path("/nowhere"), "broken.jpg")

        assert engine.matches(Not(Predicate(PredicateKind.HAS_IMG_METADATA)), entry) is True

    def test_missing_file_stat_is_false(self) -> None:
        engine = _engine()
        diagnostics = []

        matched = engine.matches(
            Predicate(PredicateKind.IS_FILE), make_entry(Path("/nowhere"), "gone.txt"), diagnostics
        )

        assert matched is False
        assert "cannot stat" in diagnostics[0]


@pytest.mark.unit
class TestNamePredicates:
    """Tests for predicates that only look at the entry's path."""

    @pytest.fixture
    def evaluator(self) -> PredicateEvaluator:
        return PredicateEvaluator(MetadataCache())

    def test_has_extension_is_case_insensitive(self, evaluator: PredicateEvaluator) -> None:
        predicate = parse_filter({"has_extension": [".JPG", "png"]})
        root = Path("/nowhere")

        assert evaluator.test(predicate, make_entry(root, "a.Jpg")) is True
        assert evaluator.test(predicate, make_entry(root, "b.PNG")) is True
        assert evaluator.test(predicate, make_entry(root, "c.jpeg")) is False

    def test_has_extension_without_extension(self, evaluator: PredicateEvaluator) -> None:
        """Files without an extension and dotfiles never match."""
        predicate = Predicate(PredicateKind.HAS_EXTENSION, frozenset({"bashrc"}))
        root = Path("/nowhere")

        assert evaluator.test(predicate, make_entry(root, "Makefile")) is False
        assert evaluator.test(predicate, make_entry(root, ".bashrc")) is False

    def test_file_name_is_case_insensitive(self, evaluator: PredicateEvaluator) -> None:
        predicate = parse_filter({"file_name": "Thumbs.db"})

        assert evaluator.test(predicate, make_entry(Path("/x"), "a/THUMBS.DB")) is True
        assert evaluator.test(predicate, make_entry(Path("/x"), "a/thumbs.db.bak")) is False

    def test_file_name_regex_searches_name_only(self, evaluator: PredicateEvaluator) -> None:
        predicate = Predicate(PredicateKind.FILE_NAME_MATCHES_REGEX, re.compile(r"^IMG_\d+"))

        assert evaluator.test(predicate, make_entry(Path("/x"), "DCIM/IMG_0001.jpg")) is True
        assert evaluator.test(predicate, make_entry(Path("/x"), "IMG_/photo.jpg")) is False

    def test_path_regex_uses_forward_slashes(self, evaluator: PredicateEvaluator) -> None:
        predicate = Predicate(PredicateKind.PATH_MATCHES_REGEX, re.compile(r"^Camera/\d{4}/"))

        assert evaluator.test(predicate, make_entry(Path("/x"), "Camera/2021/a.jpg")) is True
        assert evaluator.test(predicate, make_entry(Path("/x"), "Other/Camera/2021/a.jpg")) is False

    def test_in_folder_matches_any_depth(self, evaluator: PredicateEvaluator) -> None:
        predicate = parse_filter({"in_folder": "Images"})
        root = Path("/x")

        assert evaluator.test(predicate, make_entry(root, "Images/a.jpg")) is True
        assert evaluator.test(predicate, make_entry(root, "Images/2020/a.jpg")) is True
        assert evaluator.test(predicate, make_entry(root, "Images")) is False
        assert evaluator.test(predicate, make_entry(root, "ImagesOld/a.jpg")) is False
        assert evaluator.test(predicate, make_entry(root, "other/Images/a.jpg")) is False

    def test_in_folder_accepts_backslashes(self, evaluator: PredicateEvaluator) -> None:
        predicate = parse_filter({"in_folder": "Images\\2020"})

        assert predicate.argument == PurePosixPath("Images/2020")
        assert evaluator.test(predicate, make_entry(Path("/x"), "Images/2020/a.jpg")) is True

    def test_directly_in_folder(self, evaluator: PredicateEvaluator) -> None:
        predicate = parse_filter({"directly_in_folder": "Images"})
        root = Path("/x")

        assert evaluator.test(predicate, make_entry(root, "Images/a.jpg")) is True
        assert evaluator.test(predicate, make_entry(root, "Images/2020/a.jpg")) is False

    def test_directly_in_source_root(self, evaluator: PredicateEvaluator) -> None:
        """An empty folder means the source root itself."""
        predicate = parse_filter({"directly_in_folder": ""})

        assert evaluator.test(predicate, make_entry(Path("/x"), "a.jpg")) is True
        assert evaluator.test(predicate, make_entry(Path("/x"), "sub/a.jpg")) is False


@pytest.mark.unit
class TestFileSystemPredicates:
    """Tests for predicates that need stat or image data."""

    def test_is_file_and_is_dir(self, temp_dir: Path) -> None:
        (temp_dir / "folder").mkdir()
        (temp_dir / "file.txt").write_text("x")
        evaluator = PredicateEvaluator(MetadataCache())

        folder = make_entry(temp_dir, "folder")
        file = make_entry(temp_dir, "file.txt")

        assert evaluator.test(Predicate(PredicateKind.IS_DIR), folder) is True
        assert evaluator.test(Predicate(PredicateKind.IS_FILE), folder) is False
        assert evaluator.test(Predicate(PredicateKind.IS_FILE), file) is True
        assert evaluator.test(Predicate(PredicateKind.IS_DIR), file) is False

    def test_image_predicates(self, temp_dir: Path) -> None:
        write_jpeg(temp_dir / "dated.jpg", date_time=datetime(2020, 1, 2, 10, 0, 0))
        write_png(temp_dir / "thumb.png")
        (temp_dir / "notes.txt").write_text("not an image")
        evaluator = PredicateEvaluator(MetadataCache())

        dated = make_entry(temp_dir, "dated.jpg")
        thumb = make_entry(temp_dir, "thumb.png")
        notes = make_entry(temp_dir, "notes.txt")

        assert evaluator.test(Predicate(PredicateKind.HAS_IMG_METADATA), dated) is True
        assert evaluator.test(Predicate(PredicateKind.HAS_IMG_DATE_TIME), dated) is True
        assert evaluator.test(Predicate(PredicateKind.HAS_IMG_METADATA), thumb) is True
        assert evaluator.test(Predicate(PredicateKind.HAS_IMG_DATE_TIME), thumb) is False
        assert evaluator.test(Predicate(PredicateKind.HAS_IMG_METADATA), notes) is False
        assert evaluator.test(Predicate(PredicateKind.IMG_SIZE, SizeBounds(max=100)), notes) is False

    def test_img_size_bounds_apply_to_both_dimensions(self, temp_dir: Path) -> None:
        write_jpeg(temp_dir / "wide.jpg", size=(400, 80))
        evaluator = PredicateEvaluator(MetadataCache())
        entry = make_entry(temp_dir, "wide.jpg")

        assert evaluator.test(Predicate(PredicateKind.IMG_SIZE, SizeBounds(min=50)), entry) is True
        assert evaluator.test(Predicate(PredicateKind.IMG_SIZE, SizeBounds(min=100)), entry) is False
        assert evaluator.test(Predicate(PredicateKind.IMG_SIZE, SizeBounds(max=400)), entry) is True
        assert evaluator.test(Predicate(PredicateKind.IMG_SIZE, SizeBounds(max=399)), entry) is False

    def test_image_decoded_once_for_several_predicates(self, temp_dir: Path) -> None:
        """All image predicates on one entry share a single decode."""
        write_jpeg(temp_dir / "photo.jpg", date_time=datetime(2021, 5, 6, 7, 8, 9))
        cache = MetadataCache()
        engine = FilterEngine(PredicateEvaluator(cache))
        expr = parse_filter({"all": [
            "has_img_metadata",
            "has_img_date_time",
            {"img_size": {"min": 100, "max": 1000}},
        ]})

        assert engine.matches(expr, make_entry(temp_dir, "photo.jpg")) is True
        assert cache.get_stats()["decode_attempts"] == 1
