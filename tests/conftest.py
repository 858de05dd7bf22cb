"""Shared fixtures: a small rustdoc JSON crate, a hashing embedding model and stub extractors."""

from __future__ import annotations

import hashlib
import re
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List

import numpy as np
import pytest

from rustdocfinder.embedding.encoder import EmbeddingConfig, EmbeddingService
from rustdocfinder.extraction.rustdoc import RawDocDump

HASH_DIMENSION = 256

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _stem(token: str) -> str:
    return token[:-1] if len(token) > 3 and token.endswith("s") else token


class HashingModel:
    """Bag-of-words stand-in for ``EmbeddingModel``.

    Texts sharing (crudely stemmed) words get positive cosine similarity, so
    ranking tests stay meaningful without downloading a real model.
    """

    def __init__(self, config: EmbeddingConfig | None = None, dimension: int = HASH_DIMENSION):
        self.config = config
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def _vector(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype="float32")
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.blake2b(_stem(token).encode("utf-8"), digest_size=4).digest()
            vector[int.from_bytes(digest, "little") % self.dimension] += 1.0
        norm = np.linalg.norm(vector)
        return vector / norm if norm else vector

    def embed(self, texts):
        texts = list(texts)
        self.calls.append(texts)
        if not texts:
            return np.zeros((0, self.dimension), dtype="float32")
        return np.vstack([self._vector(text) for text in texts]).astype("float32")

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed([text])[0]


def make_embedding_service(**kwargs: Any) -> EmbeddingService:
    kwargs.setdefault("model_factory", HashingModel)
    return EmbeddingService(EmbeddingConfig(model_name="hashing-test"), **kwargs)


class StaticExtractor:
    """Returns a fixed dump (or raises a fixed error) for every project."""

    def __init__(self, dump: RawDocDump | None = None, *, error: Exception | None = None):
        self.dump = dump
        self.error = error
        self.calls: List[Path] = []

    def extract(self, project_root: Path) -> RawDocDump:
        self.calls.append(project_root)
        if self.error is not None:
            raise self.error
        assert self.dump is not None
        return self.dump


class BlockingExtractor(StaticExtractor):
    """Blocks inside ``extract`` until released, to hold the processing token."""

    def __init__(self, dump: RawDocDump) -> None:
        super().__init__(dump)
        self.entered = threading.Event()
        self.release = threading.Event()

    def extract(self, project_root: Path) -> RawDocDump:
        self.entered.set()
        assert self.release.wait(timeout=10)
        return super().extract(project_root)


def _fn(inputs: List[Any], output: Any = None) -> Dict[str, Any]:
    return {
        "function": {
            "sig": {"inputs": inputs, "output": output, "is_c_variadic": False},
            "generics": {"params": [], "where_predicates": []},
            "header": {"is_const": False, "is_unsafe": False, "is_async": False, "abi": "Rust"},
            "has_body": True,
        }
    }


def _no_generics() -> Dict[str, Any]:
    return {"params": [], "where_predicates": []}


def build_crate_data(*, format_version: int = 39, integer_ids: bool = False) -> Dict[str, Any]:
    """rustdoc JSON for a crate ``foo``.

    Public: ``bar``, ``Point`` with ``new`` and an ``impl Display``, trait
    ``Shape`` with ``area``, module ``util`` with ``parse``. Private: ``hidden``
    (pub(crate)) and ``Point::helper``. ``Point`` also has a synthetic
    ``Send`` impl and the root re-exports ``parse`` with a ``use``.
    """
    ident: Callable[[int], Any] = int if integer_ids else str

    def item(n, name, inner, *, docs=None, visibility="public", line=1):
        return {
            "id": ident(n),
            "crate_id": 0,
            "name": name,
            "span": {"filename": "src/lib.rs", "begin": [line, 1], "end": [line + 2, 2]},
            "visibility": visibility,
            "docs": docs,
            "links": {},
            "attrs": [],
            "deprecation": None,
            "inner": inner,
        }

    def path(name, n, args=None):
        return {"resolved_path": {"path": name, "id": ident(n), "args": args}}

    self_ref = {"borrowed_ref": {"lifetime": None, "is_mutable": False, "type": {"generic": "Self"}}}
    formatter = {
        "borrowed_ref": {
            "lifetime": None,
            "is_mutable": True,
            "type": path(
                "fmt::Formatter",
                50,
                {"angle_bracketed": {"args": [{"lifetime": "'_"}], "constraints": []}},
            ),
        }
    }
    str_ref = {"borrowed_ref": {"lifetime": None, "is_mutable": False, "type": {"primitive": "str"}}}
    option_point = path(
        "Option",
        60,
        {"angle_bracketed": {"args": [{"type": path("Point", 3)}], "constraints": []}},
    )

    def impl(trait, items, *, synthetic=False):
        return {
            "impl": {
                "is_unsafe": False,
                "generics": _no_generics(),
                "provided_trait_methods": [],
                "trait": trait,
                "for": path("Point", 3),
                "items": [ident(n) for n in items],
                "is_negative": False,
                "is_synthetic": synthetic,
                "blanket_impl": None,
            }
        }

    items = [
        item(
            0,
            "foo",
            {"module": {"is_crate": True, "items": [ident(n) for n in (1, 2, 3, 6, 9, 13)]}},
            docs="Tiny geometry crate.",
        ),
        item(
            1,
            "bar",
            _fn([["a", {"primitive": "i32"}], ["b", {"primitive": "i32"}]], {"primitive": "i32"}),
            docs="Adds two numbers.",
            line=3,
        ),
        item(2, "hidden", _fn([]), docs="Internal helper.", visibility="crate", line=8),
        item(
            3,
            "Point",
            {
                "struct": {
                    "kind": {"plain": {"fields": [], "has_stripped_fields": True}},
                    "generics": _no_generics(),
                    "impls": [ident(4), ident(5), ident(8)],
                }
            },
            docs="A point in the plane.",
            line=12,
        ),
        item(4, None, impl(None, [10, 11]), visibility="default", line=16),
        item(
            5,
            None,
            impl({"path": "Display", "id": ident(99), "args": None}, [12]),
            visibility="default",
            line=30,
        ),
        item(
            8,
            None,
            impl({"path": "Send", "id": ident(98), "args": None}, [], synthetic=True),
            visibility="default",
        ),
        item(
            10,
            "new",
            _fn([["x", {"primitive": "f64"}], ["y", {"primitive": "f64"}]], {"generic": "Self"}),
            docs="Creates a point from coordinates.",
            line=18,
        ),
        item(11, "helper", _fn([["self", self_ref]]), visibility="default", line=22),
        item(
            12,
            "fmt",
            _fn([["self", self_ref], ["f", formatter]], path("fmt::Result", 51)),
            visibility="default",
            line=31,
        ),
        item(
            6,
            "util",
            {"module": {"is_crate": False, "items": [ident(7)], "is_stripped": False}},
            docs="Parsing utilities.",
            line=40,
        ),
        item(7, "parse", _fn([["s", str_ref]], option_point), docs="Parses a point from text.", line=42),
        item(
            9,
            None,
            {"use": {"source": "crate::util::parse", "name": "parse", "id": ident(7), "is_glob": False}},
            line=50,
        ),
        item(
            13,
            "Shape",
            {
                "trait": {
                    "is_auto": False,
                    "is_unsafe": False,
                    "is_dyn_compatible": True,
                    "items": [ident(14)],
                    "generics": _no_generics(),
                    "bounds": [],
                    "implementations": [],
                }
            },
            docs="Something with an area.",
            line=55,
        ),
        item(14, "area", _fn([["self", self_ref]], {"primitive": "f64"}), docs="Computes the area.", line=57),
    ]

    def summary(crate_id, segments, kind):
        return {"crate_id": crate_id, "path": segments, "kind": kind}

    return {
        "root": ident(0),
        "crate_version": "0.1.0",
        "includes_private": False,
        "index": {str(entry["id"]): entry for entry in items},
        "paths": {
            str(ident(0)): summary(0, ["foo"], "module"),
            str(ident(1)): summary(0, ["foo", "bar"], "function"),
            str(ident(3)): summary(0, ["foo", "Point"], "struct"),
            str(ident(6)): summary(0, ["foo", "util"], "module"),
            str(ident(7)): summary(0, ["foo", "util", "parse"], "function"),
            str(ident(13)): summary(0, ["foo", "Shape"], "trait"),
            str(ident(99)): summary(1, ["core", "fmt", "Display"], "trait"),
        },
        "external_crates": {"1": {"name": "core", "html_root_url": None}},
        "format_version": format_version,
    }


EXPECTED_PATHS = [
    "foo",
    "foo::Point",
    "foo::Point::<impl Display>",
    "foo::Point::<impl Display>::fmt",
    "foo::Point::<impl>",
    "foo::Point::new",
    "foo::Shape",
    "foo::Shape::area",
    "foo::bar",
    "foo::util",
    "foo::util::parse",
]


@pytest.fixture
def crate_data() -> Dict[str, Any]:
    return build_crate_data()


@pytest.fixture
def sample_dump(tmp_path: Path, crate_data: Dict[str, Any]) -> RawDocDump:
    return RawDocDump(crate_name="foo", json_path=tmp_path / "foo.json", data=crate_data)


@pytest.fixture
def embedding_service() -> EmbeddingService:
    return make_embedding_service()


@pytest.fixture
def cargo_project(tmp_path: Path) -> Path:
    """An empty Cargo project directory named ``foo``."""
    root = tmp_path / "foo"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text('[package]\nname = "foo"\nversion = "0.1.0"\n', encoding="utf-8")
    (root / "src" / "lib.rs").write_text("/// Adds two numbers.\npub fn bar() {}\n", encoding="utf-8")
    return root


@pytest.fixture
def doc_service(sample_dump: RawDocDump):
    """A DocService with the hashing model and a stub extractor returning crate ``foo``."""
    from rustdocfinder.service import DocService

    service = DocService(embedder=make_embedding_service(), extractor=StaticExtractor(sample_dump))
    yield service
    service.shutdown()
