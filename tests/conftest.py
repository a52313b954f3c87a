from __future__ import annotations

import json
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


@pytest.fixture(scope="session")
def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


@pytest.fixture(scope="session")
def vectors(repo_root: Path) -> dict:
    data = json.loads((repo_root / "test-vectors" / "vectors.json").read_text(encoding="utf-8"))
    return data["testVectors"]


@pytest.fixture(scope="session")
def test_key():
    # One key for the whole session; every container signed with it is reproducible
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def minimal_extension(tmp_path: Path) -> Path:
    root = tmp_path / "ext"
    root.mkdir()
    (root / "manifest.json").write_text('{"name":"t"}', encoding="utf-8")
    return root


@pytest.fixture(scope="session")
def known_answer(vectors: dict) -> dict:
    return vectors["ext-minimal"]["knownAnswer"]


@pytest.fixture(scope="session")
def fixed_key(repo_root: Path, known_answer: dict):
    return serialization.load_pem_private_key(
        (repo_root / known_answer["key"]).read_bytes(), password=None
    )
