"""Tests des cas d'erreur."""

from pathlib import Path

import pytest

from partlink import PartLinkError, StoreUnavailableError
from partlink.config import ConfigError, ConfigFileError, MatchingConfig
from partlink.matching.orchestrator import GlobalStageError
from partlink.snapshot import Snapshot, SnapshotError


def test_config_load_file_not_found(tmp_path: Path) -> None:
    """MatchingConfig.load() lève ConfigFileError si le fichier n'existe pas."""
    missing = tmp_path / "inexistant.json"
    with pytest.raises(ConfigFileError, match="introuvable"):
        MatchingConfig.load(missing)


def test_config_load_invalid_json(tmp_path: Path) -> None:
    """MatchingConfig.load() lève ConfigFileError si le JSON est invalide."""
    bad_json = tmp_path / "config.json"
    bad_json.write_text("{ invalid json }", encoding="utf-8")
    with pytest.raises(ConfigFileError, match="JSON invalide"):
        MatchingConfig.load(bad_json)


def test_config_load_not_dict(tmp_path: Path) -> None:
    """MatchingConfig.load() lève ConfigFileError si le JSON n'est pas un objet."""
    bad_config = tmp_path / "config.json"
    bad_config.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(ConfigFileError, match="objet JSON"):
        MatchingConfig.load(bad_config)


def test_snapshot_load_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(SnapshotError, match="introuvable"):
        Snapshot.load(tmp_path / "absent.json")


def test_snapshot_load_invalid_json(tmp_path: Path) -> None:
    bad = tmp_path / "snapshot.json"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(SnapshotError, match="JSON invalide"):
        Snapshot.load(bad)


def test_snapshot_unknown_rule_type() -> None:
    with pytest.raises(SnapshotError, match="Règle invalide"):
        Snapshot.from_dict({"rules": [{"rule_type": "regex", "id": "r1"}]})


def test_snapshot_missing_field() -> None:
    with pytest.raises(SnapshotError, match="malformé"):
        Snapshot.from_dict({"interchanges": [{"source_full_sku": "A"}]})


def test_error_hierarchy() -> None:
    """Toutes les erreurs du paquet dérivent de PartLinkError."""
    for exc in (ConfigError, ConfigFileError, SnapshotError, StoreUnavailableError, GlobalStageError):
        assert issubclass(exc, PartLinkError)
