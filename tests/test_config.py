from __future__ import annotations

import os
import stat
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import pytest

from which_llm._auth import CredentialResolver, mask_api_key
from which_llm._errors import ConfigurationError
from which_llm.config import Config


def write_config(config_dir: Path, text: str) -> None:
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "config.toml").write_text(text, encoding="utf-8")


PROFILES = """
default_profile = "work"

[profiles.work]
api_key = "aa_work_key_0123456789"

[profiles.personal]
api_key = "aa_personal_key_0123456789"
"""


class TestConfigLoad:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        cfg = Config.load(config_dir=tmp_path / "cfg", cache_dir=tmp_path / "cache")
        assert cfg.profiles == {}
        assert cfg.default_profile is None
        assert cfg.ttl == timedelta(hours=24)
        assert cfg.cache_dir == tmp_path / "cache"

    def test_env_directory_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WHICH_LLM_CONFIG_DIR", str(tmp_path / "c"))
        monkeypatch.setenv("WHICH_LLM_CACHE_DIR", str(tmp_path / "d"))
        cfg = Config.load()
        assert cfg.config_dir == tmp_path / "c"
        assert cfg.cache_dir == tmp_path / "d"

    def test_ttl_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WHICH_LLM_CACHE_TTL_HOURS", "1.5")
        cfg = Config.load(config_dir=tmp_path, cache_dir=tmp_path)
        assert cfg.ttl == timedelta(minutes=90)

    def test_origin_ttl(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        assert Config.load(config_dir=tmp_path, cache_dir=tmp_path).origin_ttl == timedelta(hours=1)
        monkeypatch.setenv("WHICH_LLM_ORIGIN_TTL_HOURS", "0.25")
        assert Config.load(config_dir=tmp_path, cache_dir=tmp_path).origin_ttl == timedelta(minutes=15)

    @pytest.mark.parametrize("value", ["soon", "-1"])
    def test_invalid_ttl(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("WHICH_LLM_CACHE_TTL_HOURS", value)
        with pytest.raises(ConfigurationError):
            Config.load(config_dir=tmp_path, cache_dir=tmp_path)

    def test_reads_profiles(self, tmp_path: Path) -> None:
        write_config(tmp_path, PROFILES)
        cfg = Config.load(config_dir=tmp_path, cache_dir=tmp_path)
        assert set(cfg.profiles) == {"work", "personal"}
        assert cfg.default_profile == "work"
        assert cfg.get_default_profile().is_default
        assert not cfg.get_profile("personal").is_default

    def test_is_default_flag(self, tmp_path: Path) -> None:
        write_config(tmp_path, '[profiles.a]\napi_key = "k1"\n\n[profiles.b]\napi_key = "k2"\nis_default = true\n')
        assert Config.load(config_dir=tmp_path, cache_dir=tmp_path).default_profile == "b"

    def test_two_defaults_rejected(self, tmp_path: Path) -> None:
        write_config(
            tmp_path,
            '[profiles.a]\napi_key = "k1"\nis_default = true\n\n[profiles.b]\napi_key = "k2"\nis_default = true\n',
        )
        with pytest.raises(ConfigurationError, match="More than one default"):
            Config.load(config_dir=tmp_path, cache_dir=tmp_path)

    def test_unknown_default_rejected(self, tmp_path: Path) -> None:
        write_config(tmp_path, 'default_profile = "ghost"\n')
        with pytest.raises(ConfigurationError, match="ghost"):
            Config.load(config_dir=tmp_path, cache_dir=tmp_path)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        write_config(tmp_path, "this is = = not toml")
        with pytest.raises(ConfigurationError, match="Invalid config file"):
            Config.load(config_dir=tmp_path, cache_dir=tmp_path)

    def test_immutable(self, config: Config) -> None:
        with pytest.raises(AttributeError):
            config.ttl = timedelta(0)  # type: ignore[misc]


class TestProfileStore:
    def _empty(self, tmp_path: Path) -> Config:
        return Config.load(config_dir=tmp_path / "cfg", cache_dir=tmp_path / "cache")

    def test_first_profile_becomes_default(self, tmp_path: Path) -> None:
        cfg = self._empty(tmp_path).with_profile("work", "aa_work_key")
        assert cfg.default_profile == "work"
        cfg = cfg.with_profile("personal", "aa_personal_key")
        assert cfg.default_profile == "work"
        assert not cfg.get_profile("personal").is_default

    def test_save_and_reload(self, tmp_path: Path) -> None:
        cfg = self._empty(tmp_path).with_profile("work", "aa_work_key").with_profile("personal", "aa_personal_key")
        cfg.save()
        loaded = self._empty(tmp_path)
        assert set(loaded.profiles) == {"work", "personal"}
        assert loaded.default_profile == "work"
        assert loaded.get_profile("personal").api_key == "aa_personal_key"

    def test_set_default_keeps_one_default(self, tmp_path: Path) -> None:
        cfg = self._empty(tmp_path).with_profile("work", "k1").with_profile("personal", "k2")
        cfg = cfg.with_default("personal")
        assert [p.name for p in cfg.profiles.values() if p.is_default] == ["personal"]
        cfg.save()
        loaded = self._empty(tmp_path)
        assert loaded.default_profile == "personal"
        assert [p.name for p in loaded.profiles.values() if p.is_default] == ["personal"]

    def test_make_default_on_add(self, tmp_path: Path) -> None:
        cfg = self._empty(tmp_path).with_profile("work", "k1").with_profile("personal", "k2", make_default=True)
        assert cfg.default_profile == "personal"
        assert not cfg.get_profile("work").is_default

    def test_remove_default_profile(self, tmp_path: Path) -> None:
        cfg = self._empty(tmp_path).with_profile("work", "k1").with_profile("personal", "k2")
        cfg = cfg.without_profile("work")
        assert set(cfg.profiles) == {"personal"}
        assert cfg.default_profile is None
        cfg.save()
        assert self._empty(tmp_path).default_profile is None

    def test_original_is_unchanged(self, tmp_path: Path) -> None:
        cfg = self._empty(tmp_path)
        cfg.with_profile("work", "k1")
        assert cfg.profiles == {}

    @pytest.mark.parametrize(
        ("action", "match"),
        [
            (lambda c: c.with_profile("work", "k9"), "already exists"),
            (lambda c: c.with_profile("new", ""), "needs an api_key"),
            (lambda c: c.with_default("ghost"), "not found"),
            (lambda c: c.without_profile("ghost"), "not found"),
        ],
    )
    def test_invalid_changes(self, tmp_path: Path, action: Callable[[Config], Config], match: str) -> None:
        cfg = self._empty(tmp_path).with_profile("work", "k1")
        with pytest.raises(ConfigurationError, match=match):
            action(cfg)

    @pytest.mark.skipif(os.name != "posix", reason="file modes are POSIX only")
    def test_saved_file_is_private(self, tmp_path: Path) -> None:
        cfg = self._empty(tmp_path).with_profile("work", "k1")
        cfg.save()
        assert stat.S_IMODE(cfg.config_file.stat().st_mode) == 0o600


class TestCredentialResolver:
    def _config(self, tmp_path: Path, **kwargs: object) -> Config:
        write_config(tmp_path, PROFILES)
        return Config.load(config_dir=tmp_path, cache_dir=tmp_path, **kwargs)

    def test_env_key_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ARTIFICIAL_ANALYSIS_API_KEY", "aa_env_key")
        cred = CredentialResolver(self._config(tmp_path, profile="personal")).resolve()
        assert cred.api_key == "aa_env_key"
        assert cred.profile == "env"

    def test_selected_profile(self, tmp_path: Path) -> None:
        cred = CredentialResolver(self._config(tmp_path, profile="personal")).resolve()
        assert cred.profile == "personal"

    def test_profile_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WHICH_LLM_PROFILE", "personal")
        assert CredentialResolver(self._config(tmp_path)).resolve().profile == "personal"

    def test_default_profile(self, tmp_path: Path) -> None:
        cred = CredentialResolver(self._config(tmp_path)).resolve()
        assert cred.api_key == "aa_work_key_0123456789"

    def test_unknown_profile_falls_back(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        cred = CredentialResolver(self._config(tmp_path, profile="ghost")).resolve()
        assert cred.profile == "work"
        assert "ghost" in caplog.text

    def test_nothing_configured(self, config: Config) -> None:
        assert CredentialResolver(config).resolve() is None
        assert CredentialResolver(config).resolve_masked() is None

    def test_masked(self, tmp_path: Path) -> None:
        assert CredentialResolver(self._config(tmp_path)).resolve_masked() == "aa_work_...6789"

    def test_mask_short_key(self) -> None:
        assert mask_api_key("abc") == "***"
