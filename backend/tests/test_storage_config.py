"""
Profile-picture storage config: bucket name, size limit and object keys.
"""
from __future__ import annotations

import importlib

import pytest


def _reload_config():
    return importlib.reload(importlib.import_module("backend.storage.config"))


def test_defaults(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("PROFILE_PICTURES_BUCKET", raising=False)
    monkeypatch.delenv("PROFILE_PICTURE_MAX_BYTES", raising=False)
    cfg = _reload_config()
    assert cfg.get_profile_pictures_bucket() == "profile-pictures"
    assert cfg.get_profile_picture_max_bytes() == 5 * 1024 * 1024


def test_env_overrides_and_clamp(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PROFILE_PICTURES_BUCKET", "avatars")
    monkeypatch.setenv("PROFILE_PICTURE_MAX_BYTES", "1024")
    cfg = _reload_config()
    assert cfg.get_profile_pictures_bucket() == "avatars"
    assert cfg.get_profile_picture_max_bytes() == 1024
    monkeypatch.setenv("PROFILE_PICTURE_MAX_BYTES", str(50 * 1024 * 1024))
    assert cfg.get_profile_picture_max_bytes() == 5 * 1024 * 1024


@pytest.mark.parametrize("raw", ["-1", "0", "abc"])
def test_invalid_limit_falls_back_to_default(monkeypatch: pytest.MonkeyPatch, raw):
    monkeypatch.setenv("PROFILE_PICTURE_MAX_BYTES", raw)
    cfg = _reload_config()
    assert cfg.get_profile_picture_max_bytes() == 5 * 1024 * 1024


def test_profile_picture_key_uses_owner_folder():
    cfg = _reload_config()
    assert cfg.profile_picture_key("u1", "image/jpeg") == "u1/u1.jpg"
    assert cfg.profile_picture_key("u1", "image/PNG; charset=binary") == "u1/u1.png"
    with pytest.raises(ValueError):
        cfg.profile_picture_key("u1", "application/pdf")
