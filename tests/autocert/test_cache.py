"""Tests for the directory-backed certificate cache."""

from __future__ import annotations

import stat

import pytest

from simpletls.autocert.cache import CacheMiss, DirCache


class TestDirCache:
    def test_get_missing_entry(self, tmp_path):
        cache = DirCache(tmp_path / "cache")

        with pytest.raises(CacheMiss):
            cache.get("example.com")

    def test_cache_miss_is_key_error(self):
        assert issubclass(CacheMiss, KeyError)

    def test_put_then_get(self, tmp_path):
        cache = DirCache(tmp_path / "cache")
        cache.put("example.com", b"bundle")

        assert cache.get("example.com") == b"bundle"
        assert cache.path("example.com") == tmp_path / "cache" / "example.com"

    def test_put_replaces_entry(self, tmp_path):
        cache = DirCache(tmp_path / "cache")
        cache.put("example.com", b"old")
        cache.put("example.com", b"new")

        assert cache.get("example.com") == b"new"
        assert sorted(p.name for p in cache.directory.iterdir()) == ["example.com"]

    def test_permissions(self, tmp_path):
        cache = DirCache(tmp_path / "cache")
        cache.put("example.com", b"secret")

        assert stat.S_IMODE(cache.directory.stat().st_mode) == 0o700
        assert stat.S_IMODE(cache.path("example.com").stat().st_mode) == 0o600

    def test_directory_created_lazily(self, tmp_path):
        cache = DirCache(tmp_path / "cache")

        assert not cache.directory.exists()

    def test_delete(self, tmp_path):
        cache = DirCache(tmp_path / "cache")
        cache.put("example.com", b"bundle")
        cache.delete("example.com")
        cache.delete("example.com")

        with pytest.raises(CacheMiss):
            cache.get("example.com")

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b", "..\\x"])
    def test_invalid_names(self, tmp_path, name):
        cache = DirCache(tmp_path)

        with pytest.raises(ValueError, match="invalid cache entry name"):
            cache.path(name)
