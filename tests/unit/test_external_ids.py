"""Unit tests for the namespaced external-id codec and identifier sets."""

from __future__ import annotations

import pytest

from mixcatalog.models.staging import Provider
from mixcatalog.utils import external_ids
from mixcatalog.utils.errors import UnsupportedProviderError


class TestEncode:
    def test_prefixes_by_provider(self) -> None:
        assert external_ids.encode(Provider.YOUTUBE, "dQw4w9WgXcQ") == "yt:dQw4w9WgXcQ"
        assert external_ids.encode(Provider.SOUNDCLOUD, "12345") == "sc:12345"
        assert external_ids.encode(Provider.TRACKLISTS_1001, "2k9x7") == "1001:2k9x7"

    def test_accepts_provider_value_string(self) -> None:
        assert external_ids.encode("soundcloud", "12345") == "sc:12345"

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(UnsupportedProviderError):
            external_ids.encode("bandcamp", "abc")

    def test_empty_id_raises(self) -> None:
        with pytest.raises(ValueError):
            external_ids.encode(Provider.YOUTUBE, "")


class TestDecode:
    def test_inverse_of_encode(self) -> None:
        for provider in Provider:
            decoded = external_ids.decode(external_ids.encode(provider, "abc"))
            assert decoded == (provider, "abc")

    def test_id_may_contain_separator(self) -> None:
        assert external_ids.decode("sc:user:track") == (Provider.SOUNDCLOUD, "user:track")

    @pytest.mark.parametrize("raw", ["", "dQw4w9WgXcQ", "xx:123", "yt:", ":123"])
    def test_malformed_is_none(self, raw: str) -> None:
        assert external_ids.decode(raw) is None


class TestIdentifierSets:
    def test_external_ids_for(self) -> None:
        assert external_ids.external_ids_for(Provider.YOUTUBE, "abc") == {"youtube": "yt:abc"}
        assert external_ids.external_ids_for(Provider.YOUTUBE, None) == {}

    def test_merge_is_right_biased(self) -> None:
        a = {"youtube": "yt:old", "soundcloud": "sc:1"}
        b = {"youtube": "yt:new", "1001": "1001:x"}
        assert external_ids.merge(a, b) == {
            "youtube": "yt:new",
            "soundcloud": "sc:1",
            "1001": "1001:x",
        }

    def test_merge_is_idempotent(self) -> None:
        a = {"youtube": "yt:a"}
        b = {"soundcloud": "sc:b"}
        merged = external_ids.merge(a, b)
        assert external_ids.merge(a, merged) == merged
        assert set(a) | set(b) <= set(merged)

    def test_add_external_id(self) -> None:
        ids = external_ids.add_external_id({"youtube": "yt:a"}, Provider.SOUNDCLOUD, "b")
        assert ids == {"youtube": "yt:a", "soundcloud": "sc:b"}

    def test_matching_key(self) -> None:
        a = {"youtube": "yt:a", "soundcloud": "sc:b"}
        assert external_ids.matching_key(a, {"soundcloud": "sc:b"}) == "soundcloud"
        assert external_ids.matching_key(a, {"soundcloud": "sc:other"}) is None
        assert external_ids.has_overlap(a, {"youtube": "yt:a"})
        assert not external_ids.has_overlap(a, {})

    def test_linked_external_ids_drops_unknown_platforms(self) -> None:
        links = {"youtube": "abc", "mixcloud": "xyz", "soundcloud": ""}
        assert external_ids.linked_external_ids(links) == {"youtube": "yt:abc"}

    def test_encoded_ids(self) -> None:
        assert external_ids.encoded_ids({"youtube": "yt:a", "1001": "1001:b"}) == ["yt:a", "1001:b"]
