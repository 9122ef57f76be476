"""Tests for HeaderSet."""

import pytest

from ssdp_discovery_protocol import HeaderSet


class TestHeaderSet:
    """Test HeaderSet normalization and ordering."""

    def test_keys_normalized_on_write(self):
        headers = HeaderSet()
        headers["  cache-control "] = "max-age=1800"
        assert list(headers.keys()) == ["CACHE-CONTROL"]

    def test_lookup_is_case_insensitive(self):
        headers = HeaderSet({"Location": "http://192.168.1.10/desc.xml"})
        assert headers["LOCATION"] == "http://192.168.1.10/desc.xml"
        assert headers["location"] == "http://192.168.1.10/desc.xml"
        assert headers[" Location "] == "http://192.168.1.10/desc.xml"
        assert "lOcAtIoN" in headers
        assert headers.get("missing") is None

    def test_values_converted_and_trimmed(self):
        headers = HeaderSet()
        headers["MX"] = 3
        headers["SERVER"] = "  Linux UPnP/1.0  "
        assert headers["MX"] == "3"
        assert headers["SERVER"] == "Linux UPnP/1.0"

    def test_duplicate_write_overwrites(self):
        headers = HeaderSet()
        headers["st"] = "first"
        headers["ST"] = "second"
        assert len(headers) == 1
        assert headers["St"] == "second"

    def test_delete_is_case_insensitive(self):
        headers = HeaderSet({"EXT": ""})
        del headers["ext"]
        assert len(headers) == 0

    def test_sorted_items_ignores_insertion_order(self):
        headers = HeaderSet()
        headers["USN"] = "uuid:x"
        headers["NT"] = "upnp:rootdevice"
        headers["HOST"] = "239.255.255.250:1900"
        assert [name for name, _ in headers.sorted_items()] == ["HOST", "NT", "USN"]

    def test_copy_is_independent(self):
        headers = HeaderSet({"ST": "urn:test:1"})
        copied = headers.copy()
        assert isinstance(copied, HeaderSet)
        copied["USN"] = "uuid:x::urn:test:1"
        assert "USN" not in headers

    def test_equality_ignores_key_case(self):
        assert HeaderSet({"nt": "a", "nts": "ssdp:alive"}) == {"NT": "a", "NTS": "ssdp:alive"}

    def test_rejects_non_scalar_values(self):
        headers = HeaderSet()
        with pytest.raises(TypeError):
            headers["ST"] = ["a", "b"]
        with pytest.raises(TypeError):
            headers["EXT"] = None

    @pytest.mark.parametrize("name", ["", "   ", "X-A:B", "BAD NAME", "X-\r\nNTS", "X\tY", "X\x00"])
    def test_rejects_invalid_names(self, name):
        headers = HeaderSet()
        with pytest.raises(ValueError):
            headers[name] = "v"
        assert len(headers) == 0

    @pytest.mark.parametrize("value", ["http://a/\r\nST: urn:evil:1", "x/1.0\nNTS: ssdp:byebye", "a\rb", "a\x00b"])
    def test_rejects_line_breaking_values(self, value):
        headers = HeaderSet()
        with pytest.raises(ValueError):
            headers["LOCATION"] = value
        assert "LOCATION" not in headers

    def test_rejects_invalid_headers_on_construction(self):
        with pytest.raises(ValueError):
            HeaderSet({"SERVER": "x/1.0\r\nNTS: ssdp:byebye"})
