"""Tests for catalog loading, backup and atomic writes."""

import json
import logging
import os
import stat
from datetime import datetime

import pytest

from reconcile.models import Catalog, Product
from reconcile.storage import (
    FatalInputError,
    WriteFailureError,
    backup_catalog,
    backup_path_for,
    load_catalog,
    load_links,
    load_source_records,
    read_json,
    write_catalog,
    write_json_atomic,
)

FIXED_NOW = datetime(2024, 5, 1, 12, 30, 45)


class TestLoadCatalog:
    def test_array_catalog(self, write_json, sample_catalog):
        catalog = load_catalog(write_json("products.json", sample_catalog))
        assert len(catalog) == 2
        assert catalog.wrapper is None
        assert catalog.products[0].id == "entrepedia__growth-hacks"

    def test_legacy_keys_migrated(self, write_json, sample_catalog):
        product = load_catalog(write_json("products.json", sample_catalog)).products[0]
        assert product.category == "Marketing"
        assert product.external_link_id == "AbC12"
        assert product.external_link_url == "https://payhip.com/b/AbC12"
        data = product.to_dict()
        assert "payhipUrl" not in data
        assert "mainCategory" not in data

    def test_conflicting_legacy_key_warns(self, write_json, sample_catalog, caplog):
        sample_catalog[0]["externalLinkUrl"] = "https://shop.test/b/New1"
        with caplog.at_level(logging.WARNING, logger="reconcile"):
            product = load_catalog(write_json("products.json", sample_catalog)).products[0]

        assert product.external_link_url == "https://shop.test/b/New1"
        [warning] = [r for r in caplog.records if r.name == "reconcile.models"]
        assert "entrepedia__growth-hacks" in warning.getMessage()
        assert "payhipUrl='https://payhip.com/b/AbC12'" in warning.getMessage()

    def test_agreeing_legacy_key_is_quiet(self, write_json, sample_catalog, caplog):
        sample_catalog[0]["externalLinkId"] = "AbC12"
        with caplog.at_level(logging.WARNING, logger="reconcile"):
            load_catalog(write_json("products.json", sample_catalog))
        assert [r for r in caplog.records if r.name == "reconcile.models"] == []

    def test_wrapper_is_preserved(self, write_json, sample_catalog):
        path = write_json("products.json", {"version": 3, "products": sample_catalog})
        catalog = load_catalog(path)
        assert catalog.wrapper_key == "products"
        document = catalog.to_document()
        assert document["version"] == 3
        assert len(document["products"]) == 2

    def test_items_wrapper(self, write_json):
        catalog = load_catalog(write_json("products.json", {"items": [{"id": "a", "title": "A"}]}))
        assert catalog.wrapper_key == "items"
        assert catalog.to_document() == {"items": [catalog.products[0].to_dict()]}

    def test_missing_file_is_fatal(self, tmp_path):
        with pytest.raises(FatalInputError, match="not found"):
            load_catalog(tmp_path / "missing.json")

    def test_missing_file_allowed(self, tmp_path):
        catalog = load_catalog(tmp_path / "missing.json", allow_missing=True)
        assert len(catalog) == 0

    def test_invalid_json_is_fatal(self, tmp_path):
        path = tmp_path / "products.json"
        path.write_text("[{broken", encoding="utf-8")
        with pytest.raises(FatalInputError, match="invalid JSON"):
            load_catalog(path)

    @pytest.mark.parametrize("data", [{"data": []}, "text", 5, [1, 2]])
    def test_bad_shape_is_fatal(self, write_json, data):
        with pytest.raises(FatalInputError):
            load_catalog(write_json("products.json", data))

    def test_utf8_bom_is_accepted(self, tmp_path):
        path = tmp_path / "products.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps([{"id": "a", "title": "A"}]).encode())
        assert read_json(path) == [{"id": "a", "title": "A"}]


class TestLoadInputs:
    def test_source_records(self, write_json, sample_source):
        assert len(load_source_records(write_json("src.json", {"products": sample_source}))) == 3

    def test_source_bad_shape(self, write_json):
        with pytest.raises(FatalInputError):
            load_source_records(write_json("src.json", {"nothing": 1}))

    def test_links(self, write_json):
        links = load_links(write_json("links.json", {"Growth Hacks": "https://payhip.com/b/AbC12"}))
        assert links[0].link_id == "AbC12"

    def test_links_bad_shape(self, write_json):
        with pytest.raises(FatalInputError, match="no usable rows"):
            load_links(write_json("links.json", 17))


class TestBackup:
    def test_backup_name(self, tmp_path):
        path = tmp_path / "products.json"
        assert backup_path_for(path, FIXED_NOW).name == "products.json.bak-20240501-123045"

    def test_backup_name_collision(self, tmp_path):
        path = tmp_path / "products.json"
        (tmp_path / "products.json.bak-20240501-123045").write_text("old")
        assert backup_path_for(path, FIXED_NOW).name == "products.json.bak-20240501-123045-1"

    def test_backup_matches_original(self, write_json, sample_catalog):
        path = write_json("products.json", sample_catalog)
        before = path.read_bytes()
        backup = backup_catalog(path, FIXED_NOW)
        assert backup.read_bytes() == before

    def test_backup_failure(self, tmp_path):
        with pytest.raises(WriteFailureError):
            backup_catalog(tmp_path / "missing.json", FIXED_NOW)


class TestWriteCatalog:
    def test_backup_holds_previous_content(self, write_json, sample_catalog):
        path = write_json("products.json", sample_catalog)
        before = path.read_bytes()
        catalog = load_catalog(path)
        catalog.products.append(Product(id="new", title="New"))

        backup = write_catalog(catalog, path, now=FIXED_NOW)

        assert backup is not None
        assert backup.read_bytes() == before
        written = json.loads(path.read_text(encoding="utf-8"))
        assert [item["id"] for item in written] == ["entrepedia__growth-hacks", "email-marketing-playbook", "new"]

    def test_no_backup_for_new_file(self, tmp_path):
        path = tmp_path / "products.json"
        assert write_catalog(Catalog(products=[Product(id="a", title="A")]), path) is None
        assert path.exists()

    def test_output_format(self, tmp_path):
        path = tmp_path / "products.json"
        write_catalog(Catalog(products=[Product(id="a", title="Café")]), path)
        text = path.read_text(encoding="utf-8")
        assert text.endswith("\n")
        assert "Café" in text
        assert text.startswith('[\n  {\n    "id": "a"')

    def test_wrapper_round_trip(self, write_json, sample_catalog):
        path = write_json("products.json", {"meta": {"v": 1}, "products": sample_catalog})
        write_catalog(load_catalog(path), path, now=FIXED_NOW)
        written = json.loads(path.read_text(encoding="utf-8"))
        assert written["meta"] == {"v": 1}
        assert len(written["products"]) == 2

    def test_no_temp_files_left(self, tmp_path):
        path = tmp_path / "products.json"
        write_json_atomic(path, [{"id": "a"}])
        assert [p.name for p in tmp_path.iterdir()] == ["products.json"]

    def test_unserializable_data_leaves_original(self, tmp_path):
        path = tmp_path / "products.json"
        path.write_text("[]\n", encoding="utf-8")
        with pytest.raises(WriteFailureError):
            write_json_atomic(path, [{"bad": object()}])
        assert path.read_text(encoding="utf-8") == "[]\n"
        assert [p.name for p in tmp_path.iterdir()] == ["products.json"]

    def test_non_finite_number_leaves_original(self, tmp_path):
        path = tmp_path / "products.json"
        path.write_text("[]\n", encoding="utf-8")
        with pytest.raises(WriteFailureError):
            write_json_atomic(path, [{"id": "a", "price": float("nan")}])
        assert path.read_text(encoding="utf-8") == "[]\n"
        assert [p.name for p in tmp_path.iterdir()] == ["products.json"]

    def test_file_mode_preserved(self, write_json, sample_catalog):
        path = write_json("products.json", sample_catalog)
        os.chmod(path, 0o644)

        write_catalog(Catalog(products=[Product(id="a", title="A")]), path, now=FIXED_NOW)

        assert stat.S_IMODE(path.stat().st_mode) == 0o644

    def test_new_file_gets_umask_mode(self, tmp_path):
        path = tmp_path / "products.json"
        umask = os.umask(0o022)
        try:
            write_catalog(Catalog(products=[Product(id="a", title="A")]), path)
        finally:
            os.umask(umask)
        assert stat.S_IMODE(path.stat().st_mode) == 0o644
