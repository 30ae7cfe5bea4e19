"""Tests for the batch passes over a catalog."""

import pytest

from reconcile.covers import CoverIndex
from reconcile.identity import hashed_url_id
from reconcile.models import Catalog, LinkRef, Product, ReconcileStats
from reconcile.sources import build_link_index
from reconcile.workflows import (
    apply_links,
    find_link,
    fix_covers,
    reconcile_records,
    set_prices,
    strip_zip_pass,
)


@pytest.fixture
def catalog(sample_catalog):
    return Catalog(products=[Product.from_dict(item) for item in sample_catalog])


class TestReconcileRecords:
    def test_duplicate_titles_collapse_into_first(self):
        """Two spellings of one title in a source give one record keyed by the first."""
        catalog = Catalog()
        records = [
            {"title": "Growth Hacks", "url": "https://shop.test/p/abc-111"},
            {"title": "growth hacks", "url": "https://shop.test/p/abc-222"},
        ]

        stats = reconcile_records(catalog, records)

        assert len(catalog) == 1
        assert catalog.products[0].id == hashed_url_id("https://shop.test/p/abc-111")
        assert catalog.products[0].title == "Growth Hacks"
        assert stats.added == 1
        assert stats.unchanged == 1

    def test_merge_add_and_skip(self, catalog, sample_source):
        stats = reconcile_records(catalog, sample_source)

        assert stats.to_dict() == {
            "total": 3,
            "added": 1,
            "updated": 1,
            "unchanged": 0,
            "skipped": 1,
        }
        assert [p.id for p in catalog.products] == [
            "entrepedia__growth-hacks",
            "email-marketing-playbook",
            "social-calendar",
        ]

    def test_existing_record_filled_not_overwritten(self, catalog, sample_source):
        reconcile_records(catalog, sample_source)
        playbook = catalog.products[1]
        assert playbook.description == "Build campaigns that convert.\n\nIncludes templates."
        assert playbook.category == "Marketing"
        assert playbook.format == "guide"
        assert playbook.source == "manual"
        assert playbook.extra["sourceUrl"].endswith("6f1c2a9e-3b4d-4e5f-8a7b-1c2d3e4f5a6b")

    def test_new_record_defaults(self, catalog, sample_source):
        reconcile_records(catalog, sample_source, default_price=7)
        added = catalog.products[2]
        assert added.title == "Social Media Calendar Template"
        assert added.price == 12
        assert added.category == "Social"
        assert added.format == "other"
        assert added.source == "entrepedia"

    def test_rerun_is_idempotent(self, catalog, sample_source):
        reconcile_records(catalog, sample_source)
        snapshot = [p.to_dict() for p in catalog.products]

        stats = reconcile_records(catalog, sample_source)

        assert stats.added == 0
        assert stats.updated == 0
        assert stats.unchanged == 2
        assert [p.to_dict() for p in catalog.products] == snapshot

    def test_match_by_id_before_title(self, catalog):
        records = [{"id": "email-marketing-playbook", "title": "Renamed Playbook", "price": 19}]
        stats = reconcile_records(catalog, records)
        assert stats.updated == 1
        assert len(catalog) == 2
        assert catalog.products[1].title == "Email Marketing Playbook"
        assert catalog.products[1].price == 19

    def test_colliding_new_id_gets_suffix(self):
        catalog = Catalog(products=[Product(id="budget-planner", title="Household Ledger")])
        reconcile_records(catalog, [{"title": "Budget Planner"}])
        assert [p.id for p in catalog.products] == ["budget-planner", "budget-planner-2"]

    def test_links_attached_by_title(self, catalog, sample_source):
        links = [
            LinkRef(
                title="Social Media Calendar Template - Ebook",
                url="https://payhip.com/b/Soc1",
                link_id="Soc1",
            ),
            LinkRef(title="Growth Hacks", url="https://payhip.com/b/Other", link_id="Other"),
        ]
        reconcile_records(catalog, sample_source, links=links)
        assert catalog.products[2].external_link_url == "https://payhip.com/b/Soc1"
        assert catalog.products[0].external_link_id == "AbC12"

    def test_cover_resolved_from_index(self, catalog, sample_source, covers_dir):
        reconcile_records(catalog, sample_source, cover_index=CoverIndex.from_directory(covers_dir))
        assert catalog.products[1].cover == "/covers/Email-Marketing-Playbook.PNG"

    def test_stats_accumulate_across_sources(self, catalog, sample_source):
        stats = ReconcileStats()
        reconcile_records(catalog, sample_source[:1], stats=stats)
        reconcile_records(catalog, sample_source[1:], stats=stats)
        assert stats.total == 3
        assert stats.added == 1

    def test_non_object_records_are_skipped(self):
        catalog = Catalog()
        stats = reconcile_records(catalog, ["Growth Hacks", None, {"title": "Growth Hacks"}])
        assert stats.skipped == 2
        assert len(catalog) == 1


class TestFindLink:
    def test_variant_and_fuzzy_lookup(self):
        index = build_link_index(
            [
                LinkRef(title="Growth Hacks", url="u1"),
                LinkRef(title="Email Marketing Playbook Deluxe", url="u2"),
            ]
        )
        assert find_link("Growth Hacks: 50 Ideas", index).url == "u1"
        assert find_link("Email Marketing Playbook", index).url == "u2"
        assert find_link("Budget Planner", index) is None


class TestApplyLinks:
    LINKS = [
        LinkRef(title="Growth Hacks", url="https://payhip.com/b/New99", link_id="New99"),
        LinkRef(
            title="Email Marketing Playbook (Ebook)",
            url="https://payhip.com/b/Em1",
            link_id="Em1",
        ),
    ]

    def test_fill_only(self, catalog):
        stats = apply_links(catalog, self.LINKS)
        assert catalog.products[0].external_link_url == "https://payhip.com/b/AbC12"
        assert catalog.products[1].external_link_url == "https://payhip.com/b/Em1"
        assert catalog.products[1].external_link_id == "Em1"
        assert stats.already_linked == 1
        assert stats.updated == 1
        assert stats.with_valid_url == 2

    def test_overwrite_replaces_changed_links(self, catalog):
        stats = apply_links(catalog, self.LINKS, overwrite=True)
        assert catalog.products[0].external_link_url == "https://payhip.com/b/New99"
        assert catalog.products[0].external_link_id == "New99"
        assert stats.updated == 2

    def test_unmatched_counted(self, catalog):
        catalog.products.append(Product(id="bp", title="Budget Planner"))
        stats = apply_links(catalog, self.LINKS)
        assert stats.unmatched == 1
        assert stats.products == 3

    def test_second_run_changes_nothing(self, catalog):
        apply_links(catalog, self.LINKS)
        assert apply_links(catalog, self.LINKS).updated == 0


class TestFixCovers:
    def test_fix_and_report_missing(self, catalog, covers_dir):
        catalog.products.append(Product(id="bp", title="Budget  Planner", cover="/covers/bp.jpg"))
        stats = fix_covers(catalog, CoverIndex.from_directory(covers_dir))

        assert stats.checked == 3
        assert stats.fixed == 1
        assert catalog.products[0].cover == "/covers/growth-hacks.jpg"
        assert catalog.products[1].cover == "/covers/Email-Marketing-Playbook.PNG"
        assert stats.missing == [("bp", "Budget Planner", "/covers/bp.jpg")]

    def test_format_filter(self, catalog, covers_dir):
        stats = fix_covers(catalog, CoverIndex.from_directory(covers_dir), formats=["book"])
        assert stats.checked == 1
        assert stats.fixed == 0
        assert catalog.products[1].cover == ""


class TestBulkEdits:
    def test_strip_zip_pass(self, catalog):
        catalog.products[0].description = "Intro\n\nZIP\n\nBody"
        catalog.products[1].description = "Download the ZIP file"
        assert strip_zip_pass(catalog) == (1, 1)
        assert catalog.products[0].description == "Intro\n\nBody"
        assert catalog.products[1].description == "Download the ZIP file"

    def test_strip_zip_adjacent_blocks(self, catalog):
        catalog.products[0].description = "Intro\n\nZIP\n\nZIP\n\nBody"
        touched, _ = strip_zip_pass(catalog)
        assert touched == 1
        assert catalog.products[0].description == "Intro\n\nBody"

    def test_set_prices_leaves_links(self, catalog):
        assert set_prices(catalog, 10) == 1
        assert [p.price for p in catalog.products] == [10, 10]
        assert catalog.products[0].external_link_url == "https://payhip.com/b/AbC12"
