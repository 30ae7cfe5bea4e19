"""Shared fixtures for the reconcile test suite."""

import json
import logging
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def quiet_reconcile_logger():
    """Keep the package logger free of handlers left over from CLI tests."""
    logger = logging.getLogger("reconcile")
    logger.handlers.clear()
    yield
    logger.handlers.clear()


@pytest.fixture
def write_json(tmp_path):
    """Write ``data`` as JSON under tmp_path and return the path."""

    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_catalog():
    """Catalog entries as the site stores them (legacy payhip keys included)."""
    return [
        {
            "id": "entrepedia__growth-hacks",
            "title": "Growth Hacks - Ebook",
            "description": "Practical growth tactics.",
            "mainCategory": "Marketing",
            "format": "book",
            "price": 10,
            "cover": "/covers/growth-hacks.jpg",
            "payhipId": "AbC12",
            "payhipUrl": "https://payhip.com/b/AbC12",
            "source": "entrepedia",
        },
        {
            "id": "email-marketing-playbook",
            "title": "Email Marketing Playbook",
            "description": "",
            "category": "",
            "format": "",
            "price": None,
            "cover": "",
            "source": "manual",
        },
    ]


@pytest.fixture
def sample_source():
    """Scraped records with the field-name drift seen from producers."""
    return [
        {
            "name": "Email Marketing Playbook",
            "link": "https://app.entrepedia.co/library/product/6f1c2a9e-3b4d-4e5f-8a7b-1c2d3e4f5a6b",
            "description": "Build campaigns that convert.\n\nZIP\n\nIncludes templates.",
            "mainCategory": "Marketing",
            "contentType": "Guide",
        },
        {
            "title": "Social Media Calendar Template",
            "productUrl": "https://app.entrepedia.co/library/product/social-calendar",
            "category": "Social",
            "price": "12",
        },
        {"title": "   ", "url": "https://app.entrepedia.co/library/product/blank"},
    ]


@pytest.fixture
def covers_dir(tmp_path) -> Path:
    directory = tmp_path / "covers"
    directory.mkdir()
    for name in ("growth-hacks.jpg", "Email-Marketing-Playbook.PNG", "notes.txt"):
        (directory / name).write_bytes(b"x")
    return directory
