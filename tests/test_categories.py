"""Tests for cadence/categories.py: the read-only category index."""

import pytest

from cadence.categories import CategoryIndex, default_categories
from cadence.models import Category, Subcategory


def test_default_tree_has_default_subcategory():
    index = CategoryIndex(default_categories())
    assert index.is_subcategory("sub-default")
    assert index.parent("sub-default").id == "cat-default"
    assert index.subcategory("sub-reading").name == "Reading"


def test_parent_ids_are_not_subcategories():
    index = CategoryIndex(default_categories())
    assert not index.is_subcategory("cat-default")
    assert index.parent("cat-default") is None
    assert index.color_for("unknown") == ""


def test_default_categories_returns_fresh_copies():
    a = default_categories()
    a[0].subcategories.clear()
    assert default_categories()[0].subcategories


def test_index_is_read_only():
    index = CategoryIndex([Category(id="c", name="C", subcategories=[Subcategory(id="s", name="S", parent_id="c")])])
    assert len(index) == 1
    with pytest.raises(TypeError):
        index._subcategories["t"] = None
