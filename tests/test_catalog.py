"""Tests for the product catalogue."""

from __future__ import annotations

from decimal import Decimal

import pytest

from serafina_erp import catalog, core_logic


def _command(**overrides):
    values = {"name": "6L Bottle", "size": "6L", "price": "60"}
    values.update(overrides)
    return catalog.ProductCommand(**values)


def test_create_product_stores_normalised_fields(context):
    product = catalog.create_product(context, _command(name="  6L Bottle ", description=" small "))

    assert product.product_id.startswith("PRD")
    assert product.name == "6L Bottle"
    assert product.description == "small"
    assert product.price == Decimal("60.00")
    assert product.is_returnable is True
    assert catalog.get_product(context, product.product_id) == product


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"name": " "}, "Product name is required"),
        ({"size": ""}, "Bottle size is required"),
        ({"price": "-1"}, "Product price must be a non-negative number"),
        ({"price": "abc"}, "Product price must be a number"),
    ],
)
def test_create_product_validation(context, overrides, message):
    with pytest.raises(core_logic.ValidationError, match=message):
        catalog.create_product(context, _command(**overrides))


def test_create_product_allows_free_products(context):
    """A zero price is a valid catalogue entry."""

    assert catalog.create_product(context, _command(price="0")).price == Decimal("0.00")


def test_duplicate_active_size_is_rejected_case_insensitively(context, product_19l):
    with pytest.raises(core_logic.ConflictError, match="Product with size 19l already exists"):
        catalog.create_product(context, _command(name="Other", size="19l"))


def test_inactive_products_do_not_block_sizes(context, product_19l):
    catalog.soft_delete_product(context, product_19l.product_id)
    replacement = catalog.create_product(context, _command(name="New 19L", size="19L"))

    assert replacement.is_active


def test_update_product_excludes_itself_from_duplicate_check(context, product_19l):
    updated = catalog.update_product(
        context,
        product_19l.product_id,
        _command(name="19L Premium", size="19L", price="120"),
    )

    assert updated.product_id == product_19l.product_id
    assert updated.price == Decimal("120.00")
    assert updated.created_at == product_19l.created_at


def test_update_product_rejects_taking_another_size(context, product_19l, product_500ml):
    with pytest.raises(core_logic.ConflictError):
        catalog.update_product(context, product_500ml.product_id, _command(size="19L"))


def test_update_unknown_product(context):
    with pytest.raises(core_logic.MissingReferenceError, match="Product not found"):
        catalog.update_product(context, "PRD-none", _command())


def test_soft_delete_hides_product_from_default_listing(context, product_19l, product_500ml):
    catalog.soft_delete_product(context, product_500ml.product_id)

    assert catalog.list_products(context) == [product_19l]
    assert catalog.list_active_products(context) == [product_19l]
    assert len(catalog.list_products(context, include_inactive=True)) == 2
    assert catalog.get_product(context, product_500ml.product_id).is_active is False
