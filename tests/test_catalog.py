import pytest

from catalog import ONE_SIZE, build_product, merge_images
from errors import NotFoundError, ValidationError


class TestBuildProduct:
    def test_requires_name_category_and_price(self):
        with pytest.raises(ValidationError) as exc:
            build_product({"name": "Tee"})
        assert "category" in exc.value.message
        assert "price" in exc.value.message

    def test_parses_json_encoded_form_fields(self):
        body = build_product(
            {
                "name": "Tee",
                "category": "T-Shirts",
                "price": "799",
                "sizes": '{"S": 3, "M": "4"}',
                "colors": '[{"id": "abc", "name": "Red"}]',
                "collections": '["best-collection"]',
            }
        )
        assert body["price"] == 799
        assert body["sizes"] == {"S": 3, "M": 4}
        assert body["stock"] == 7
        assert body["colors"][0]["id"] == "abc"
        assert body["colors"][0]["hex"] == "#000000"
        assert body["collections"] == ["best-collection"]

    def test_legacy_stock_collapses_into_one_size(self):
        body = build_product({"name": "Bag", "category": "Bags", "price": "100", "stock": "12"})
        assert body["sizes"] == {ONE_SIZE: 12}
        assert body["stock"] == 12

    def test_unparseable_sizes_fall_back_to_stock(self):
        body = build_product({"name": "Bag", "category": "Bags", "price": "100", "stock": "2", "sizes": "{oops"})
        assert body["sizes"] == {ONE_SIZE: 2}

    def test_collections_accept_comma_separated_tags(self):
        body = build_product({"name": "Tee", "category": "T", "price": 1, "collections": "summer, best-collection"})
        assert body["collections"] == ["summer", "best-collection"]

    def test_provided_images_come_before_uploads(self):
        body = build_product(
            {"name": "Tee", "category": "T", "price": 1, "existingImages": ["a.jpg", "b.jpg"]},
            uploaded=["images/uploads/c.jpg", "a.jpg"],
        )
        assert body["images"] == ["a.jpg", "b.jpg", "images/uploads/c.jpg"]
        assert body["image"] == "a.jpg"

    def test_merge_images_drops_duplicates_and_blanks(self):
        assert merge_images(["x", "", "y"], ["y", "z"]) == ["x", "y", "z"]

    def test_fractional_price_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            build_product({"name": "Tee", "category": "T", "price": "12.99"})
        assert exc.value.message == "Price must be a whole number"

    def test_fractional_quantities_are_rejected(self):
        with pytest.raises(ValidationError):
            build_product({"name": "Bag", "category": "Bags", "price": "100", "stock": "2.7"})
        with pytest.raises(ValidationError):
            build_product({"name": "Tee", "category": "T", "price": "100", "sizes": '{"M": 1.5}'})

    def test_whole_number_strings_are_accepted(self):
        body = build_product({"name": "Tee", "category": "T", "price": "1299.0", "stock": "3"})
        assert body["price"] == 1299
        assert body["stock"] == 3


class TestProducts:
    def test_list_filters_by_category_and_collection(self, catalog, make_product):
        make_product("Tee", category="T-Shirts", collections=["best-collection"])
        make_product("Jeans", category="Jeans")

        assert [p["name"] for p in catalog.list_products(category="Jeans")] == ["Jeans"]
        assert [p["name"] for p in catalog.list_products(collection="best-collection")] == ["Tee"]
        assert len(catalog.list_products()) == 2

    def test_listed_products_have_string_ids(self, catalog, make_product):
        product_id = make_product()
        listed = catalog.list_products()[0]
        assert listed["id"] == product_id
        assert "_id" not in listed

    def test_update_replaces_sizes_images_and_colors(self, catalog, make_product):
        product_id = make_product(colors=[{"id": "other", "name": "Other"}])
        catalog.update_product(product_id, {"name": "Tee v2", "category": "T-Shirts", "price": 900, "sizes": {"L": 1}})

        product = catalog.get_product(product_id)
        assert product["name"] == "Tee v2"
        assert product["sizes"] == {"L": 1}
        assert product["images"] == []
        assert product["colors"] == []

    def test_update_missing_product(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.update_product("0" * 24, {"name": "x", "category": "y", "price": 1})

    def test_delete_product(self, catalog, make_product):
        product_id = make_product()
        catalog.delete_product(product_id)
        with pytest.raises(NotFoundError):
            catalog.get_product(product_id)
        with pytest.raises(NotFoundError):
            catalog.delete_product(product_id)

    def test_invalid_id_is_a_validation_error(self, catalog):
        with pytest.raises(ValidationError):
            catalog.get_product("not-an-id")


class TestAddStock:
    def test_size_entries_increment_sizes_and_aggregate(self, catalog, make_product):
        product_id = make_product(sizes={"S": 5, "M": 5})
        result = catalog.add_stock(product_id, {"S": 3, "XL": "2", "M": 0, "L": -4})

        assert result["sizes"] == {"S": 8, "M": 5, "XL": 2}
        assert result["totalStock"] == 15
        assert result["totalAdded"] == 5

    def test_one_size_only_bumps_aggregate(self, catalog, make_product):
        product_id = make_product(sizes={ONE_SIZE: 4})
        result = catalog.add_stock(product_id, {ONE_SIZE: 6})

        assert result["totalStock"] == 10
        assert result["sizes"] == {ONE_SIZE: 4}

    def test_nothing_to_add(self, catalog, make_product):
        product_id = make_product()
        with pytest.raises(ValidationError):
            catalog.add_stock(product_id, {"S": 0})
        with pytest.raises(ValidationError):
            catalog.add_stock(product_id, None)

    def test_unknown_product(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.add_stock("0" * 24, {"S": 1})

    def test_fractional_quantity_is_rejected(self, catalog, make_product):
        product_id = make_product(sizes={"S": 5})
        with pytest.raises(ValidationError):
            catalog.add_stock(product_id, {"S": "1.5"})
        assert catalog.get_product(product_id)["sizes"] == {"S": 5}

    def test_one_size_top_up_leaves_the_size_entry_as_created(self, catalog, make_product):
        product_id = make_product(sizes={}, stock=2)
        assert catalog.get_product(product_id)["sizes"] == {ONE_SIZE: 2}

        catalog.add_stock(product_id, {ONE_SIZE: 5})

        product = catalog.get_product(product_id)
        assert product["stock"] == 7
        assert product["sizes"] == {ONE_SIZE: 2}


class TestCategories:
    def test_default_categories_are_created(self, catalog):
        names = [c["name"] for c in catalog.list_categories()]
        assert names == sorted(names)
        assert "Jeans" in names

    def test_names_are_unique_ignoring_case(self, catalog):
        catalog.add_category("Hoodies", "Warm")
        with pytest.raises(ValidationError):
            catalog.add_category("hoodies")

    def test_regex_characters_in_names_are_literal(self, catalog):
        catalog.add_category("Tops (New)")
        catalog.add_category("Tops")
        assert {"Tops (New)", "Tops"} <= {c["name"] for c in catalog.list_categories()}

    def test_blank_name(self, catalog):
        with pytest.raises(ValidationError):
            catalog.add_category("  ")


class TestSeed:
    def test_seed_only_when_empty(self, catalog, make_product):
        make_product()
        assert catalog.seed_products() == 0
        inserted = catalog.seed_products(force=True)
        assert inserted == len(catalog.list_products())
