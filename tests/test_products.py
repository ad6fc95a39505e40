import os

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def product_form(category_id, **extra):
    form = {
        "name": "Trail Shoe",
        "description": "Light trail runner",
        "richDescription": "Light trail runner with a grippy sole",
        "brand": "Acme",
        "price": "89.90",
        "category": str(category_id),
        "countInStock": "5",
        "rating": "4",
        "numReviews": "12",
        "isFeatured": "true",
    }
    form.update(extra)
    return form


def test_create_product_with_image(client, category, settings):
    r = client.post(
        "/products",
        data=product_form(category.id),
        files={"image": ("trail shoe.png", PNG, "image/png")},
    )
    assert r.status_code == 201
    product = r.json()["data"]
    assert product["name"] == "Trail Shoe"
    assert product["richDescription"].endswith("grippy sole")
    assert product["countInStock"] == 5
    assert product["isFeatured"] is True
    assert product["category"] == category.id
    assert product["image"].startswith("http://testserver/public/uploads/trail-shoe.png-")
    assert product["image"].endswith(".png")

    stored = os.listdir(settings.upload_dir)
    assert len(stored) == 1
    assert product["image"].endswith(stored[0])

    r = client.get(f"/products/{product['id']}")
    assert r.json()["data"]["category"]["name"] == "Gadgets"


def test_create_product_with_unknown_category(client, settings):
    r = client.post(
        "/products",
        data=product_form(999),
        files={"image": ("shoe.png", PNG, "image/png")},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "ValidationError"
    assert client.get("/products/get/count").json()["data"] == {"productCount": 0}
    assert not os.path.exists(settings.upload_dir) or os.listdir(settings.upload_dir) == []


def test_create_product_without_image(client, category):
    r = client.post("/products", data=product_form(category.id))
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "No image in the request", "error": "InputError"}


def test_create_product_rejects_other_file_types(client, category):
    r = client.post(
        "/products",
        data=product_form(category.id),
        files={"image": ("notes.gif", b"GIF89a", "image/gif")},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "InputError"


def test_create_product_rejects_negative_price(client, category):
    r = client.post(
        "/products",
        data=product_form(category.id, price="-1"),
        files={"image": ("shoe.png", PNG, "image/png")},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "ValidationError"


def test_update_product_keeps_image_when_none_uploaded(client, category, make_product):
    product = make_product("Widget", "10.00")
    original_image = product.image

    r = client.put(f"/products/{product.id}", data=product_form(category.id, name="Widget v2", price="12.50"))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["name"] == "Widget v2"
    assert data["price"] == 12.5
    assert data["image"] == original_image

    r = client.put(
        f"/products/{product.id}",
        data=product_form(category.id),
        files={"image": ("new.jpg", b"\xff\xd8\xff", "image/jpeg")},
    )
    assert r.status_code == 200
    assert r.json()["data"]["image"].endswith(".jpeg")


def test_update_product_validates_category(client, make_product):
    product = make_product()
    r = client.put(f"/products/{product.id}", data=product_form(4040))
    assert r.status_code == 400


def test_update_missing_product(client, category):
    r = client.put("/products/999", data=product_form(category.id))
    assert r.status_code == 404


def test_gallery_images_replace_collection(client, make_product):
    product = make_product()
    files = [
        ("images", ("a.png", PNG, "image/png")),
        ("images", ("b.jpg", b"\xff\xd8\xff", "image/jpg")),
    ]
    r = client.put(f"/products/gallery-images/{product.id}", files=files)
    assert r.status_code == 200
    images = r.json()["data"]["images"]
    assert len(images) == 2
    assert images[1].endswith(".jpg")

    r = client.put(f"/products/gallery-images/{product.id}", files=[("images", ("c.png", PNG, "image/png"))])
    assert len(r.json()["data"]["images"]) == 1


def test_gallery_images_for_missing_product(client):
    r = client.put("/products/gallery-images/31337", files=[("images", ("a.png", PNG, "image/png"))])
    assert r.status_code == 404


def test_list_products_filters_by_category(client, db_session, make_product):
    from storefront import crud, schemas

    make_product("Widget")
    other = crud.create_category(db_session, schemas.CategoryCreate(name="Books"))
    fields = schemas.ProductFields(name="Novel", category=other.id)
    crud.create_product(db_session, fields, image_url="http://testserver/public/uploads/novel.png")

    assert len(client.get("/products").json()["data"]) == 2
    r = client.get("/products", params={"categories": str(other.id)})
    names = [p["name"] for p in r.json()["data"]]
    assert names == ["Novel"]
    assert r.json()["data"][0]["category"]["name"] == "Books"

    assert client.get("/products", params={"categories": "x,y"}).status_code == 400


def test_featured_products(client, make_product):
    make_product("One", is_featured=True)
    make_product("Two", is_featured=True)
    make_product("Three")

    assert [p["name"] for p in client.get("/products/get/featured/1").json()["data"]] == ["One"]
    assert len(client.get("/products/get/featured/0").json()["data"]) == 2


def test_delete_product(client, make_product):
    product = make_product()
    r = client.delete(f"/products/{product.id}")
    assert r.status_code == 200
    assert r.json()["message"] == "The product is deleted!"
    assert client.get(f"/products/{product.id}").status_code == 404
    assert client.delete(f"/products/{product.id}").status_code == 404


def test_create_product_with_traversal_filename(client, category, settings, tmp_path):
    r = client.post(
        "/products",
        data=product_form(category.id),
        files={"image": ("../../escaped.png", PNG, "image/png")},
    )
    assert r.status_code == 201
    assert "/public/uploads/escaped.png-" in r.json()["data"]["image"]
    assert len(os.listdir(settings.upload_dir)) == 1
    assert not any(name.startswith("escaped") for name in os.listdir(tmp_path))


def test_failed_create_removes_stored_image(client, category, settings, monkeypatch):
    from storefront import crud, errors

    def failing_create(db, fields, image_url):
        raise errors.CreationError("the product cannot be created")

    monkeypatch.setattr(crud, "create_product", failing_create)
    r = client.post(
        "/products",
        data=product_form(category.id),
        files={"image": ("shoe.png", PNG, "image/png")},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "CreationError"
    assert not os.path.isdir(settings.upload_dir) or os.listdir(settings.upload_dir) == []


def test_failed_gallery_update_removes_stored_images(client, make_product, settings, monkeypatch):
    from storefront import crud, errors

    product = make_product()

    def failing_gallery(db, product_id, image_urls):
        raise errors.PersistError("the gallery cannot be saved")

    monkeypatch.setattr(crud, "set_gallery_images", failing_gallery)
    files = [("images", ("a.png", PNG, "image/png")), ("images", ("b.png", PNG, "image/png"))]
    r = client.put(f"/products/gallery-images/{product.id}", files=files)
    assert r.status_code == 500
    assert not os.path.isdir(settings.upload_dir) or os.listdir(settings.upload_dir) == []


def test_money_fields_are_json_numbers(client, make_product):
    product = make_product("Widget", "10.00")
    data = client.get(f"/products/{product.id}").json()["data"]
    assert data["price"] == 10.0
    assert isinstance(data["price"], float)
    assert isinstance(data["rating"], (int, float))
