import base64

from conftest import bearer, login, make_image, register


def image_payload(name, folder_id=None, data_uri=False):
    encoded = base64.b64encode(make_image("JPEG")).decode("ascii")
    if data_uri:
        encoded = f"data:image/jpeg;base64,{encoded}"
    return {"name": name, "image_base64": encoded, "folder_id": folder_id}


def new_folder(client, headers, name):
    response = client.post("/api/folders", headers=headers, json={"name": name})
    assert response.status_code == 201, response.text
    return response.json()["folder"]


def save_image(client, headers, name, folder_id=None, **kwargs):
    response = client.post("/api/images", headers=headers, json=image_payload(name, folder_id, **kwargs))
    assert response.status_code == 201, response.text
    return response.json()["image"]


def test_gallery_requires_authentication(client):
    assert client.get("/api/folders").status_code == 401
    assert client.get("/api/images").status_code == 401


def test_folders_are_listed_by_name_with_counts(client, seller_headers):
    salotto = new_folder(client, seller_headers, "Salotto")
    new_folder(client, seller_headers, "Camera")
    save_image(client, seller_headers, "Divano blu", salotto["id"])

    folders = client.get("/api/folders", headers=seller_headers).json()["folders"]

    assert [(f["name"], f["image_count"]) for f in folders] == [("Camera", 0), ("Salotto", 1)]
    assert folders[1]["created_by"] == "venditore@polaris.it"


def test_rename_folder(client, seller_headers):
    folder = new_folder(client, seller_headers, "Bozze")

    response = client.put(f"/api/folders/{folder['id']}", headers=seller_headers, json={"name": "Clienti 2026"})

    assert response.status_code == 200
    assert response.json()["folder"]["name"] == "Clienti 2026"


def test_blank_folder_name_is_rejected(client, seller_headers):
    response = client.post("/api/folders", headers=seller_headers, json={"name": "   "})
    assert response.status_code == 400


def test_image_listing_keeps_unfiltered_total(client, seller_headers):
    folder = new_folder(client, seller_headers, "Salotto")
    save_image(client, seller_headers, "Uno", folder["id"])
    save_image(client, seller_headers, "Due", folder["id"], data_uri=True)
    save_image(client, seller_headers, "Senza cartella")

    scoped = client.get("/api/images", headers=seller_headers, params={"folder_id": folder["id"]}).json()
    everything = client.get("/api/images", headers=seller_headers, params={"folder_id": "all"}).json()

    assert sorted(i["name"] for i in scoped["images"]) == ["Due", "Uno"]
    assert scoped["total"] == 3
    assert len(everything["images"]) == 3
    assert everything["total"] == 3


def test_saved_image_is_served_from_media(client, seller_headers):
    image = save_image(client, seller_headers, "Divano")

    response = client.get(image["image_url"])

    assert response.status_code == 200
    assert response.content[:2] == b"\xff\xd8"


def test_save_image_rejects_bad_payloads(client, seller_headers):
    bad = client.post("/api/images", headers=seller_headers, json={"name": "x", "image_base64": "%%%"})
    assert bad.status_code == 400

    missing_folder = client.post("/api/images", headers=seller_headers,
                                 json=image_payload("x", "7c9e6679-7425-40de-944b-e07fc1f90ae7"))
    assert missing_folder.status_code == 404


def test_delete_folder_cascades_to_its_images(client, seller_headers):
    folder = new_folder(client, seller_headers, "Salotto")
    first = save_image(client, seller_headers, "Uno", folder["id"])
    save_image(client, seller_headers, "Due", folder["id"])
    save_image(client, seller_headers, "Resta")

    response = client.delete(f"/api/folders/{folder['id']}", headers=seller_headers)

    assert response.json() == {"success": True, "deleted_images": 2}
    listing = client.get("/api/images", headers=seller_headers).json()
    assert [i["name"] for i in listing["images"]] == ["Resta"]
    assert listing["total"] == 1
    assert client.get(first["image_url"]).status_code == 404


def test_delete_image(client, seller_headers):
    image = save_image(client, seller_headers, "Divano")

    assert client.delete(f"/api/images/{image['id']}", headers=seller_headers).status_code == 200
    assert client.delete(f"/api/images/{image['id']}", headers=seller_headers).status_code == 404
    assert client.get("/api/images", headers=seller_headers).json()["total"] == 0


def test_other_sellers_cannot_change_a_folder_or_image(client, seller_headers):
    folder = new_folder(client, seller_headers, "Salotto")
    image = save_image(client, seller_headers, "Divano", folder["id"])
    register(client, "collega@polaris.it")
    other = bearer(login(client, "collega@polaris.it"))

    renamed = client.put(f"/api/folders/{folder['id']}", headers=other, json={"name": "Mia"})
    deleted_image = client.delete(f"/api/images/{image['id']}", headers=other)
    deleted_folder = client.delete(f"/api/folders/{folder['id']}", headers=other)

    assert renamed.status_code == 403
    assert renamed.json()["success"] is False
    assert deleted_image.status_code == 403
    assert deleted_folder.status_code == 403
    folders = client.get("/api/folders", headers=other).json()["folders"]
    assert [(f["name"], f["image_count"]) for f in folders] == [("Salotto", 1)]


def test_admin_can_change_any_folder_or_image(client, seller_headers, admin_headers):
    folder = new_folder(client, seller_headers, "Salotto")
    image = save_image(client, seller_headers, "Divano")

    assert client.put(f"/api/folders/{folder['id']}", headers=admin_headers, json={"name": "Archivio"}).status_code == 200
    assert client.delete(f"/api/images/{image['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/folders/{folder['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/folders", headers=seller_headers).json()["folders"] == []
