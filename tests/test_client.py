import httpx
import pytest

from conftest import ADMIN_EMAIL, PASSWORD, SELLER_EMAIL, make_image, register, text_response
from fabricai.client import Application, GenerationTimeout, QuotaExceeded, StoreError
from fabricai.client.api import ApiClient
from fabricai.client.generation import SIGN_IN_MESSAGE, TIMEOUT_MESSAGE
from fabricai.client.state import (
    ALL_FOLDERS,
    FABRIC_SELECTED,
    NO_FABRIC_SELECTED,
    OUTPUT_ISOLATED,
)


class Confirm:
    def __init__(self, answer=True):
        self.answer = answer
        self.questions = []

    def __call__(self, question):
        self.questions.append(question)
        return self.answer


@pytest.fixture
def confirm():
    return Confirm()


@pytest.fixture
def admin_app(client, confirm):
    register(client, ADMIN_EMAIL)
    application = Application(http=client, confirm=confirm)
    application.dispatcher.dispatch("session.sign_in", ADMIN_EMAIL, PASSWORD)
    return application


@pytest.fixture
def seller_app(client, confirm):
    register(client, SELLER_EMAIL)
    application = Application(http=client, confirm=confirm)
    application.sign_in(SELLER_EMAIL, PASSWORD)
    return application


def refuse_connections(monkeypatch, http, *methods):
    """Makes `http` fail at the transport for `methods`, or for every call when none are given."""
    send = http.request

    def request(method, url, **kwargs):
        if not methods or method in methods:
            raise httpx.ConnectError("connection refused")
        return send(method, url, **kwargs)

    monkeypatch.setattr(http, "request", request)


# --- session ---------------------------------------------------------------

def test_api_client_surfaces_server_errors(client):
    api = ApiClient(client)

    with pytest.raises(StoreError) as exc:
        api.sign_in("nobody@polaris.it", PASSWORD)

    assert exc.value.status_code == 401
    assert exc.value.message == "Invalid email or password"
    assert not api.signed_in


def test_admin_tools_are_a_display_filter(admin_app, seller_app):
    assert admin_app.show_admin_tools
    assert not seller_app.show_admin_tools

    seller_app.sign_out()
    assert not seller_app.api.signed_in
    assert not seller_app.show_admin_tools


def test_every_ui_command_is_registered(admin_app):
    commands = admin_app.dispatcher.commands
    for name in ("catalog.select_fabric", "catalog.toggle_active", "gallery.delete_folder",
                 "generation.run", "generation.save", "session.sign_in"):
        assert name in commands


# --- catalog -----------------------------------------------------------------

def test_catalog_selection_flow(admin_app):
    catalog = admin_app.catalog
    state = admin_app.state.catalog
    assert state.phase == NO_FABRIC_SELECTED

    assert catalog.create_fabric("Velvet", description="Soft", image=make_image(), content_type="image/png")
    assert catalog.create_fabric("Linen")
    velvet = next(f for f in state.fabrics if f["name"] == "Velvet")
    linen = next(f for f in state.fabrics if f["name"] == "Linen")

    assert admin_app.dispatcher.dispatch("catalog.select_fabric", velvet["id"])
    assert state.phase == FABRIC_SELECTED
    assert catalog.create_color(velvet["id"], "Blu Navy", "#1F2A44", make_image(), "image/png")
    assert [c["name"] for c in state.colors] == ["Blu Navy"]

    catalog.select_fabric(linen["id"])
    assert state.selected_fabric_id == linen["id"]
    assert state.colors == []


def test_color_without_image_is_refused_before_any_call(admin_app):
    catalog = admin_app.catalog
    catalog.create_fabric("Velvet")
    fabric_id = admin_app.state.catalog.fabrics[0]["id"]
    catalog.select_fabric(fabric_id)

    assert not catalog.create_color(fabric_id, "Blu Navy", "#1F2A44", None)

    assert admin_app.state.catalog.error == "A preview image is required for a color."
    assert catalog.list_colors(fabric_id) == []


def test_update_fabric_keeps_preview(admin_app):
    catalog = admin_app.catalog
    catalog.create_fabric("Velvet", image=make_image(), content_type="image/png")
    fabric = admin_app.state.catalog.fabrics[0]

    assert catalog.update_fabric(fabric["id"], description="Updated", is_active=False)

    updated = admin_app.state.catalog.fabrics[0]
    assert updated["description"] == "Updated"
    assert updated["is_active"] is False
    assert catalog.is_dimmed(updated)
    assert updated["preview_image_url"] == fabric["preview_image_url"]


def test_toggle_is_optimistic(admin_app):
    catalog = admin_app.catalog
    catalog.create_fabric("Jacquard")
    fabric_id = admin_app.state.catalog.fabrics[0]["id"]

    assert catalog.toggle_fabric_active(fabric_id, False)

    assert admin_app.state.catalog.fabrics[0]["is_active"] is False
    assert "Jacquard" not in [f["name"] for f in admin_app.public_catalog()]


def test_failed_toggle_reloads_from_store(admin_app, client):
    catalog = admin_app.catalog
    catalog.create_fabric("Jacquard")
    fabric_id = admin_app.state.catalog.fabrics[0]["id"]
    admin_app.api.request("DELETE", f"/fabrics/{fabric_id}")

    assert not catalog.toggle_fabric_active(fabric_id, False)

    assert admin_app.state.catalog.error == "Fabric not found."
    assert admin_app.state.catalog.fabrics == []
    assert not admin_app.state.catalog.busy


def test_unreachable_service_on_toggle_reloads_from_store(admin_app, monkeypatch):
    catalog = admin_app.catalog
    catalog.create_fabric("Jacquard")
    fabric_id = admin_app.state.catalog.fabrics[0]["id"]
    refuse_connections(monkeypatch, admin_app.http, "PATCH")

    assert not catalog.toggle_fabric_active(fabric_id, False)

    state = admin_app.state.catalog
    assert state.fabrics[0]["is_active"] is True
    assert state.error.startswith("Could not reach the service")
    assert not state.busy


def test_toggle_during_outage_restores_cached_value(admin_app, monkeypatch):
    catalog = admin_app.catalog
    catalog.create_fabric("Jacquard")
    fabric_id = admin_app.state.catalog.fabrics[0]["id"]
    refuse_connections(monkeypatch, admin_app.http)

    assert not catalog.toggle_fabric_active(fabric_id, False)

    state = admin_app.state.catalog
    assert state.fabrics[0]["is_active"] is True
    assert state.error.startswith("Could not reach the service")
    assert not state.busy


def test_delete_fabric_asks_first(admin_app, confirm):
    catalog = admin_app.catalog
    catalog.create_fabric("Velvet")
    fabric_id = admin_app.state.catalog.fabrics[0]["id"]
    catalog.select_fabric(fabric_id)

    confirm.answer = False
    assert not catalog.delete_fabric(fabric_id)
    assert len(admin_app.state.catalog.fabrics) == 1

    confirm.answer = True
    assert catalog.delete_fabric(fabric_id)
    assert admin_app.state.catalog.fabrics == []
    assert admin_app.state.catalog.phase == NO_FABRIC_SELECTED
    assert 'Eliminare il tessuto "Velvet"' in confirm.questions[0]


def test_seller_cannot_manage_catalog(seller_app):
    assert not seller_app.catalog.load_fabrics()
    assert seller_app.state.catalog.error == "Admin privileges required"


# --- gallery -----------------------------------------------------------------

def test_save_into_new_folder_and_browse(seller_app):
    gallery = seller_app.gallery
    state = seller_app.state.gallery

    saved = gallery.save_generated_image("aGVsbG8=", "Divano blu", new_folder_name="Clienti")
    gallery.save_generated_image("aGVsbG8=", "Senza cartella")

    assert saved["folder_id"] == state.folders[0]["id"]
    assert state.folders[0]["name"] == "Clienti"
    assert state.total_count == 2

    assert seller_app.dispatcher.dispatch("gallery.select_folder", saved["folder_id"])
    assert [i["name"] for i in state.images] == ["Divano blu"]
    assert state.total_count == 2
    assert state.current_folder_name == "Clienti"


def test_delete_selected_folder_returns_to_all(seller_app, confirm):
    gallery = seller_app.gallery
    folder = gallery.create_folder("Salotto")
    gallery.save_generated_image("aGVsbG8=", "Uno", folder_id=folder["id"])
    gallery.select_folder(folder["id"])

    assert gallery.delete_folder(folder["id"])

    state = seller_app.state.gallery
    assert state.selected_folder == ALL_FOLDERS
    assert state.folders == []
    assert state.total_count == 0
    assert "Salotto" in confirm.questions[0]


def test_declined_image_delete_keeps_image(seller_app, confirm):
    gallery = seller_app.gallery
    image = gallery.save_generated_image("aGVsbG8=", "Uno")

    confirm.answer = False
    assert not gallery.delete_image(image["id"])
    assert seller_app.state.gallery.total_count == 1

    confirm.answer = True
    assert gallery.delete_image(image["id"])
    assert seller_app.state.gallery.total_count == 0


def test_rename_folder(seller_app):
    folder = seller_app.gallery.create_folder("Bozze")

    assert seller_app.gallery.rename_folder(folder["id"], "Clienti")

    assert seller_app.state.gallery.folders[0]["name"] == "Clienti"


def test_gallery_outage_is_reported_in_state(seller_app, monkeypatch):
    refuse_connections(monkeypatch, seller_app.http)

    assert not seller_app.gallery.load()

    state = seller_app.state.gallery
    assert state.error.startswith("Could not reach the service")
    assert not state.busy


def test_failed_save_still_shows_the_new_folder(seller_app):
    gallery = seller_app.gallery

    assert gallery.save_generated_image("%%%", "Divano", new_folder_name="Nuova") is None

    state = seller_app.state.gallery
    assert state.error == "image_base64 is not valid base64."
    assert [f["name"] for f in state.folders] == ["Nuova"]


# --- generation --------------------------------------------------------------

def test_generation_builds_legacy_request(seller_app, provider):
    generation = seller_app.generation
    assert generation.load_primary_image(make_image("PNG", size=(2000, 1500)))
    generation.select_options(fabric_name="Velvet", color_name="Blu Navy", output_mode=OUTPUT_ISOLATED)

    request = generation.build_request()
    assert request["prompt"] == "Blu Navy luxurious velvet fabric"
    assert request["outputMode"] == "scontornato"

    assert generation.generate() == "aW1hZ2U="
    images, instruction = provider.calls[0]
    assert images == [seller_app.state.generation.primary_image]
    assert "Blu Navy luxurious velvet fabric" in instruction
    assert seller_app.api.profile["remaining_generations"] == 2


def test_generation_with_fabric_sample_uses_dual_request(seller_app, provider):
    generation = seller_app.generation
    generation.load_primary_image(make_image())
    generation.load_fabric_sample(make_image(color=(10, 10, 200)))

    request = generation.build_request()
    assert set(request) == {"sofaImageBase64", "fabricImageBase64", "outputMode"}

    generation.generate()
    assert len(provider.calls[0][0]) == 2


def test_generation_reports_provider_explanation(seller_app, provider):
    provider.queue(text_response("No sofa found."))
    generation = seller_app.generation
    generation.load_primary_image(make_image())
    generation.select_options(fabric_name="Linen")

    assert generation.generate() is None
    assert seller_app.state.generation.error == "No image generated"
    assert not seller_app.state.generation.timed_out


def test_generation_stops_when_plan_is_used_up(seller_app, provider):
    generation = seller_app.generation
    generation.load_primary_image(make_image())
    generation.select_options(fabric_name="Cotton")
    for _ in range(3):
        assert generation.generate()

    with pytest.raises(QuotaExceeded):
        generation.generate()

    assert len(provider.calls) == 3
    assert seller_app.state.generation.error


def test_generation_timeout_is_its_own_outcome():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    http = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://fabricai.test")
    application = Application(http=http)
    application.api.token = "token"
    application.api.profile = {"email": SELLER_EMAIL, "role": "venditore", "remaining_generations": -1}
    application.generation.load_primary_image(make_image())
    application.generation.select_options(fabric_name="Velvet")

    with pytest.raises(GenerationTimeout):
        application.dispatcher.dispatch("generation.run")

    state = application.state.generation
    assert state.timed_out
    assert state.error == TIMEOUT_MESSAGE
    assert not state.busy


def test_generation_requires_sign_in(client, provider):
    application = Application(http=client)
    application.generation.load_primary_image(make_image())
    application.generation.select_options(fabric_name="Velvet")

    assert application.generation.generate() is None

    assert application.state.generation.error == SIGN_IN_MESSAGE
    assert provider.calls == []


def test_generation_needs_inputs(seller_app):
    assert seller_app.generation.generate() is None
    assert seller_app.state.generation.error == "Upload a photo of the sofa first."

    seller_app.generation.load_primary_image(b"not an image")
    assert seller_app.state.generation.error == "Unsupported image format."


def test_save_result_to_gallery(seller_app):
    generation = seller_app.generation
    assert not generation.save_result(seller_app.gallery, "Vuoto")

    generation.load_primary_image(make_image())
    generation.select_options(fabric_name="Velvet")
    generation.generate()
    saved = seller_app.dispatcher.dispatch("generation.save", "Divano velluto", new_folder_name="Preventivi")

    assert saved["name"] == "Divano velluto"
    assert seller_app.state.gallery.folders[0]["name"] == "Preventivi"

    generation.reset()
    assert seller_app.state.generation.result_image is None
