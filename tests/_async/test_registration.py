import httpx
import pytest

from swcache import (
    Active,
    AsyncHttpxFetcher,
    AsyncServiceWorkerRegistration,
    ControllerConfig,
    InstallationError,
    LifecycleError,
    Redundant,
    Request,
    Waiting,
)

ORIGIN = "https://territorios.example"


def make_config(version: str, **kwargs) -> ControllerConfig:
    return ControllerConfig(origin=ORIGIN, version=version, app_shell_urls=("/",), static_asset_urls=(), **kwargs)


@pytest.mark.anyio
async def test_first_registration_activates_immediately(network) -> None:
    registration = AsyncServiceWorkerRegistration()
    config = make_config("v1", skip_waiting_on_install=False)
    network.serve_manifest(config)

    async with registration.create_controller(config, fetcher=network.fetcher) as controller:
        await registration.register(controller)

    assert registration.active is controller
    assert registration.waiting is None
    assert registration.installing is None
    assert isinstance(controller.lifecycle, Active)
    assert await registration.storage.keys() == await controller.storage.keys()


@pytest.mark.anyio
async def test_new_version_waits_for_controlled_clients(network) -> None:
    registration = AsyncServiceWorkerRegistration()
    v1_config = make_config("v1")
    v2_config = make_config("v2", skip_waiting_on_install=False)
    network.serve_manifest(v1_config)

    async with registration.create_controller(v1_config, fetcher=network.fetcher) as v1:
        await registration.register(v1)
        assert registration.add_client("page-1") is v1

        async with registration.create_controller(v2_config, fetcher=network.fetcher) as v2:
            await registration.register(v2)

            assert registration.active is v1
            assert registration.waiting is v2
            assert isinstance(v2.lifecycle, Waiting)
            # The previous version's partitions survive until the new one activates.
            assert "app-conductores-azure-v1" in await registration.storage.keys()

            await registration.remove_client("page-1")

    assert registration.active is v2
    assert registration.waiting is None
    assert isinstance(v1.lifecycle, Redundant)
    assert isinstance(v2.lifecycle, Active)
    assert sorted(await registration.storage.keys()) == ["api-cache-v2", "app-conductores-azure-v2", "static-assets-v2"]


@pytest.mark.anyio
async def test_skip_waiting_message_activates_the_waiting_version(network) -> None:
    registration = AsyncServiceWorkerRegistration()
    v1_config = make_config("v1")
    v2_config = make_config("v2", skip_waiting_on_install=False)
    network.serve_manifest(v1_config)

    async with registration.create_controller(v1_config, fetcher=network.fetcher) as v1:
        await registration.register(v1)
        registration.add_client("page-1")

        async with registration.create_controller(v2_config, fetcher=network.fetcher) as v2:
            await registration.register(v2)
            assert registration.waiting is v2

            await registration.post_message({"type": "SKIP_WAITING"})

            assert registration.active is v2
            assert v2.clients_claimed is True
            # The page is claimed by the new version.
            assert registration.controller_for("page-1") is v2
            assert isinstance(v1.lifecycle, Redundant)


@pytest.mark.anyio
async def test_eager_version_replaces_the_active_one(network) -> None:
    registration = AsyncServiceWorkerRegistration()
    v1_config = make_config("v1")
    v2_config = make_config("v2")
    network.serve_manifest(v1_config)

    async with registration.create_controller(v1_config, fetcher=network.fetcher) as v1:
        await registration.register(v1)
        registration.add_client("page-1")

        async with registration.create_controller(v2_config, fetcher=network.fetcher) as v2:
            await registration.register(v2)

    assert registration.active is v2
    assert registration.controller_for("page-1") is v2
    assert isinstance(v1.lifecycle, Redundant)


@pytest.mark.anyio
async def test_failed_installation_keeps_the_active_version(network) -> None:
    registration = AsyncServiceWorkerRegistration()
    v1_config = make_config("v1")
    network.serve_manifest(v1_config)

    async with registration.create_controller(v1_config, fetcher=network.fetcher) as v1:
        await registration.register(v1)

        broken = make_config("v2", app_shell_urls=("/", "/does-not-exist"))
        async with registration.create_controller(broken, fetcher=network.fetcher) as v2:
            with pytest.raises(InstallationError):
                await registration.register(v2)

    assert registration.active is v1
    assert registration.installing is None
    assert isinstance(v2.lifecycle, Redundant)
    assert "app-conductores-azure-v1" in await registration.storage.keys()


@pytest.mark.anyio
async def test_handle_fetch_routes_through_the_controlling_version(network) -> None:
    registration = AsyncServiceWorkerRegistration()
    config = make_config("v1")
    network.serve_manifest(config)

    async with registration.create_controller(config, fetcher=network.fetcher) as controller:
        registration.add_client("uncontrolled")
        await registration.register(controller)
        registration.add_client("controlled")

        network.online = False
        navigation = Request(method="GET", url=ORIGIN + "/", destination="document")
        response = await registration.handle_fetch("controlled", navigation, network.fetcher)

        assert response.metadata["swcache_from_cache"] is True
        assert navigation.metadata["swcache_client_id"] == "controlled"

        post = Request(method="POST", url=ORIGIN + "/api/territorios")
        network.online = True
        response = await registration.handle_fetch("controlled", post, network.fetcher)
        assert response.status_code == 404
        assert "swcache_from_cache" not in response.metadata


@pytest.mark.anyio
async def test_claim_requires_an_active_controller(network) -> None:
    registration = AsyncServiceWorkerRegistration()
    controller = registration.create_controller(make_config("v1"), fetcher=network.fetcher)

    with pytest.raises(LifecycleError):
        await registration.claim_clients(controller)

    with pytest.raises(LifecycleError):
        await registration.post_message({"type": "SKIP_WAITING"})

    with pytest.raises(LifecycleError):
        await registration.sync("background-sync")


@pytest.mark.anyio
async def test_redirect_loop_during_installation_leaves_the_version_redundant(network) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/":
            return httpx.Response(302, headers={"location": "/"})
        return network.handler(request)

    registration = AsyncServiceWorkerRegistration()
    fetcher = AsyncHttpxFetcher(ORIGIN, transport=httpx.MockTransport(handler))

    async with fetcher, registration.create_controller(make_config("v1"), fetcher=fetcher) as controller:
        with pytest.raises(InstallationError) as exc_info:
            await registration.register(controller)

    assert exc_info.value.url == ORIGIN + "/"
    assert registration.installing is None
    assert registration.active is None
    assert isinstance(controller.lifecycle, Redundant)
