"""Unit tests for the creation and inspection stages."""

import ipaddress

import pytest

from dockertest.models.composition import Composition, Image, Source
from dockertest.models.errors import (
    DaemonError,
    HostPortError,
    RecoverableError,
    StageFailure,
    StartupError,
)
from dockertest.models.policies import StaticManagementPolicy
from dockertest.services.creation import (
    create_containers,
    pull_images,
    remove_container_if_exists,
)
from dockertest.services.inspection import inspect_containers
from dockertest.services.resolution import resolve
from dockertest.services.scheduler import start_containers

NETWORK = "dockertest-rs-run1"


def resolved(*compositions):
    return resolve(list(compositions), "dockertest-rs", "run1").compositions


class TestCreateContainers:
    """Test container creation."""

    @pytest.mark.asyncio
    async def test_creates_in_declaration_order(self, fake_engine, static_pool):
        compositions = resolved(
            Composition.with_repository("postgres").with_container_name("db"),
            Composition.with_repository("redis").with_container_name("cache"),
        )

        pending = await create_containers(compositions, fake_engine, NETWORK, static_pool)

        assert [c.handle for c in pending] == ["db", "cache"]
        assert fake_engine.calls_of("create") == [c.container_name for c in compositions]
        assert pending.resolve("cache").id == fake_engine.find(pending.resolve("cache").name)

    @pytest.mark.asyncio
    async def test_spec_carries_composition(self, fake_engine, static_pool):
        compositions = resolved(
            Composition.with_repository("app")
            .env("MODE", "test")
            .cmd("serve")
            .named_volume("data", "/data")
            .port_map(80, 8080)
        )

        pending = await create_containers(compositions, fake_engine, NETWORK, static_pool)

        spec = fake_engine.containers[pending[0].id]["spec"]
        assert spec.image == "app:latest"
        assert spec.env == {"MODE": "test"}
        assert spec.cmd == ["serve"]
        assert spec.binds == ["data-run1:/data"]
        assert spec.port_bindings == {"80/tcp": 8080}
        assert spec.network == NETWORK

    @pytest.mark.asyncio
    async def test_leftover_container_removed(self, fake_engine, static_pool):
        compositions = resolved(Composition.with_repository("postgres"))
        leftover = fake_engine.add_container(compositions[0].container_name)

        await create_containers(compositions, fake_engine, NETWORK, static_pool)

        assert fake_engine.calls_of("remove") == [compositions[0].container_name]
        assert leftover not in fake_engine.containers

    @pytest.mark.asyncio
    async def test_missing_container_is_recoverable(self, fake_engine):
        with pytest.raises(RecoverableError):
            await remove_container_if_exists(fake_engine, "never-existed")

    @pytest.mark.asyncio
    async def test_failure_returns_created_so_far(self, fake_engine, static_pool):
        compositions = resolved(
            Composition.with_repository("postgres").with_container_name("db"),
            Composition.with_repository("redis").with_container_name("cache"),
            Composition.with_repository("app").with_container_name("app"),
        )
        fake_engine.fail_create = {"cache"}

        with pytest.raises(StageFailure) as exc_info:
            await create_containers(compositions, fake_engine, NETWORK, static_pool)

        assert isinstance(exc_info.value.error, DaemonError)
        assert [c.name for c in exc_info.value.cleanup] == [compositions[0].container_name]
        # Nothing after the failure is created
        assert len(fake_engine.calls_of("create")) == 2

    @pytest.mark.asyncio
    async def test_static_goes_through_pool(self, fake_engine, static_pool):
        compositions = resolved(
            Composition.with_repository("postgres")
            .with_container_name("shared")
            .static_container(StaticManagementPolicy.INTERNAL)
        )

        pending = await create_containers(compositions, fake_engine, NETWORK, static_pool)

        assert pending[0].is_static
        assert pending[0].name == "shared"
        assert static_pool.refcount("shared") == 1


class TestPullImages:
    """Test image pulling."""

    @pytest.mark.asyncio
    async def test_only_remote_images_pulled(self, fake_engine):
        compositions = resolved(
            Composition.with_image(Image("postgres", "15", Source.REMOTE)),
            Composition.with_image(Image("local-app", source=Source.LOCAL)),
            Composition.with_repository("redis"),
            Composition.with_image(Image("postgres", "15", Source.REMOTE)).with_container_name(
                "replica"
            ),
        )

        await pull_images(compositions, fake_engine, default_source=Source.REMOTE)

        assert sorted(fake_engine.images_pulled) == ["postgres:15", "redis:latest"]

    @pytest.mark.asyncio
    async def test_local_default(self, fake_engine):
        compositions = resolved(Composition.with_repository("redis"))

        await pull_images(compositions, fake_engine, default_source=Source.LOCAL)

        assert fake_engine.images_pulled == []

    @pytest.mark.asyncio
    async def test_pull_failure_is_startup_error(self, fake_engine):
        fake_engine.fail_pull = {"private/image"}
        compositions = resolved(Composition.with_repository("private/image"))

        with pytest.raises(StartupError) as exc_info:
            await pull_images(compositions, fake_engine, default_source=Source.REMOTE)

        assert "private/image:latest" in exc_info.value.message


class TestInspectContainers:
    """Test the inspection stage."""

    @pytest.mark.asyncio
    async def test_ip_and_ports(self, fake_engine, static_pool):
        compositions = resolved(Composition.with_repository("postgres").with_container_name("db"))
        pending = await create_containers(compositions, fake_engine, NETWORK, static_pool)
        running = await start_containers(pending)
        fake_engine.ports[running[0].name] = {
            "5432/tcp": [{"HostIp": "127.0.0.1", "HostPort": "49153"}]
        }

        inspected = await inspect_containers(running, NETWORK)

        db = inspected.resolve("db")
        assert db.ip != ipaddress.IPv4Address("0.0.0.0")
        assert db.ports.host_port(5432) == ("127.0.0.1", 49153)

    @pytest.mark.asyncio
    async def test_not_on_network(self, fake_engine, static_pool):
        compositions = resolved(Composition.with_repository("postgres"))
        pending = await create_containers(compositions, fake_engine, NETWORK, static_pool)
        running = await start_containers(pending)

        inspected = await inspect_containers(running, "other-network")

        assert inspected[0].ip == ipaddress.IPv4Address("0.0.0.0")

    @pytest.mark.asyncio
    async def test_inspect_failure_is_daemon_error(self, fake_engine, static_pool):
        compositions = resolved(Composition.with_repository("postgres").with_container_name("db"))
        pending = await create_containers(compositions, fake_engine, NETWORK, static_pool)
        running = await start_containers(pending)
        fake_engine.fail_inspect = {"db"}

        with pytest.raises(DaemonError) as exc_info:
            await inspect_containers(running, NETWORK)

        assert "'db'" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_ports(self, fake_engine, static_pool):
        compositions = resolved(Composition.with_repository("postgres").with_container_name("db"))
        pending = await create_containers(compositions, fake_engine, NETWORK, static_pool)
        running = await start_containers(pending)
        fake_engine.ports[running[0].name] = {"bogus": []}

        with pytest.raises(HostPortError):
            await inspect_containers(running, NETWORK)
