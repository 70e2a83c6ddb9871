"""Declarative description of one container instance before it is created."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from .policies import LogOptions, StartPolicy, StaticManagementPolicy

if TYPE_CHECKING:
    from ..services.waitfor import WaitFor


class Source(str, Enum):
    """Where an image is expected to come from."""

    # Must already be present on the engine
    LOCAL = "local"
    # Pulled from its registry before any container is created
    REMOTE = "remote"


@dataclass
class Image:
    """A container image reference."""

    repository: str
    tag: str = "latest"
    source: Optional[Source] = None

    @classmethod
    def with_repository(cls, repository: str) -> "Image":
        return cls(repository=repository)

    @property
    def reference(self) -> str:
        return f"{self.repository}:{self.tag}"


@dataclass
class Composition:
    """User-declared specification for one container instance.

    The handle of a composition is the user-provided container name if one
    was set, otherwise the image repository. ``container_name`` is only a
    template until the run finalizes it.

    Example:
        db = Composition.with_repository("postgres").with_start_policy(StartPolicy.STRICT)
        db.env("POSTGRES_PASSWORD", "secret")

        app = Composition.with_repository("my/app").with_container_name("app")
        app.inject_container_name("postgres", "DB_HOST")
    """

    image: Image
    container_name: str
    user_provided_container_name: Optional[str] = None
    wait: Optional["WaitFor"] = None
    env_vars: Dict[str, str] = field(default_factory=dict)
    command: List[str] = field(default_factory=list)
    start_policy: StartPolicy = StartPolicy.RELAXED
    # (bare volume name, path in container)
    named_volumes: List[Tuple[str, str]] = field(default_factory=list)
    # Set during resolution: "<volume>-<run id>:<path>"
    final_named_volume_names: List[str] = field(default_factory=list)
    bind_mounts: List[str] = field(default_factory=list)
    # container port spec ("80/tcp") -> host port
    port_bindings: Dict[str, int] = field(default_factory=dict)
    privileged: bool = False
    # (handle, env key)
    inject_container_name_env: List[Tuple[str, str]] = field(default_factory=list)
    log_options: Optional[LogOptions] = None
    static_policy: Optional[StaticManagementPolicy] = None

    @classmethod
    def with_repository(cls, repository: str) -> "Composition":
        """Composition for ``repository:latest``."""
        return cls.with_image(Image.with_repository(repository))

    @classmethod
    def with_image(cls, image: Image) -> "Composition":
        return cls(image=image, container_name=image.repository.replace("/", "-"))

    def with_start_policy(self, start_policy: StartPolicy) -> "Composition":
        self.start_policy = start_policy
        return self

    def with_env(self, env: Dict[str, str]) -> "Composition":
        """Replace the whole environment map."""
        self.env_vars = dict(env)
        return self

    def with_cmd(self, cmd: List[str]) -> "Composition":
        """Replace the command; an empty command keeps the image default."""
        self.command = list(cmd)
        return self

    def with_container_name(self, container_name: str) -> "Composition":
        """Set the user-facing name, which becomes both the handle and part
        of the generated engine container name."""
        self.user_provided_container_name = container_name
        return self

    def with_wait_for(self, wait: "WaitFor") -> "Composition":
        self.wait = wait
        return self

    def with_log_options(self, log_options: Optional[LogOptions]) -> "Composition":
        self.log_options = log_options
        return self

    def static_container(self, policy: StaticManagementPolicy) -> "Composition":
        """Share this container across concurrently running tests.

        Static containers keep their user-provided name unsuffixed, so one
        engine container serves every run that declares it.
        """
        self.static_policy = policy
        return self

    def env(self, name: str, value: str) -> "Composition":
        self.env_vars[name] = str(value)
        return self

    def cmd(self, arg: str) -> "Composition":
        self.command.append(str(arg))
        return self

    def named_volume(self, volume_name: str, path_in_container: str) -> "Composition":
        """Mount a named volume; the name is made unique per run."""
        self.named_volumes.append((volume_name, path_in_container))
        return self

    def bind_mount(self, host_path: str, path_in_container: str) -> "Composition":
        self.bind_mounts.append(f"{host_path}:{path_in_container}")
        return self

    def port_map(self, container_port: int, host_port: int, protocol: str = "tcp") -> "Composition":
        self.port_bindings[f"{container_port}/{protocol}"] = host_port
        return self

    def privileged_mode(self, privileged: bool = True) -> "Composition":
        self.privileged = privileged
        return self

    def inject_container_name(self, handle: str, env: str) -> "Composition":
        """Set env var ``env`` to the generated container name behind ``handle``.

        Start policies must be arranged so the dependency is up in time;
        no ordering is inferred from injections.
        """
        self.inject_container_name_env.append((handle, env))
        return self

    @property
    def is_static(self) -> bool:
        return self.static_policy is not None

    def handle(self) -> str:
        if self.user_provided_container_name is None:
            return self.image.repository
        return self.user_provided_container_name

    def configure_container_name(self, namespace: str, suffix: str) -> None:
        """Finalize the engine container name as ``namespace-name-suffix``."""
        # The engine rejects path separators in container names
        stripped_name = self.handle().replace("/", "_").replace("\\", "_")
        if self.is_static:
            self.container_name = stripped_name
        else:
            self.container_name = f"{namespace}-{stripped_name}-{suffix}"

    def volume_binds(self) -> List[str]:
        return list(self.final_named_volume_names) + list(self.bind_mounts)
