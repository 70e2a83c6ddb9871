"""Resolution stage: everything decided about compositions before creation.

The steps run in a fixed order, each depending on the previous one:

1. validate handles into a Keeper[Composition]
2. finalize container names
3. suffix named volumes with the run id
4. inject finalized container names into requesting environments
"""

from dataclasses import dataclass, field
from typing import Dict, List, Set

import structlog

from ..core.keeper import Keeper
from ..models.composition import Composition
from ..models.errors import HandleNotFoundError, StartupError
from ..utils.naming import generate_suffix

logger = structlog.get_logger(__name__)


@dataclass
class Resolution:
    """Output of the resolution stage."""

    compositions: Keeper[Composition]
    # Suffixed named volumes, in first-reference order
    named_volumes: List[str] = field(default_factory=list)


def validate_composition_handlers(compositions: List[Composition]) -> Keeper[Composition]:
    """Build the handle table, marking handles declared more than once."""
    keeper = Keeper.build(compositions, lambda c: c.handle())
    for handle in sorted(keeper.collisions):
        logger.debug("Handle declared multiple times, it cannot be resolved", handle=handle)
    return keeper


def resolve_final_container_name(compositions: Keeper[Composition], namespace: str) -> None:
    """Give every non-static composition a unique ``namespace-name-suffix`` name."""
    used: Set[str] = set()
    for composition in compositions:
        composition.configure_container_name(namespace, generate_suffix())
        if composition.is_static:
            continue
        while composition.container_name in used:
            composition.configure_container_name(namespace, generate_suffix())
        used.add(composition.container_name)


def resolve_named_volumes(compositions: Keeper[Composition], run_id: str) -> List[str]:
    """Suffix named volumes with ``run_id``.

    Repeated references to the same bare name, from any composition, map to
    the identical suffixed name.

    Returns:
        Suffixed volume names, for teardown
    """
    volume_name_map: Dict[str, str] = {}

    for composition in compositions:
        volume_names_with_path = []
        for name, path in composition.named_volumes:
            suffixed = volume_name_map.get(name)
            if suffixed is None:
                suffixed = f"{name}-{run_id}"
                volume_name_map[name] = suffixed
            volume_names_with_path.append(f"{suffixed}:{path}")
        composition.final_named_volume_names = volume_names_with_path

    named_volumes = list(volume_name_map.values())
    if named_volumes:
        logger.debug("Added named volumes to cleanup list", volumes=named_volumes)
    return named_volumes


def resolve_inject_container_name_env(compositions: Keeper[Composition]) -> None:
    """Set each requested env key to the finalized name behind its handle.

    Must run after resolve_final_container_name(). All injections are
    validated before any environment is modified.

    Raises:
        StartupError: a requested handle is unknown or collided
    """
    transforms = []
    for composition in compositions:
        resolved = []
        for handle, env in composition.inject_container_name_env:
            if compositions.is_collision(handle):
                raise StartupError(
                    f"composition `{composition.handle()}` attempted to inject_container_name_env "
                    f"on duplicate handle `{handle}`"
                )
            try:
                target = compositions.resolve(handle)
            except HandleNotFoundError:
                raise StartupError(
                    f"composition `{composition.handle()}` attempted to inject_container_name_env "
                    f"on non-existent handle `{handle}`"
                )
            resolved.append((handle, target.container_name, env))
        transforms.append(resolved)

    for composition, resolved in zip(compositions, transforms):
        for handle, name, env in resolved:
            previous = composition.env_vars.get(env)
            if previous is not None:
                logger.warning(
                    "Overwriting environment variable with injected container name",
                    composition=composition.handle(),
                    env=env,
                    previous=previous,
                    handle=handle,
                )
            composition.env_vars[env] = name


def resolve(compositions: List[Composition], namespace: str, run_id: str) -> Resolution:
    """Run the whole resolution stage over declaration-ordered compositions."""
    keeper = validate_composition_handlers(compositions)
    resolve_final_container_name(keeper, namespace)
    named_volumes = resolve_named_volumes(keeper, run_id)
    resolve_inject_container_name_env(keeper)
    return Resolution(compositions=keeper, named_volumes=named_volumes)
