"""
Collects dependency updates across a module graph.

Every remote import occurrence is parsed, resolved through the import map
when needed, and checked against its registry. One Update is produced per
occurrence; reconciliation of several occurrences happens downstream.
"""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .cli_config import get_config
from .dependency import has_scheme, parse, to_uri
from .error_handling import RegistryError, log_registry_error
from .import_map import ImportMap, read_import_map
from .module_graph import ModuleGraphBuilder, ModuleImport, StaticModuleGraphBuilder
from .structured_logging import get_collector_logger, log_collect_complete
from .update import ImportMapIndirection, Update, VersionFact
from .version_resolver import ResolverContext


@dataclass
class CollectOptions:
    """Options for collect()."""

    import_map: Optional[Union[ImportMap, str, Path]] = None
    graph_builder: Optional[ModuleGraphBuilder] = None
    resolver: Optional[ResolverContext] = None
    max_concurrent: Optional[int] = None


def _load_import_map(value: Optional[Union[ImportMap, str, Path]]) -> Optional[ImportMap]:
    if value is None or isinstance(value, ImportMap):
        return value
    return read_import_map(value)


async def create_update(
    occurrence: ModuleImport,
    resolver: ResolverContext,
    import_map: Optional[ImportMap] = None,
) -> Optional[Update]:
    """
    Build the Update for one import occurrence, if a newer version exists.

    Args:
        occurrence: The import occurrence from the module graph
        resolver: Resolver used to find the latest version
        import_map: Import map for specifiers that are not versioned themselves

    Returns:
        Update, or None when the import is local, unversioned or up to date

    Raises:
        RegistryError: The registry lookup for this dependency failed
    """
    literal = occurrence.specifier
    dependency = parse(literal) if has_scheme(literal) else None
    indirection = None

    if (dependency is None or not dependency.is_versioned) and import_map is not None:
        resolution = import_map.resolve(literal, occurrence.referrer)
        if resolution is not None:
            dependency = parse(resolution.specifier)
            if resolution.from_key is not None and resolution.to_value is not None:
                indirection = ImportMapIndirection(
                    location=import_map.location,
                    from_key=resolution.from_key,
                    to_value=resolution.to_value,
                )

    if dependency is None or not dependency.is_versioned:
        return None

    latest = await resolver.resolve_latest(dependency)
    if latest is None:
        return None

    return Update(
        name=dependency.name,
        version=VersionFact(to=latest.version, from_=dependency.version),
        old_specifier=to_uri(dependency),
        new_specifier=to_uri(latest),
        referrer=occurrence.referrer,
        span=occurrence.span,
        import_map=indirection,
    )


async def collect(
    entrypoints: Iterable[str], options: Optional[CollectOptions] = None
) -> List[Update]:
    """
    Collect updates for every remote import reachable from the entrypoints.

    Per-dependency resolution failures are reported through the error handler
    and do not abort the walk.

    Args:
        entrypoints: Paths of the entry modules
        options: Import map, graph builder, resolver and concurrency settings

    Returns:
        List[Update]: One update per outdated occurrence, in graph order
    """
    options = options or CollectOptions()
    entrypoints = list(entrypoints)
    start_time = time.time()
    logger = get_collector_logger()

    import_map = _load_import_map(options.import_map)
    builder = options.graph_builder or StaticModuleGraphBuilder(import_map)
    occurrences = await builder.build(entrypoints)
    logger.debug("graph_built", entrypoints=len(entrypoints), occurrences=len(occurrences))

    semaphore = asyncio.Semaphore(options.max_concurrent or get_config().resolve.max_concurrent)

    async def _guarded(resolver: ResolverContext, occurrence: ModuleImport) -> Optional[Update]:
        async with semaphore:
            try:
                return await create_update(occurrence, resolver, import_map)
            except RegistryError as e:
                log_registry_error(
                    f"Could not resolve the latest version: {e}",
                    "update_collector",
                    "collect",
                    package_name=e.package_name,
                    exception=e,
                )
                return None

    if options.resolver is not None:
        results = await asyncio.gather(*(_guarded(options.resolver, o) for o in occurrences))
    else:
        async with ResolverContext() as resolver:
            results = await asyncio.gather(*(_guarded(resolver, o) for o in occurrences))

    updates = [update for update in results if update is not None]

    log_collect_complete(
        len(entrypoints),
        len(occurrences),
        len(updates),
        int((time.time() - start_time) * 1000),
    )
    return updates
