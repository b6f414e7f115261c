"""Build orchestrator — the central coordinator for packsmith builds.

The Orchestrator wires together the image store, blob downloader,
compatibility engine, ephemeral builder composer and lifecycle executor into
one linear build flow:

1. Parse the target image reference and resolve the application path
2. Resolve proxy configuration (explicit, else from the environment mapping)
3. Fetch the builder image and wrap it in stack/builder views
4. Resolve the run image name (explicit, mirrors, builder metadata)
5. Fetch the run image and check its stack matches the builder's
6. Resolve requested buildpacks (IDs on the builder, or fetchable blobs)
7. Validate mixins across builder, run image and every buildpack
8. Compose an ephemeral builder and schedule its removal
9. Check the builder's platform API against ours
10. Hand off to the lifecycle executor

It also creates buildpack packages from a ``package.toml``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from packsmith.config import PacksmithConfig
from packsmith.core.builder import BuilderImage
from packsmith.core.compat import validate_mixins
from packsmith.core.downloader import Downloader
from packsmith.core.ephemeral import (
    NameFactory,
    content_scratch_name,
    create_ephemeral_builder,
)
from packsmith.core.errors import (
    CompatibilityError,
    ConfigurationError,
    ErrorKind,
    FetchError,
    PackIOError,
    PacksmithError,
    PlatformAPIError,
    symbol,
)
from packsmith.core.image import Image, ImageFactory, ImageFetcher, ImageRemover
from packsmith.core.image_store import LocalImageStore
from packsmith.core.layers import Buildpack
from packsmith.core.lifecycle import PLATFORM_API_VERSION, DryRunLifecycle, Lifecycle
from packsmith.core.package_builder import PackageBuilder
from packsmith.core.paths import is_dir, is_uri, is_zip, uri_to_file_path
from packsmith.core.reference import ImageReference
from packsmith.core.stack_image import RunImage, StackImage
from packsmith.models.buildpack import BuildpackRef, OrderEntry
from packsmith.models.config import (
    BuildOptions,
    BuildResult,
    BuildState,
    LifecycleOptions,
    PackageConfig,
    ProxyConfig,
)
from packsmith.models.labels import StackMetadata
from packsmith.models.versioning import APIVersion

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request processing helpers
# ---------------------------------------------------------------------------


def process_app_path(app_path: str) -> Path:
    """Resolve *app_path* (default: working directory) to an absolute path.

    Symlinks are resolved. The result must be a directory or a zip archive.
    """
    path = Path(app_path) if app_path else Path.cwd()
    try:
        resolved = path.resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise PackIOError("resolving app path", f"{symbol(str(path))}: {exc}") from exc

    if resolved.is_dir():
        return resolved
    try:
        zipped = is_zip(resolved)
    except OSError as exc:
        raise PackIOError("reading app path", f"{symbol(str(path))}: {exc}") from exc
    if not zipped:
        raise ConfigurationError(
            ErrorKind.INVALID_APP_PATH,
            f"invalid app path {symbol(str(path))}: app path must be a directory or zip",
        )
    return resolved


def _lookup_env(environ: Mapping[str, str], name: str) -> str:
    upper = name.upper()
    if upper in environ:
        return environ[upper]
    return environ.get(name.lower(), "")


def resolve_proxy_config(
    explicit: ProxyConfig | None, environ: Mapping[str, str]
) -> ProxyConfig:
    """Explicit proxy settings win; otherwise read them from *environ*.

    Upper-case variables take precedence over lower-case ones, and a
    variable that is set but empty still counts as set.
    """
    if explicit is not None:
        return explicit
    return ProxyConfig(
        http_proxy=_lookup_env(environ, "http_proxy"),
        https_proxy=_lookup_env(environ, "https_proxy"),
        no_proxy=_lookup_env(environ, "no_proxy"),
    )


def resolve_run_image(
    run_image: str,
    target_registry: str,
    stack: StackMetadata,
    additional_mirrors: Mapping[str, Sequence[str]],
) -> str:
    """Pick the run image name for a build.

    An explicit *run_image* wins. Otherwise candidates are tried in order:
    caller-supplied mirrors for the builder's run image, the run image
    itself, then the builder's own mirrors. The first one hosted on
    *target_registry* is used. Without a registry match, the first caller
    mirror (or else the builder's run image) is returned. ``""`` means no
    run image could be resolved.
    """
    if run_image:
        return run_image

    image = stack.run_image.image
    preferred = list(additional_mirrors.get(image, []))
    for candidate in [*preferred, image, *stack.run_image.mirrors]:
        if not candidate:
            continue
        try:
            registry = ImageReference.parse(candidate).registry
        except ConfigurationError:
            logger.debug("Skipping unparseable run image mirror %s", candidate)
            continue
        if registry == target_registry:
            return candidate

    if preferred:
        return preferred[0]
    return image


def fetch_existing(fetcher: ImageFetcher, name: str, daemon: bool, pull: bool) -> Image:
    """Fetch *name* and reject handles that do not point at a stored image."""
    image = fetcher.fetch(name, daemon, pull)
    if not image.found():
        raise FetchError(
            ErrorKind.IMAGE_NOT_FOUND,
            f"image {symbol(name)} does not exist",
            reference=name,
        )
    return image


def validate_run_image(
    fetcher: ImageFetcher,
    name: str,
    *,
    no_pull: bool,
    publish: bool,
    expected_stack: str,
) -> RunImage:
    """Fetch the run image and require it to share the builder's stack."""
    image = fetch_existing(fetcher, name, not publish, not no_pull)
    stack_image = StackImage(image)
    if stack_image.stack_id != expected_stack:
        raise CompatibilityError(
            ErrorKind.STACK_MISMATCH,
            f"run-image stack id {symbol(stack_image.stack_id)} does not match "
            f"builder stack {symbol(expected_stack)}",
        )
    return RunImage(image)


def is_buildpack_id(token: str) -> bool:
    """A token is a buildpack ID unless it is a URI or an existing path."""
    if is_uri(token):
        return False
    return not Path(token).exists()


def parse_buildpack_token(token: str) -> tuple[str, str]:
    """Split ``id[@version]``; ``@latest`` is accepted but deprecated."""
    parts = token.split("@")
    if len(parts) == 2:
        if parts[1] == "latest":
            logger.warning("@latest syntax is deprecated, will not work in future releases")
            return parts[0], ""
        return parts[0], parts[1]
    return parts[0], ""


def ensure_buildpack_support(location: str, target_os: str) -> None:
    """Reject directory buildpacks when targeting Windows."""
    path = location
    if is_uri(location):
        if urlparse(location).scheme != "file":
            return
        path = str(uri_to_file_path(location))

    if target_os == "windows" and is_dir(path):
        raise ConfigurationError(
            ErrorKind.UNSUPPORTED_PLATFORM,
            f"buildpack {symbol(location)}: directory-based buildpacks are not "
            "currently supported on Windows",
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """Central build orchestrator.

    Each collaborator can be injected; anything left out defaults to the
    local image store under ``config.image_store_path``, an http(s)/file
    downloader and a dry-run lifecycle.

    Parameters
    ----------
    config:
        Runtime configuration. Uses defaults (and environment) if not provided.
    environ:
        Environment mapping used for proxy resolution. Snapshot of
        ``os.environ`` if not provided.
    name_factory:
        Overrides the ephemeral builder naming policy.
    """

    def __init__(
        self,
        config: PacksmithConfig | None = None,
        *,
        fetcher: ImageFetcher | None = None,
        image_factory: ImageFactory | None = None,
        remover: ImageRemover | None = None,
        downloader: Downloader | None = None,
        lifecycle: Lifecycle | None = None,
        environ: Mapping[str, str] | None = None,
        name_factory: NameFactory | None = None,
    ) -> None:
        self.config = config or PacksmithConfig()

        store: LocalImageStore | None = None
        if fetcher is None or image_factory is None or remover is None:
            store = LocalImageStore(self.config.image_store_path)
        self.fetcher: ImageFetcher = fetcher or store
        self.image_factory: ImageFactory = image_factory or store
        self.remover: ImageRemover = remover or store

        self._owns_downloader = downloader is None
        self.downloader = downloader or Downloader(
            timeout=self.config.download_timeout_seconds
        )
        self.lifecycle: Lifecycle = lifecycle or DryRunLifecycle()
        self._environ = dict(os.environ if environ is None else environ)
        self._name_factory = name_factory

        self.state = BuildState.PENDING

    def close(self) -> None:
        """Release the downloader's http session when this orchestrator made it."""
        if self._owns_downloader:
            self.downloader.close()

    def __enter__(self) -> Orchestrator:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self, options: BuildOptions) -> BuildResult:
        """Run one build request to completion.

        Returns a SUCCEEDED result; any failure marks the orchestrator
        FAILED and re-raises.
        """
        self.state = BuildState.PENDING
        try:
            result = self._build(options)
        except Exception:
            self.state = BuildState.FAILED
            raise
        self.state = BuildState.SUCCEEDED
        return result.model_copy(update={"state": self.state})

    def _build(self, options: BuildOptions) -> BuildResult:
        # 1. Target reference and app path
        self.state = BuildState.RESOLVING
        image_ref = ImageReference.parse(options.image)
        app_path = process_app_path(options.app_path)

        # 2. Proxy
        proxy = resolve_proxy_config(options.proxy_config, self._environ)

        # 3. Builder
        builder_name = options.builder or self.config.default_builder
        if not builder_name:
            raise ConfigurationError(
                ErrorKind.INVALID_REFERENCE,
                "builder is a required parameter if no default builder is configured",
            )
        builder_ref = ImageReference.parse(builder_name)
        raw_builder = fetch_existing(self.fetcher, builder_ref.name, True, not options.no_pull)
        builder_image = BuilderImage(raw_builder)

        # 4. Run image name
        run_image_name = resolve_run_image(
            options.run_image,
            image_ref.registry,
            builder_image.metadata.stack,
            options.additional_mirrors,
        )
        if not run_image_name:
            raise ConfigurationError(ErrorKind.NO_RUN_IMAGE, "run image must be specified")

        # 5. Run image
        self.state = BuildState.VALIDATING
        run_image = validate_run_image(
            self.fetcher,
            run_image_name,
            no_pull=options.no_pull,
            publish=options.publish,
            expected_stack=builder_image.stack_id,
        )

        # 6. Buildpacks
        fetched, group = self.process_buildpacks(options.buildpacks)

        # 7. Mixins
        validate_mixins(builder_image, run_image, [bp.descriptor for bp in fetched])

        # 8. Ephemeral builder
        self.state = BuildState.COMPOSING
        ephemeral = create_ephemeral_builder(
            raw_builder,
            options.env,
            group,
            fetched,
            scratch_repository=self.config.scratch_repository,
            name_factory=self._scratch_name_factory(raw_builder, fetched, group),
        )
        logger.info("Created ephemeral builder %s", ephemeral.name)

        try:
            # 9. Platform API
            self._check_platform_api(builder_name, ephemeral)

            # 10. Lifecycle
            self.state = BuildState.EXECUTING
            self.lifecycle.execute(LifecycleOptions(
                app_path=app_path,
                image=image_ref.name,
                builder=ephemeral.name,
                run_image=run_image_name,
                clear_cache=options.clear_cache,
                publish=options.publish,
                http_proxy=proxy.http_proxy,
                https_proxy=proxy.https_proxy,
                no_proxy=proxy.no_proxy,
                network=options.container_config.network,
            ))
        finally:
            self._remove_scratch(ephemeral.name)

        return BuildResult(
            state=self.state,
            image=image_ref.name,
            builder=builder_ref.name,
            ephemeral_builder=ephemeral.name,
            run_image=run_image_name,
            app_path=app_path,
            buildpacks=[ref.info for ref in group.group],
        )

    def process_buildpacks(
        self, tokens: Sequence[str]
    ) -> tuple[list[Buildpack], OrderEntry]:
        """Split requested buildpacks into fetched blobs and one order group.

        The group lists every token in request order; only location tokens
        produce a fetched buildpack.
        """
        fetched: list[Buildpack] = []
        group: list[BuildpackRef] = []
        for token in tokens:
            if is_buildpack_id(token):
                bp_id, version = parse_buildpack_token(token)
                group.append(BuildpackRef(id=bp_id, version=version))
                continue

            buildpack = self._fetch_buildpack(token)
            fetched.append(buildpack)
            info = buildpack.descriptor.info
            group.append(BuildpackRef(id=info.id, version=info.version))
        return fetched, OrderEntry(group=group)

    def _fetch_buildpack(self, location: str) -> Buildpack:
        ensure_buildpack_support(location, self.config.target_os)
        blob = self.downloader.download(location)
        try:
            return Buildpack.from_blob(blob)
        except ConfigurationError as exc:
            raise ConfigurationError(
                exc.kind, f"creating buildpack from {symbol(location)}: {exc}"
            ) from exc

    def _scratch_name_factory(
        self, base: Image, fetched: list[Buildpack], group: OrderEntry
    ) -> NameFactory | None:
        if self._name_factory is not None:
            return self._name_factory
        if self.config.scratch_naming == "content":
            repository = self.config.scratch_repository
            return lambda: content_scratch_name(base, fetched, group, repository)
        return None

    @staticmethod
    def _check_platform_api(builder_name: str, ephemeral: BuilderImage) -> None:
        supported = APIVersion.parse(PLATFORM_API_VERSION)
        requested = ephemeral.platform_api_version
        if not supported.supports(requested):
            raise PlatformAPIError(
                f"packsmith (Platform API version {supported}) is incompatible with "
                f"builder {symbol(builder_name)} (Platform API version {requested})",
                supported=str(supported),
                requested=str(requested),
            )

    def _remove_scratch(self, name: str) -> None:
        try:
            self.remover.remove(name)
        except (PacksmithError, OSError) as exc:
            logger.warning("Failed to remove ephemeral builder %s: %s", name, exc)
        else:
            logger.debug("Removed ephemeral builder %s", name)

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def create_package(
        self,
        config_path: Path,
        repo_name: str,
        *,
        publish: bool = False,
        infer_stacks: bool = False,
    ) -> Image:
        """Build a buildpack package image from a ``package.toml``.

        Relative buildpack paths are resolved against the config file's
        directory. With *infer_stacks*, the declared stacks are replaced by
        the stacks every buildpack in the package supports.
        """
        config_path = Path(config_path)
        package_config = PackageConfig.load(config_path)

        builder = PackageBuilder(self.image_factory)
        if package_config.default is not None:
            builder.set_default_buildpack(package_config.default)

        for location in package_config.buildpacks:
            uri = location.uri
            if not is_uri(uri) and not Path(uri).is_absolute():
                uri = str(config_path.parent / uri)
            builder.add_buildpack(self._fetch_buildpack(uri))

        stacks = builder.infer_stacks() if infer_stacks else package_config.stacks
        if infer_stacks:
            logger.info(
                "Inferred stack(s): %s", ", ".join(stack.id for stack in stacks) or "none"
            )
        for stack in stacks:
            builder.add_stack(stack)

        return builder.save(repo_name, publish)
