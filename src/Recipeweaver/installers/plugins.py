"""Platform plugins fetched from their source repositories.

The section groups archive URLs into buckets (``required``, ``optional``,
...); ``subplugins`` maps a plugin type to a directory below the platform
root for types the platform does not know a root for. Optional URLs are only
installed when the caller selected them. After the batch, the platform
upgrade command runs once and every installed component must be registered.
"""

from __future__ import annotations

import os
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path

import structlog

from Recipeweaver.context import ExecutionContext
from Recipeweaver.errors import PackageSourceError
from Recipeweaver.feedback import RunStatus
from Recipeweaver.host.github import git_remote_url
from Recipeweaver.host.plugins import parse_version_file, split_component
from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.recipe import AssetType

log = structlog.get_logger()

UPGRADE_ENTITY = "upgrade"


@dataclass
class PluginCandidate:
    url: str
    bucket: str
    component: str
    version: int | None
    target_dir: Path


class PluginsInstaller(AssetInstaller):
    asset_type = AssetType.PLUGINS

    def buckets(self) -> dict[str, list[str]]:
        if not isinstance(self.recipe, dict):
            return {}
        out: dict[str, list[str]] = {}
        for bucket, urls in self.recipe.items():
            if bucket == "subplugins":
                continue
            if isinstance(urls, str):
                urls = [urls]
            if not isinstance(urls, list):
                self.error(str(bucket), f"Plugin bucket {bucket} must be a list of URLs")
                continue
            out[str(bucket)] = [str(u) for u in urls]
        return out

    def target_dir(self, component: str, ctx: ExecutionContext) -> Path | None:
        plugin_type, _ = split_component(component)
        root = ctx.host.plugins.plugin_type_root(plugin_type)
        if root is not None:
            return Path(root)
        subplugins = self.setting("subplugins") or {}
        relative = subplugins.get(plugin_type) if isinstance(subplugins, dict) else None
        if relative is None:
            return None
        log.info("installer.plugin.subplugin_root", component=component, directory=relative)
        return Path(ctx.settings.platform_root) / str(relative).strip("/")

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        for bucket, urls in self.buckets().items():
            for url in urls:
                await self.check_compatibility(url, bucket, ctx)

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        installed: list[str] = []
        for bucket, urls in self.buckets().items():
            for url in urls:
                if bucket == "optional" and url not in ctx.optional_plugins:
                    log.info("installer.plugin.optional_skipped", url=url)
                    continue
                candidate = await self.check_compatibility(url, bucket, ctx)
                if candidate is None:
                    continue
                if await self.install_plugin(candidate, ctx):
                    installed.append(candidate.component)
        if installed:
            await self.trigger_upgrade(installed, ctx)

    async def check_compatibility(self, url: str, bucket: str, ctx: ExecutionContext) -> PluginCandidate | None:
        """Compare declared and installed versions; returns the plugin when it should be installed."""
        try:
            content = await ctx.host.packages.fetch_version_file(url)
        except PackageSourceError as e:
            log.warning("installer.plugin.version_unavailable", url=url, error=str(e))
            self.error(url, f"Could not read plugin information from {url}")
            return None
        component, version = parse_version_file(content)
        if not component:
            self.error(url, f"No component declared in the version file of {url}")
            return None

        target = self.target_dir(component, ctx)
        if target is None:
            self.error(component, f"No target directory known for {component}")
            return None
        if not _writable(target):
            self.error(component, f"Target directory {target} is not writable")
            return None

        installed = await ctx.host.plugins.installed_version(component)
        declared = version or 0
        if installed is None:
            if not ctx.mutating:
                self.success(component, f"Plugin {component} is not installed yet and will be installed")
            return PluginCandidate(url, bucket, component, version, target)
        if installed > declared:
            self.warning(
                component,
                f"Installed version {installed} of {component} is newer than {declared}; skipped",
            )
        elif installed == declared:
            self.success(component, f"Plugin {component} is already installed in version {installed}")
        else:
            self.warning(
                component,
                f"Installed version {installed} of {component} is older than {declared}; "
                "upgrade it on the platform",
            )
        return None

    async def install_plugin(self, candidate: PluginCandidate, ctx: ExecutionContext) -> bool:
        component = candidate.component
        _, plugin_name = split_component(component)
        work = ctx.scratch_dir("plugins")
        archive = work / f"{component}.zip"
        try:
            await ctx.host.packages.download(candidate.url, archive)
        except PackageSourceError as e:
            log.warning("installer.plugin.download_failed", url=candidate.url, error=str(e))
            self.error(component, f"Download of {candidate.url} failed")
            return False

        extracted = work / component
        try:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(extracted)
        except (zipfile.BadZipFile, OSError):
            self.error(component, f"Archive of {component} could not be extracted")
            return False
        finally:
            archive.unlink(missing_ok=True)

        top_level = sorted(p for p in extracted.iterdir() if p.is_dir())
        if not top_level:
            self.error(component, f"No plugin directory found in the archive of {component}")
            return False
        detected = ctx.host.plugins.detect_component(top_level[0])
        if detected and detected != component:
            self.error(component, f"Archive contains {detected} instead of {component}")
            return False

        final_dir = candidate.target_dir / plugin_name
        if final_dir.exists():
            self.error(component, f"Directory {final_dir} already exists")
            return False
        candidate.target_dir.mkdir(parents=True, exist_ok=True)
        shutil.move(str(top_level[0]), final_dir)
        shutil.rmtree(extracted, ignore_errors=True)

        self.connect_repository(final_dir, candidate.url, component, ctx)
        log.info("installer.plugin.installed", component=component, directory=str(final_dir))
        self.success(component, f"Plugin {component} installed")
        return True

    def connect_repository(self, directory: Path, url: str, component: str, ctx: ExecutionContext) -> None:
        git = ctx.settings.git_executable
        if not ctx.host.processes.available(git):
            log.info("installer.plugin.git_unavailable", component=component)
            return
        for argv in ([git, "init"], [git, "remote", "add", "origin", git_remote_url(url)]):
            result = ctx.host.processes.run(argv, cwd=directory)
            if result.returncode != 0:
                self.warning(component, f"Repository setup failed: {result.output or result.returncode}")
                return

    async def trigger_upgrade(self, components: list[str], ctx: ExecutionContext) -> None:
        command = ctx.settings.upgrade_command
        if not command or not ctx.host.processes.available(command[0]):
            self.error(UPGRADE_ENTITY, "No platform upgrade command is available")
            self.set_status(RunStatus.FATAL)
            return
        result = ctx.host.processes.run(command, cwd=Path(ctx.settings.platform_root))
        if result.returncode != 0:
            self.error(UPGRADE_ENTITY, f"Platform upgrade failed ({result.returncode}): {result.output}")
            self.set_status(RunStatus.FATAL)
            return
        if result.output:
            self.warning(UPGRADE_ENTITY, f"Platform upgrade reported: {result.output}")
        for component in components:
            if await ctx.host.plugins.installed_version(component) is None:
                self.error(component, f"Plugin {component} is not registered after the upgrade")
                self.set_status(RunStatus.FATAL)


def _writable(target: Path) -> bool:
    nearest = target
    while not nearest.exists():
        if nearest.parent == nearest:
            return False
        nearest = nearest.parent
    return nearest.is_dir() and os.access(nearest, os.W_OK)
