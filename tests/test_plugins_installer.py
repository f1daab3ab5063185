from fakes import FakePackageSource, FakePluginManager, FakeProcessRunner, make_ctx, plugin_zip, version_php

from Recipeweaver.context import RunMode
from Recipeweaver.host.interfaces import ProcessResult
from Recipeweaver.installers.plugins import UPGRADE_ENTITY, PluginsInstaller

URL = "https://github.com/acme/moodle-mod_adaptivequiz/archive/refs/heads/main.zip"
COMPONENT = "mod_adaptivequiz"
VERSION = 2024010100


class RegisteringRunner(FakeProcessRunner):
    """Runner whose upgrade command registers the pending components."""

    def __init__(self, manager: FakePluginManager, pending: dict[str, int], **kwargs):
        super().__init__(**kwargs)
        self.manager = manager
        self.pending = pending

    def run(self, argv, cwd=None):
        result = super().run(argv, cwd)
        if argv[0] == "php" and result.returncode == 0:
            self.manager.installed.update(self.pending)
        return result


def _setup(settings, tmp_path, *, installed=None, versions=None, archives=None, runner=None):
    settings = settings.model_copy(update={"upgrade_command": ["php", "admin/cli/upgrade.php"]})
    mod_root = tmp_path / "platform" / "mod"
    mod_root.mkdir(parents=True)
    manager = FakePluginManager({"mod": mod_root}, installed)
    packages = FakePackageSource(
        versions if versions is not None else {URL: version_php(COMPONENT, VERSION)},
        archives if archives is not None else {URL: plugin_zip(COMPONENT, VERSION)},
    )
    runner = runner or RegisteringRunner(manager, {COMPONENT: VERSION})
    return settings, mod_root, manager, packages, runner


async def test_install_moves_plugin_and_connects_repository(db, settings, tmp_path):
    settings, mod_root, manager, packages, runner = _setup(settings, tmp_path)
    ctx = make_ctx(settings, db, tmp_path, plugins=manager, packages=packages, processes=runner)
    installer = PluginsInstaller({"required": [URL]})

    await installer.execute(tmp_path, ctx)

    assert (mod_root / "adaptivequiz" / "version.php").is_file()
    assert runner.calls == [
        ["git", "init"],
        ["git", "remote", "add", "origin", "https://github.com/acme/moodle-mod_adaptivequiz.git"],
        ["php", "admin/cli/upgrade.php"],
    ]
    assert installer.get_feedback()["plugins"][COMPONENT] == {
        "success": [f"Plugin {COMPONENT} installed"]
    }
    assert installer.get_status() == 0


async def test_optional_plugins_need_selection(db, settings, tmp_path):
    settings, _, manager, packages, runner = _setup(settings, tmp_path)
    installer = PluginsInstaller({"optional": URL})

    ctx = make_ctx(settings, db, tmp_path, plugins=manager, packages=packages, processes=runner)
    await installer.execute(tmp_path, ctx)
    assert packages.downloads == []

    ctx = make_ctx(
        settings, db, tmp_path, plugins=manager, packages=packages, processes=runner, optional_plugins={URL}
    )
    await PluginsInstaller({"optional": URL}).execute(tmp_path, ctx)
    assert packages.downloads == [URL]


async def test_check_compares_versions(db, settings, tmp_path):
    urls = {
        "newer": "https://github.com/acme/newer/archive/refs/heads/main.zip",
        "same": "https://github.com/acme/same/archive/refs/heads/main.zip",
        "older": "https://github.com/acme/older/archive/refs/heads/main.zip",
        "fresh": "https://github.com/acme/fresh/archive/refs/heads/main.zip",
    }
    versions = {url: version_php(f"mod_{name}", 200) for name, url in urls.items()}
    settings, _, manager, packages, runner = _setup(
        settings,
        tmp_path,
        installed={"mod_newer": 300, "mod_same": 200, "mod_older": 100},
        versions=versions,
        archives={},
    )
    ctx = make_ctx(settings, db, tmp_path, mode=RunMode.CHECK, plugins=manager, packages=packages)
    installer = PluginsInstaller({"required": list(urls.values())})

    await installer.check(tmp_path, ctx)

    fb = installer.get_feedback()["plugins"]
    assert fb["mod_newer"]["warning"] == ["Installed version 300 of mod_newer is newer than 200; skipped"]
    assert fb["mod_same"]["success"] == ["Plugin mod_same is already installed in version 200"]
    assert fb["mod_older"]["warning"] == [
        "Installed version 100 of mod_older is older than 200; upgrade it on the platform"
    ]
    assert fb["mod_fresh"]["success"] == ["Plugin mod_fresh is not installed yet and will be installed"]
    assert packages.downloads == []


async def test_subplugin_uses_configured_directory(db, settings, tmp_path):
    url = "https://github.com/acme/catquiz/archive/refs/heads/main.zip"
    component = "adaptivequizcatmodel_catquiz"
    settings, _, manager, packages, runner = _setup(
        settings,
        tmp_path,
        versions={url: version_php(component, 5)},
        archives={url: plugin_zip(component, 5)},
    )
    runner.pending = {component: 5}
    ctx = make_ctx(settings, db, tmp_path, plugins=manager, packages=packages, processes=runner)
    installer = PluginsInstaller(
        {"required": [url], "subplugins": {"adaptivequizcatmodel": "mod/adaptivequiz/catmodel"}}
    )

    await installer.execute(tmp_path, ctx)

    assert (tmp_path / "platform" / "mod" / "adaptivequiz" / "catmodel" / "catquiz" / "version.php").is_file()


async def test_archive_with_other_component_is_rejected(db, settings, tmp_path):
    settings, mod_root, manager, packages, runner = _setup(
        settings, tmp_path, archives={URL: plugin_zip("mod_other", VERSION)}
    )
    ctx = make_ctx(settings, db, tmp_path, plugins=manager, packages=packages, processes=runner)
    installer = PluginsInstaller({"required": [URL]})

    await installer.execute(tmp_path, ctx)

    assert not (mod_root / "adaptivequiz").exists()
    assert installer.get_feedback()["plugins"][COMPONENT]["error"] == [
        f"Archive contains mod_other instead of {COMPONENT}"
    ]
    assert runner.calls == []


async def test_unreadable_version_file(db, settings, tmp_path):
    settings, _, manager, packages, runner = _setup(settings, tmp_path, versions={})
    ctx = make_ctx(settings, db, tmp_path, plugins=manager, packages=packages, processes=runner)
    installer = PluginsInstaller({"required": [URL]})

    await installer.execute(tmp_path, ctx)

    assert installer.get_feedback()["plugins"][URL]["error"] == [
        f"Could not read plugin information from {URL}"
    ]


async def test_failed_upgrade_is_fatal(db, settings, tmp_path):
    settings, _, manager, packages, _ = _setup(settings, tmp_path)
    runner = FakeProcessRunner(results={"php": ProcessResult(returncode=1, stderr="boom")})
    ctx = make_ctx(settings, db, tmp_path, plugins=manager, packages=packages, processes=runner)
    installer = PluginsInstaller({"required": [URL]})

    await installer.execute(tmp_path, ctx)

    assert installer.get_feedback()["plugins"][UPGRADE_ENTITY]["error"] == ["Platform upgrade failed (1): boom"]
    assert installer.get_status() == 3


async def test_unregistered_plugin_after_upgrade_is_fatal(db, settings, tmp_path):
    settings, _, manager, packages, _ = _setup(settings, tmp_path)
    runner = FakeProcessRunner(missing={"git"})
    ctx = make_ctx(settings, db, tmp_path, plugins=manager, packages=packages, processes=runner)
    installer = PluginsInstaller({"required": [URL]})

    await installer.execute(tmp_path, ctx)

    assert runner.calls == [["php", "admin/cli/upgrade.php"]]
    assert installer.get_feedback()["plugins"][COMPONENT]["error"] == [
        f"Plugin {COMPONENT} is not registered after the upgrade"
    ]
    assert installer.get_status() == 3


async def test_missing_upgrade_command_is_fatal(db, settings, tmp_path):
    _, _, manager, packages, runner = _setup(settings, tmp_path)
    ctx = make_ctx(settings, db, tmp_path, plugins=manager, packages=packages, processes=runner)
    installer = PluginsInstaller({"required": [URL]})

    await installer.execute(tmp_path, ctx)

    assert installer.get_feedback()["plugins"][UPGRADE_ENTITY]["error"] == [
        "No platform upgrade command is available"
    ]
    assert installer.get_status() == 3
